"""Textual index expressions.

``parse_index("2, newaxis, 0:2")`` compiles a comma-separated expression into
index terms. Supported items::

    3          select
    1:3  1:  :3  :      narrow, end excluded (Python slice)
    1..3 1.. ..3 ..     narrow, end excluded
    1..=3  ..=3         narrow, end included
    newaxis | None      insert a length-1 axis
    [0, 2, 2]           gather along the axis
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

import torch
from lark import Lark, Token, Transformer
from lark.exceptions import LarkError, UnexpectedInput, VisitError

from .exceptions import IndexParseError
from .index_ir import (
    Bound,
    Excluded,
    Included,
    IndexSelect,
    IndexTerm,
    InsertNewAxis,
    Narrow,
    Select,
    Unbounded,
)
from .indexer import compile_index

INDEX_GRAMMAR = r"""
start: term ("," term)* ","?

?term: gather
     | newaxis
     | closed_range
     | open_range
     | slice_range
     | integer

gather: "[" _int_list? "]"
_int_list: INT ("," INT)* ","?
newaxis: NEWAXIS
closed_range: [INT] "..=" INT
open_range: [INT] ".." [INT]
slice_range: [INT] ":" [INT]
integer: INT

NEWAXIS: "newaxis" | "None" | "NewAxis"
INT: /[+-]?\d+/

%import common.WS
%ignore WS
"""


@lru_cache(maxsize=1)
def _build_lark() -> Lark:
    return Lark(
        INDEX_GRAMMAR,
        parser="lalr",
        start="start",
        maybe_placeholders=True,
    )


def _lower(token: Optional[Token]) -> Bound:
    return Unbounded() if token is None else Included(int(token))


def _upper_excluded(token: Optional[Token]) -> Bound:
    return Unbounded() if token is None else Excluded(int(token))


class IndexTransformer(Transformer):
    def start(self, items) -> List[IndexTerm]:
        return list(items)

    def integer(self, items) -> Select:
        return Select(int(items[0]))

    def newaxis(self, items) -> InsertNewAxis:
        return InsertNewAxis()

    def gather(self, items) -> IndexSelect:
        values = [int(token) for token in items if token is not None]
        return IndexSelect(torch.tensor(values, dtype=torch.int64))

    def closed_range(self, items) -> Narrow:
        lo, hi = items
        return Narrow(_lower(lo), Included(int(hi)))

    def open_range(self, items) -> Narrow:
        lo, hi = items
        return Narrow(_lower(lo), _upper_excluded(hi))

    def slice_range(self, items) -> Narrow:
        lo, hi = items
        return Narrow(_lower(lo), _upper_excluded(hi))


def parse_index(text: str) -> List[IndexTerm]:
    """Parse and compile a textual index expression."""

    source = text.strip()
    if not source:
        raise IndexParseError("empty index expression")
    try:
        tree = _build_lark().parse(source)
        terms = IndexTransformer().transform(tree)
    except UnexpectedInput as exc:
        column = getattr(exc, "column", None)
        if column is not None and column < 1:
            column = None  # end of input
        raise IndexParseError("invalid index expression", column=column, text=source) from exc
    except VisitError as exc:
        raise IndexParseError(f"invalid index expression: {exc.orig_exc}", text=source) from exc
    except LarkError as exc:
        raise IndexParseError(f"invalid index expression: {exc}", text=source) from exc
    return compile_index(*terms)

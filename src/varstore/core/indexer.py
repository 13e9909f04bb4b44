"""Generalized tensor indexing.

``compile_index`` turns heterogeneous, slice-like index terms into a list of
:mod:`~varstore.core.index_ir` terms; ``evaluate_index`` executes that list
against a tensor through single-axis view primitives (``select``, ``narrow``,
``index_select``, ``unsqueeze``) while tracking the axis cursor.
"""

from __future__ import annotations

import logging
import operator
from typing import Any, List, Sequence, Tuple

import numpy as np
import torch

from .exceptions import IndexArityError, UnsupportedIndexKind, ViewOperationError
from .index_ir import (
    Bound,
    Excluded,
    Included,
    IndexSelect,
    IndexTerm,
    InsertNewAxis,
    Narrow,
    NewAxis,
    Select,
    Unbounded,
)

logger = logging.getLogger(__name__)

MAX_INDEX_TERMS = 6

INDEX_KINDS: Tuple[torch.dtype, ...] = (torch.int64, torch.int32, torch.int16, torch.int8)


# ---------------------------------------------------------------------------
# Compiler


def compile_index(*terms: Any) -> List[IndexTerm]:
    """
    Normalize user index terms into an ordered list of index terms.

    Accepted terms: ``int`` (select), ``slice`` without step (narrow, end
    excluded), :func:`~varstore.core.index_ir.irange` (narrow, end included),
    ``None`` / ``NewAxis`` (insert axis), a sequence of ints or a 1-D signed
    integer array/tensor (gather). Raises before any tensor operation runs.
    """

    if not 1 <= len(terms) <= MAX_INDEX_TERMS:
        raise IndexArityError(
            f"expected between 1 and {MAX_INDEX_TERMS} index terms, got {len(terms)}"
        )
    return [_compile_term(term) for term in terms]


def _compile_term(term: Any) -> IndexTerm:
    if term is None or term is NewAxis or isinstance(term, InsertNewAxis):
        return InsertNewAxis()
    if isinstance(term, Select):
        return Select(_as_int(term.index))
    if isinstance(term, Narrow):
        return Narrow(_normalize_bound(term.start), _normalize_bound(term.end))
    if isinstance(term, IndexSelect):
        return IndexSelect(_check_index_tensor(term.index))
    if isinstance(term, (bool, np.bool_)):
        raise UnsupportedIndexKind("boolean values cannot be used as indices")
    if isinstance(term, (int, np.integer)):
        return Select(int(term))
    if isinstance(term, slice):
        return _compile_slice(term)
    if isinstance(term, torch.Tensor):
        if term.dim() == 0:
            if term.dtype not in INDEX_KINDS:
                raise UnsupportedIndexKind(
                    f"scalar tensors used as indices must have a signed integer dtype, got {term.dtype}"
                )
            return Select(int(term.item()))
        return IndexSelect(_check_index_tensor(term))
    if isinstance(term, np.ndarray):
        if term.dtype.kind != "i":
            raise UnsupportedIndexKind(
                f"arrays used as indices must have a signed integer dtype, got {term.dtype}"
            )
        return IndexSelect(_check_index_tensor(torch.from_numpy(np.ascontiguousarray(term))))
    if isinstance(term, (list, tuple)):
        return IndexSelect(_check_index_tensor(_sequence_to_tensor(term)))
    raise UnsupportedIndexKind(f"unsupported index term of type {type(term).__name__}")


def _compile_slice(term: slice) -> Narrow:
    if term.step is not None and _as_int(term.step) != 1:
        raise UnsupportedIndexKind(f"strided slices are not supported (step={term.step})")
    start: Bound = Unbounded() if term.start is None else Included(_as_int(term.start))
    end: Bound = Unbounded() if term.stop is None else Excluded(_as_int(term.stop))
    return Narrow(start, end)


def _normalize_bound(bound: Bound) -> Bound:
    if isinstance(bound, Included):
        return Included(_as_int(bound.value))
    if isinstance(bound, Excluded):
        return Excluded(_as_int(bound.value))
    if isinstance(bound, Unbounded):
        return bound
    raise UnsupportedIndexKind(f"invalid range bound: {bound!r}")


def _as_int(value: Any) -> int:
    if isinstance(value, (bool, np.bool_)):
        raise UnsupportedIndexKind("boolean values cannot be used as indices")
    try:
        return operator.index(value)
    except TypeError as exc:
        raise UnsupportedIndexKind(f"expected an integer index, got {value!r}") from exc


def _sequence_to_tensor(values: Sequence[Any]) -> torch.Tensor:
    items = list(values)
    if any(isinstance(item, (list, tuple)) for item in items):
        raise UnsupportedIndexKind("multi-dimensional index sequences are not supported")
    return torch.tensor([_as_int(item) for item in items], dtype=torch.int64)


def _check_index_tensor(tensor: torch.Tensor) -> torch.Tensor:
    if tensor.dim() != 1:
        raise UnsupportedIndexKind(
            f"expected a 1-D tensor for indexing, got rank {tensor.dim()}"
        )
    if tensor.dtype not in INDEX_KINDS:
        kinds = ", ".join(str(kind) for kind in INDEX_KINDS)
        raise UnsupportedIndexKind(
            f"the kind of tensors used as indices must be one of {kinds}, got {tensor.dtype}"
        )
    return tensor


# ---------------------------------------------------------------------------
# Evaluator


def evaluate_index(tensor: torch.Tensor, terms: Sequence[IndexTerm]) -> torch.Tensor:
    rank = tensor.dim()
    if len(terms) > rank:
        raise IndexArityError(f"too many indices for tensor of dimension {rank}", rank=rank)

    current = tensor
    cursor = 0
    for position, term in enumerate(terms):
        try:
            current, cursor = _apply_term(current, cursor, term)
        except (RuntimeError, IndexError) as exc:
            raise ViewOperationError(str(exc), term_index=position, term=term) from exc
    logger.debug("indexed %s -> %s with %d terms", tuple(tensor.shape), tuple(current.shape), len(terms))
    return current


def _apply_term(tensor: torch.Tensor, cursor: int, term: IndexTerm) -> Tuple[torch.Tensor, int]:
    if isinstance(term, Select):
        # select() drops the axis, the next one slides under the cursor
        return tensor.select(cursor, term.index), cursor
    if isinstance(term, Narrow):
        if term.is_full:
            return tensor, cursor + 1
        length = tensor.size(cursor)
        start, end = resolve_narrow(term, length)
        if not 0 <= start <= end <= length:
            raise IndexError(
                f"range [{start}, {end}) is out of bounds for axis {cursor} of length {length}"
            )
        return tensor.narrow(cursor, start, end - start), cursor + 1
    if isinstance(term, IndexSelect):
        index = term.index.to(device=tensor.device, dtype=torch.int64)
        return tensor.index_select(cursor, index), cursor + 1
    if isinstance(term, InsertNewAxis):
        return tensor.unsqueeze(cursor), cursor + 1
    raise TypeError(f"unknown index term: {term!r}")


def resolve_narrow(term: Narrow, length: int) -> Tuple[int, int]:
    """Resolve ``term`` to a half-open ``[start, end)`` range on an axis of ``length``.

    Negative bound values count from the end of the axis. Nothing is clamped:
    the evaluator rejects any range outside ``[0, length]``.
    """

    def _offset(value: int) -> int:
        return value + length if value < 0 else value

    lower = term.start
    if isinstance(lower, Included):
        start = _offset(lower.value)
    elif isinstance(lower, Excluded):
        start = _offset(lower.value) + 1
    else:
        start = 0

    upper = term.end
    if isinstance(upper, Included):
        end = _offset(upper.value) + 1
    elif isinstance(upper, Excluded):
        end = _offset(upper.value)
    else:
        end = length
    return start, end


# ---------------------------------------------------------------------------
# Front-ends


def index(tensor: torch.Tensor, *terms: Any) -> torch.Tensor:
    """
    Index ``tensor`` with heterogeneous terms, e.g. ``index(t, 2, None, slice(0, 2))``.

    A single string argument is parsed as a textual index expression
    (``index(t, "2, newaxis, 0:2")``).
    """

    if len(terms) == 1 and isinstance(terms[0], str):
        from .index_parser import parse_index

        compiled = parse_index(terms[0])
    else:
        compiled = compile_index(*terms)
    return evaluate_index(tensor, compiled)


class IndexOp:
    """Subscription front-end: ``IndexOp(t)[2, None, 0:2]`` or ``IndexOp(t)["1..=2, [0, 3]"]``."""

    def __init__(self, tensor: torch.Tensor):
        self.tensor = tensor

    def __getitem__(self, key: Any) -> torch.Tensor:
        if isinstance(key, tuple):
            return index(self.tensor, *key)
        return index(self.tensor, key)

    def __repr__(self) -> str:
        return f"IndexOp(shape={list(self.tensor.shape)})"

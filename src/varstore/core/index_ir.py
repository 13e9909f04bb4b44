"""Normalized index terms produced by the index compiler.

A term describes one single-axis primitive. The evaluator walks a sequence of
terms against a tensor, keeping an axis cursor:

``Select``        consumes the axis under the cursor and removes it
``Narrow``        consumes the axis and keeps it with a shorter length
``IndexSelect``   consumes the axis via gather, keeping it
``InsertNewAxis`` inserts a length-1 axis under the cursor
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import torch


@dataclass(frozen=True)
class Included:
    value: int


@dataclass(frozen=True)
class Excluded:
    value: int


@dataclass(frozen=True)
class Unbounded:
    pass


Bound = Union[Included, Excluded, Unbounded]


@dataclass(frozen=True)
class Select:
    index: int


@dataclass(frozen=True)
class Narrow:
    start: Bound = field(default_factory=Unbounded)
    end: Bound = field(default_factory=Unbounded)

    @property
    def is_full(self) -> bool:
        return isinstance(self.start, Unbounded) and isinstance(self.end, Unbounded)


@dataclass(frozen=True, eq=False)
class IndexSelect:
    index: torch.Tensor

    def __repr__(self) -> str:
        return f"IndexSelect({self.index.tolist()})"


@dataclass(frozen=True)
class InsertNewAxis:
    pass


IndexTerm = Union[Select, Narrow, IndexSelect, InsertNewAxis]


class _NewAxisType:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NewAxis"


NewAxis = _NewAxisType()


def irange(lo: int, hi: int) -> Narrow:
    """Inclusive range ``lo..=hi`` along one axis."""

    return Narrow(Included(int(lo)), Included(int(hi)))

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union


class VarStoreError(Exception):
    """Base class for varstore-specific exceptions."""


class InvalidName(VarStoreError, ValueError):
    def __init__(self, name: str, *, separator: str, kind: str = "name"):
        if name:
            message = f"{kind} cannot contain '{separator}': {name!r}"
        else:
            message = f"{kind} cannot be empty"
        super().__init__(message)
        self.name = name
        self.separator = separator
        self.kind = kind


class MissingVariableError(VarStoreError, KeyError):
    def __init__(self, name: str, *, source: Optional[Union[str, Path]] = None):
        where = f" in {str(source)!r}" if source is not None else ""
        super().__init__(f"cannot find variable '{name}'{where}")
        self.name = name
        self.source = source

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0])


class VariableShapeError(VarStoreError, ValueError):
    def __init__(self, name: str, *, expected: tuple, actual: tuple):
        super().__init__(
            f"shape mismatch for variable '{name}': expected {list(expected)}, got {list(actual)}"
        )
        self.name = name
        self.expected = expected
        self.actual = actual


class StoreIOError(VarStoreError, OSError):
    def __init__(self, message: str, *, path: Union[str, Path]):
        super().__init__(f"{message}: {path}")
        self.path = path


class UnsupportedIndexKind(VarStoreError, TypeError):
    pass


class IndexArityError(VarStoreError, IndexError):
    def __init__(self, message: str, *, rank: Optional[int] = None):
        super().__init__(message)
        self.rank = rank


class ViewOperationError(VarStoreError, IndexError):
    def __init__(self, message: str, *, term_index: int, term: Any = None):
        super().__init__(f"index term {term_index}: {message}")
        self.term_index = term_index
        self.term = term


class IndexParseError(VarStoreError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        column: Optional[int] = None,
        text: Optional[str] = None,
    ):
        detail = _format_location(column, text)
        super().__init__(f"{message}{detail}")
        self.column = column
        self.text = text


def _format_location(column: Optional[int], text: Optional[str]) -> str:
    if column is None:
        return ""
    location_str = f" (col {column})"
    if text is None or column < 1:
        return location_str
    caret = " " * (column - 1) + "^"
    return f"{location_str}\n  {text}\n  {caret}"

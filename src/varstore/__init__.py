from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _load_version

from . import nn
from .core.config import StoreConfig
from .core.exceptions import (
    IndexArityError,
    IndexParseError,
    InvalidName,
    MissingVariableError,
    StoreIOError,
    UnsupportedIndexKind,
    VariableShapeError,
    VarStoreError,
    ViewOperationError,
)
from .core.index_ir import (
    Excluded,
    Included,
    IndexSelect,
    InsertNewAxis,
    Narrow,
    NewAxis,
    Select,
    Unbounded,
    irange,
)
from .core.index_parser import parse_index
from .core.indexer import IndexOp, compile_index, evaluate_index, index
from .core.init import Const, KaimingUniform, Randn, Uniform
from .core.var_store import Entry, Path, VarStore, Variable

try:
    __version__ = _load_version("torch-varstore")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "VarStore",
    "Path",
    "Entry",
    "Variable",
    "StoreConfig",
    "Const",
    "Randn",
    "Uniform",
    "KaimingUniform",
    "index",
    "IndexOp",
    "compile_index",
    "evaluate_index",
    "parse_index",
    "NewAxis",
    "irange",
    "Select",
    "Narrow",
    "IndexSelect",
    "InsertNewAxis",
    "Included",
    "Excluded",
    "Unbounded",
    "VarStoreError",
    "InvalidName",
    "MissingVariableError",
    "VariableShapeError",
    "StoreIOError",
    "UnsupportedIndexKind",
    "IndexArityError",
    "ViewOperationError",
    "IndexParseError",
    "nn",
    "__version__",
]

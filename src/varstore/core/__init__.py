"""Core modules for varstore."""

__all__ = [
    "config",
    "exceptions",
    "index_ir",
    "index_parser",
    "indexer",
    "init",
    "serialization",
    "var_store",
]

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import numpy as np

from .core.exceptions import VarStoreError
from .core.index_parser import parse_index
from .core.indexer import evaluate_index
from .core.serialization import load_tensors


def _inspect(path: Path, fmt: str) -> None:
    tensors = load_tensors(path, fmt=fmt)
    if not tensors:
        print(f"# {path}: no variables")
        return
    width = max(len(name) for name in tensors)
    for name in sorted(tensors):
        tensor = tensors[name]
        shape = "x".join(str(dim) for dim in tensor.shape) or "scalar"
        print(f"{name:<{width}}  {shape:<16}  {str(tensor.dtype).replace('torch.', '')}")


def _index(path: Path, name: str, expression: str, fmt: str, out: Optional[Path]) -> None:
    tensors = load_tensors(path, fmt=fmt)
    if name not in tensors:
        raise SystemExit(f"Variable '{name}' not found in {path}")
    result = evaluate_index(tensors[name], parse_index(expression))
    if out is None:
        np.set_printoptions(suppress=True)
        print(f"# {name}[{expression}] shape={list(result.shape)}")
        print(result.detach().cpu().numpy())
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    np.save(out, result.detach().cpu().numpy())


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="varstore command line utilities")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--format",
        default="auto",
        choices=["auto", "torch", "safetensors", "npz"],
        help="Serialization format of FILE (default: from the file suffix)",
    )
    subparsers = parser.add_subparsers(dest="cmd")

    inspect_parser = subparsers.add_parser("inspect", help="List the variables of a saved store")
    inspect_parser.add_argument("file", type=Path, help="Saved store file")

    index_parser = subparsers.add_parser("index", help="Index one variable of a saved store")
    index_parser.add_argument("file", type=Path, help="Saved store file")
    index_parser.add_argument("name", help="Full dotted variable name")
    index_parser.add_argument("expression", help="Index expression, e.g. '0, newaxis, 1..=2'")
    index_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Optional .npy output path. If omitted, prints the result",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "inspect":
            _inspect(args.file, args.format)
            return
        if args.cmd == "index":
            _index(args.file, args.name, args.expression, args.format, args.out)
            return
    except VarStoreError as exc:
        raise SystemExit(f"error: {exc}") from exc

    parser.print_help()


if __name__ == "__main__":  # pragma: no cover
    main(sys.argv[1:])

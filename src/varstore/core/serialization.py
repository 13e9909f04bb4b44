"""Bulk save/load of flat ``name -> tensor`` mappings."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, Union

import numpy as np
import torch

from .exceptions import StoreIOError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_SUFFIX_FORMATS = {
    ".safetensors": "safetensors",
    ".npz": "npz",
}


def resolve_format(path: PathLike, fmt: str = "auto") -> str:
    fmt = (fmt or "auto").lower()
    if fmt != "auto":
        return fmt
    return _SUFFIX_FORMATS.get(Path(path).suffix.lower(), "torch")


def save_tensors(path: PathLike, tensors: Mapping[str, torch.Tensor], *, fmt: str = "auto") -> None:
    target = Path(path)
    kind = resolve_format(target, fmt)
    payload = {name: tensor.detach().to("cpu").contiguous() for name, tensor in tensors.items()}
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        if kind == "safetensors":
            _safetensors_torch().save_file(payload, str(target))
        elif kind == "npz":
            arrays = {name: tensor.numpy() for name, tensor in payload.items()}
            with target.open("wb") as handle:
                np.savez(handle, **arrays)
        elif kind == "torch":
            torch.save(payload, target)
        else:
            raise ValueError(f"Unsupported serialization format: {kind}")
    except ImportError:
        raise
    except Exception as exc:
        raise StoreIOError(f"failed to write {len(payload)} tensors ({exc})", path=target) from exc
    logger.debug("wrote %d tensors to %s (%s)", len(payload), target, kind)


def load_tensors(path: PathLike, *, fmt: str = "auto") -> Dict[str, torch.Tensor]:
    source = Path(path)
    kind = resolve_format(source, fmt)
    try:
        if kind == "safetensors":
            tensors = dict(_safetensors_torch().load_file(str(source), device="cpu"))
        elif kind == "npz":
            with np.load(source, allow_pickle=False) as data:
                tensors = {name: torch.from_numpy(np.array(data[name])) for name in data.files}
        elif kind == "torch":
            loaded = torch.load(source, map_location="cpu", weights_only=True)
            if not isinstance(loaded, Mapping):
                raise ValueError(f"expected a mapping of named tensors, got {type(loaded).__name__}")
            tensors = dict(loaded)
        else:
            raise ValueError(f"Unsupported serialization format: {kind}")
    except ImportError:
        raise
    except Exception as exc:  # unpickling and safetensors errors share no base class
        raise StoreIOError(f"failed to read tensors ({exc})", path=source) from exc
    for name, value in tensors.items():
        if not isinstance(value, torch.Tensor):
            raise StoreIOError(f"entry '{name}' is not a tensor", path=source)
    logger.debug("read %d tensors from %s (%s)", len(tensors), source, kind)
    return tensors


def _safetensors_torch():
    try:
        import safetensors.torch as st  # type: ignore
    except Exception as exc:  # pragma: no cover - optional dependency
        raise ImportError(
            "Reading or writing .safetensors requires the 'safetensors' package"
        ) from exc
    return st

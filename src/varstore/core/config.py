from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

import torch

_DTYPES = {
    "float32": torch.float32,
    "fp32": torch.float32,
    "float64": torch.float64,
    "fp64": torch.float64,
    "float16": torch.float16,
    "fp16": torch.float16,
    "bfloat16": torch.bfloat16,
    "bf16": torch.bfloat16,
}

_FORMATS = {"auto", "torch", "safetensors", "npz"}


def normalize_device_spec(spec) -> str:
    if isinstance(spec, torch.device):
        return str(spec)
    device = (spec or "").strip()
    if not device:
        return "cpu"
    lowered = device.lower()
    if lowered == "gpu":
        return "cuda"
    if lowered.startswith("gpu:"):
        return "cuda:" + lowered.split(":", 1)[1]
    if lowered == "auto":
        return "cuda" if torch.cuda.is_available() else "cpu"
    return lowered


def resolve_device(spec) -> torch.device:
    return torch.device(normalize_device_spec(spec))


@dataclass(frozen=True)
class StoreConfig:
    """
    Switches shared by a :class:`~varstore.core.var_store.VarStore` and the
    paths derived from it.

    * ``dtype`` is the element kind used by every initializer (default ``"float32"``).
    * ``device`` is only consulted when a store is created without an explicit
      device; ``"auto"`` picks CUDA when available.
    * ``format`` selects the bulk serialization format for ``save``/``load``;
      ``"auto"`` dispatches on the file suffix.
    * ``seed`` seeds a private generator for the random initializers so two
      stores built with the same seed and registration order are identical.
    """

    dtype: str = "float32"
    device: str = "cpu"
    format: str = "auto"  # "auto" | "torch" | "safetensors" | "npz"
    seed: Optional[int] = None

    def normalized(self) -> "StoreConfig":
        dtype = (self.dtype or "float32").lower()
        if dtype not in _DTYPES:
            raise ValueError(f"Unsupported dtype setting: {self.dtype}")
        fmt = (self.format or "auto").lower()
        if fmt not in _FORMATS:
            raise ValueError(f"Unsupported serialization format: {self.format}")
        seed = self.seed
        if seed is not None:
            seed = int(seed)
        return replace(
            self,
            dtype=dtype,
            device=normalize_device_spec(self.device),
            format=fmt,
            seed=seed,
        )

    @property
    def torch_dtype(self) -> torch.dtype:
        return _DTYPES[self.dtype.lower()]

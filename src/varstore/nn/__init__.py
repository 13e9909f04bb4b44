"""
Layers built on top of the variable store.

Layers only talk to the store through :class:`~varstore.core.var_store.Path`
registration calls and keep the live tensors they get back. Running statistics
are registered as non-trainable variables so they are saved and loaded with the
rest of the store but never returned by ``trainable_variables()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import torch

from ..core.init import Const, Init
from ..core.var_store import Path

__all__ = [
    "BatchNorm",
    "BatchNormConfig",
    "batch_norm1d",
    "batch_norm2d",
    "batch_norm3d",
]


@dataclass(frozen=True)
class BatchNormConfig:
    cudnn_enabled: bool = True
    eps: float = 1e-5
    momentum: float = 0.1
    ws_init: Optional[Init] = field(default_factory=lambda: Const(1.0))
    bs_init: Optional[Init] = field(default_factory=lambda: Const(0.0))


class BatchNorm:
    """Batch normalization over ``nd`` spatial dimensions.

    Registers ``running_mean``, ``running_var`` (non-trainable) and, unless the
    corresponding init is ``None``, ``weight`` and ``bias`` under ``path``.
    """

    def __init__(self, path: Path, nd: int, out_dim: int, config: Optional[BatchNormConfig] = None):
        self.config = config or BatchNormConfig()
        self.nd = nd
        self.running_mean = path.zeros_no_train("running_mean", [out_dim])
        self.running_var = path.ones_no_train("running_var", [out_dim])
        self.ws: Optional[torch.Tensor] = None
        self.bs: Optional[torch.Tensor] = None
        if self.config.ws_init is not None:
            self.ws = path.var("weight", [out_dim], self.config.ws_init)
        if self.config.bs_init is not None:
            self.bs = path.var("bias", [out_dim], self.config.bs_init)

    def forward_t(self, xs: torch.Tensor, train: bool) -> torch.Tensor:
        dim = xs.dim()
        if self.nd == 1 and dim not in (2, 3):
            raise ValueError(f"expected an input tensor with 2 or 3 dims, got {list(xs.shape)}")
        if self.nd > 1 and dim != self.nd + 2:
            raise ValueError(
                f"expected an input tensor with {self.nd + 2} dims, got {list(xs.shape)}"
            )
        return torch.batch_norm(
            xs,
            self.ws,
            self.bs,
            self.running_mean,
            self.running_var,
            train,
            self.config.momentum,
            self.config.eps,
            self.config.cudnn_enabled,
        )

    def __call__(self, xs: torch.Tensor, train: bool = False) -> torch.Tensor:
        return self.forward_t(xs, train)


def batch_norm1d(path: Path, out_dim: int, config: Optional[BatchNormConfig] = None) -> BatchNorm:
    """
    Batch normalization over ``(N, C)`` or ``(N, C, L)`` inputs.

    Statistics are computed over the batch dimension ``N`` (and ``L``).
    """

    return BatchNorm(path, 1, out_dim, config)


def batch_norm2d(path: Path, out_dim: int, config: Optional[BatchNormConfig] = None) -> BatchNorm:
    """Batch normalization over ``(N, C, H, W)`` inputs."""

    return BatchNorm(path, 2, out_dim, config)


def batch_norm3d(path: Path, out_dim: int, config: Optional[BatchNormConfig] = None) -> BatchNorm:
    """Batch normalization over ``(N, C, D, H, W)`` inputs."""

    return BatchNorm(path, 3, out_dim, config)

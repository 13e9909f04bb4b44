"""Initialization policies for registered variables."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import torch


@dataclass(frozen=True)
class Const:
    value: float


@dataclass(frozen=True)
class Randn:
    mean: float = 0.0
    stdev: float = 1.0


@dataclass(frozen=True)
class Uniform:
    lo: float
    up: float


@dataclass(frozen=True)
class KaimingUniform:
    """Uniform in ``[-b, b]`` with ``b = sqrt(1 / fan_in)``, ``fan_in`` being the
    product of every dimension but the first."""


Init = Union[Const, Randn, Uniform, KaimingUniform]


def kaiming_bound(dims: Sequence[int]) -> float:
    fan_in = math.prod(int(dim) for dim in dims[1:])
    if fan_in <= 0:
        raise ValueError(f"kaiming_uniform needs a positive fan-in, got dims {list(dims)}")
    return math.sqrt(1.0 / fan_in)


def init_tensor(
    init: Init,
    dims: Sequence[int],
    *,
    device: torch.device,
    dtype: torch.dtype = torch.float32,
    generator: Optional[torch.Generator] = None,
) -> torch.Tensor:
    """
    Materialize a fresh tensor of shape ``dims`` following ``init``.

    Random policies draw on the CPU when a ``generator`` is supplied so that
    seeded stores produce the same values on every device.
    """

    shape = tuple(int(dim) for dim in dims)
    if isinstance(init, Const):
        return torch.full(shape, float(init.value), dtype=dtype, device=device)

    sample_device = torch.device("cpu") if generator is not None else device
    tensor = torch.empty(shape, dtype=dtype, device=sample_device)
    if isinstance(init, Randn):
        tensor.normal_(float(init.mean), float(init.stdev), generator=generator)
    elif isinstance(init, Uniform):
        tensor.uniform_(float(init.lo), float(init.up), generator=generator)
    elif isinstance(init, KaimingUniform):
        bound = kaiming_bound(shape)
        tensor.uniform_(-bound, bound, generator=generator)
    else:
        raise TypeError(f"Unsupported init policy: {init!r}")
    return tensor.to(device)

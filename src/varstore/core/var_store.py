"""Hierarchical variable store.

A :class:`VarStore` owns every variable of a model on a single device. Variables
are registered through :class:`Path` cursors, which build dotted names such as
``encoder.block1.ln.weight``::

    vs = VarStore("cpu")
    ln = vs.root() / "encoder" / "block1" / "ln"
    weight = ln.ones("weight", [64])
    bias = ln.zeros("bias", [64])

Registration hands back the live tensor: the store and the caller share it, so
in-place updates through either reference are visible to both.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import torch

from .config import StoreConfig, resolve_device
from .exceptions import InvalidName, MissingVariableError, VariableShapeError
from .init import Const, Init, KaimingUniform, Randn, Uniform, init_tensor
from .serialization import PathLike, load_tensors, save_tensors

logger = logging.getLogger(__name__)

SEP = "."

DeviceLike = Union[str, torch.device]
Dims = Sequence[int]


@dataclass
class Variable:
    tensor: torch.Tensor
    trainable: bool


class VarStore:
    """
    A lock-guarded registry of named variables living on one device.

    Every operation touching the name map holds ``self._lock`` for its whole
    duration. Reads and in-place updates through tensors already handed out do
    not go through the lock.

    Parameters
    ----------
    device:
        Device holding every variable. Defaults to ``config.device``.
    config:
        :class:`~varstore.core.config.StoreConfig` with the initializer dtype,
        serialization format and optional seed.
    """

    def __init__(self, device: Optional[DeviceLike] = None, config: Optional[StoreConfig] = None):
        self.config = (config or StoreConfig()).normalized()
        self._device = resolve_device(self.config.device if device is None else device)
        self._variables: Dict[str, Variable] = {}
        self._lock = threading.Lock()
        self._generator: Optional[torch.Generator] = None
        self._generator_lock = threading.Lock()
        if self.config.seed is not None:
            self._generator = torch.Generator().manual_seed(self.config.seed)

    # ------------------------------------------------------------------ basics
    @property
    def device(self) -> torch.device:
        return self._device

    def root(self) -> "Path":
        return Path(self, ())

    def __len__(self) -> int:
        with self._lock:
            return len(self._variables)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._variables

    def __repr__(self) -> str:
        return f"VarStore(device={str(self._device)!r}, variables={len(self)})"

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._variables)

    def variables(self) -> Dict[str, torch.Tensor]:
        """Snapshot of every ``name -> tensor`` pair (tensors are the live handles)."""

        with self._lock:
            return {name: var.tensor for name, var in self._variables.items()}

    def trainable_variables(self) -> List[torch.Tensor]:
        with self._lock:
            return [var.tensor for var in self._variables.values() if var.trainable]

    # ------------------------------------------------------------------ persistence
    def save(self, path: PathLike) -> None:
        """Write every variable as one named-tensor blob. Raises ``StoreIOError``."""

        with self._lock:
            named = {name: var.tensor.detach() for name, var in self._variables.items()}
        save_tensors(path, named, fmt=self.config.format)
        logger.info("saved %d variables to %s", len(named), path)

    def load(self, path: PathLike) -> None:
        """
        Overwrite every registered variable with the value stored under its name.

        All names and shapes are checked before the first value is copied, so a
        ``MissingVariableError`` or ``VariableShapeError`` leaves the store
        untouched. Trainability and ``requires_grad`` are not modified.
        """

        named = load_tensors(path, fmt=self.config.format)
        with self._lock:
            updates, _ = self._plan_updates(named, source=path, strict=True)
            _copy_values(updates)
        logger.info("loaded %d variables from %s", len(updates), path)

    def load_partial(self, path: PathLike) -> List[str]:
        """
        Like :meth:`load`, but registered names absent from ``path`` are skipped.

        Returns
        -------
        List[str]
            Sorted full names of the variables that were not found.
        """

        named = load_tensors(path, fmt=self.config.format)
        with self._lock:
            updates, missing = self._plan_updates(named, source=path, strict=False)
            _copy_values(updates)
        if missing:
            logger.warning("%d variables missing from %s: %s", len(missing), path, ", ".join(missing))
        logger.info("loaded %d variables from %s", len(updates), path)
        return missing

    def _plan_updates(
        self,
        named: Dict[str, torch.Tensor],
        *,
        source: Optional[PathLike],
        strict: bool,
    ) -> Tuple[List[Tuple[torch.Tensor, torch.Tensor]], List[str]]:
        updates: List[Tuple[torch.Tensor, torch.Tensor]] = []
        missing: List[str] = []
        for name in sorted(self._variables):
            var = self._variables[name]
            value = named.get(name)
            if value is None:
                if strict:
                    raise MissingVariableError(name, source=source)
                missing.append(name)
                continue
            if tuple(value.shape) != tuple(var.tensor.shape):
                raise VariableShapeError(
                    name, expected=tuple(var.tensor.shape), actual=tuple(value.shape)
                )
            updates.append((var.tensor, value))
        return updates, missing

    # ------------------------------------------------------------------ trainability
    def freeze(self) -> None:
        self._set_requires_grad(False)

    def unfreeze(self) -> None:
        self._set_requires_grad(True)

    def _set_requires_grad(self, flag: bool) -> None:
        with self._lock:
            for var in self._variables.values():
                if var.trainable:
                    var.tensor.requires_grad_(flag)

    # ------------------------------------------------------------------ copies
    def copy(self, device: Optional[DeviceLike] = None) -> "VarStore":
        """Deep-copy every variable (value and trainability) into a new store on ``device``."""

        target = self._device if device is None else resolve_device(device)
        store = VarStore(target, config=self.config)
        with self._lock:
            for name, var in self._variables.items():
                store._variables[name] = Variable(_deep_copy(var.tensor, target), var.trainable)
        logger.debug("copied %d variables to %s", len(store._variables), target)
        return store

    def copy_to(self, other: "VarStore") -> None:
        """
        Push every variable of this store into ``other``.

        Names already registered in ``other`` get their value and trainability
        flag overwritten in place; other names are inserted as deep copies on
        ``other.device``. Variables only present in ``other`` are left alone.
        """

        if other is self:
            return
        with _both_locked(self, other):
            for name, var in self._variables.items():
                existing = other._variables.get(name)
                if existing is not None and existing.tensor.shape != var.tensor.shape:
                    raise VariableShapeError(
                        name,
                        expected=tuple(existing.tensor.shape),
                        actual=tuple(var.tensor.shape),
                    )
            for name, var in self._variables.items():
                existing = other._variables.get(name)
                if existing is None:
                    other._variables[name] = Variable(
                        _deep_copy(var.tensor, other._device), var.trainable
                    )
                    continue
                existing.trainable = var.trainable
                with torch.no_grad():
                    existing.tensor.copy_(var.tensor)

    def copy_from(self, other: "VarStore") -> None:
        """
        Overwrite every variable of this store with the same-named value of ``other``.

        Strict and all-or-nothing, like :meth:`load`.
        """

        if other is self:
            return
        with _both_locked(self, other):
            named = {name: var.tensor for name, var in other._variables.items()}
            updates, _ = self._plan_updates(named, source=None, strict=True)
            _copy_values(updates)

    # ------------------------------------------------------------------ registration
    def _init(self, init: Init, dims: Dims) -> torch.Tensor:
        with self._generator_lock:
            return init_tensor(
                init,
                dims,
                device=self._device,
                dtype=self.config.torch_dtype,
                generator=self._generator,
            )

    def _register(self, name: str, tensor: torch.Tensor, trainable: bool) -> torch.Tensor:
        with self._lock:
            key = self._free_key(name)
            if trainable:
                tensor.requires_grad_(True)
            self._variables[key] = Variable(tensor, trainable)
        logger.debug("registered %s %s trainable=%s", key, list(tensor.shape), trainable)
        return tensor

    def _free_key(self, name: str) -> str:
        if name not in self._variables:
            return name
        # suffix derives from the map size, so it depends on registration order
        counter = len(self._variables)
        key = f"{name}__{counter}"
        while key in self._variables:
            counter += 1
            key = f"{name}__{counter}"
        logger.info("variable %s already registered, storing as %s", name, key)
        return key

    def _get_or_register(
        self,
        name: str,
        factory: Callable[[], torch.Tensor],
        trainable: bool,
    ) -> torch.Tensor:
        with self._lock:
            existing = self._variables.get(name)
            if existing is not None:
                return existing.tensor
            tensor = factory()
            if trainable:
                tensor.requires_grad_(True)
            self._variables[name] = Variable(tensor, trainable)
        logger.debug("registered %s %s trainable=%s", name, list(tensor.shape), trainable)
        return tensor


def _deep_copy(tensor: torch.Tensor, device: torch.device) -> torch.Tensor:
    copied = tensor.detach().to(device, copy=True)
    if tensor.requires_grad:
        copied.requires_grad_(True)
    return copied


def _copy_values(updates: Sequence[Tuple[torch.Tensor, torch.Tensor]]) -> None:
    with torch.no_grad():
        for target, value in updates:
            target.copy_(value)


class _both_locked:
    """Acquire the locks of two stores in a fixed order."""

    def __init__(self, first: VarStore, second: VarStore):
        self._stores = sorted((first, second), key=id)

    def __enter__(self) -> None:
        self._stores[0]._lock.acquire()
        try:
            self._stores[1]._lock.acquire()
        except BaseException:
            self._stores[0]._lock.release()
            raise

    def __exit__(self, *exc_info) -> None:
        self._stores[1]._lock.release()
        self._stores[0]._lock.release()


# ---------------------------------------------------------------------------
# Paths


def _check_name(name: str, kind: str) -> str:
    if not name or SEP in name:
        raise InvalidName(name, separator=SEP, kind=kind)
    return name


class Path:
    """
    A namespace cursor over a :class:`VarStore`.

    Paths are immutable; :meth:`sub` (or ``path / "name"``) returns a child.
    """

    def __init__(self, store: VarStore, segments: Sequence[str] = ()):
        self._store = store
        self._segments: Tuple[str, ...] = tuple(segments)

    @property
    def store(self) -> VarStore:
        return self._store

    @property
    def segments(self) -> Tuple[str, ...]:
        return self._segments

    @property
    def device(self) -> torch.device:
        return self._store.device

    def sub(self, segment: object) -> "Path":
        name = _check_name(str(segment), "sub name")
        return Path(self._store, self._segments + (name,))

    def __truediv__(self, segment: object) -> "Path":
        return self.sub(segment)

    def __repr__(self) -> str:
        return f"Path({SEP.join(self._segments)!r})"

    def full_name(self, name: str) -> str:
        leaf = _check_name(name, "variable name")
        return SEP.join(self._segments + (leaf,))

    def entry(self, name: str) -> "Entry":
        return Entry(self, name)

    def _add(self, name: str, tensor: torch.Tensor, trainable: bool) -> torch.Tensor:
        return self._store._register(self.full_name(name), tensor, trainable)

    # ------------------------------------------------------------------ registration
    def zeros_no_train(self, name: str, dims: Dims) -> torch.Tensor:
        return self._add(name, self._store._init(Const(0.0), dims), trainable=False)

    def ones_no_train(self, name: str, dims: Dims) -> torch.Tensor:
        return self._add(name, self._store._init(Const(1.0), dims), trainable=False)

    def var(self, name: str, dims: Dims, init: Init) -> torch.Tensor:
        full = self.full_name(name)
        return self._store._register(full, self._store._init(init, dims), trainable=True)

    def zeros(self, name: str, dims: Dims) -> torch.Tensor:
        return self.var(name, dims, Const(0.0))

    def ones(self, name: str, dims: Dims) -> torch.Tensor:
        return self.var(name, dims, Const(1.0))

    def randn_standard(self, name: str, dims: Dims) -> torch.Tensor:
        return self.var(name, dims, Randn(0.0, 1.0))

    def randn(self, name: str, dims: Dims, mean: float, stdev: float) -> torch.Tensor:
        return self.var(name, dims, Randn(mean, stdev))

    def uniform(self, name: str, dims: Dims, lo: float, up: float) -> torch.Tensor:
        return self.var(name, dims, Uniform(lo, up))

    def kaiming_uniform(self, name: str, dims: Dims) -> torch.Tensor:
        return self.var(name, dims, KaimingUniform())

    def var_copy(self, name: str, tensor: torch.Tensor) -> torch.Tensor:
        """Register a trainable variable initialized with the values of ``tensor``."""

        value = self.zeros(name, tuple(tensor.shape))
        with torch.no_grad():
            value.copy_(tensor)
        return value


class Entry:
    """
    A single name under a :class:`Path`, for get-or-create registration.

    ``or_*`` methods return the registered tensor when the name already exists
    (whatever its shape) and otherwise register a new one under exactly that
    name.
    """

    def __init__(self, path: Path, name: str):
        self._path = path
        self._name = path.full_name(name)

    @property
    def name(self) -> str:
        return self._name

    def _or_add(self, init: Init, dims: Dims, trainable: bool) -> torch.Tensor:
        store = self._path.store
        return store._get_or_register(self._name, lambda: store._init(init, dims), trainable)

    def or_var(self, dims: Dims, init: Init) -> torch.Tensor:
        return self._or_add(init, dims, trainable=True)

    def or_zeros(self, dims: Dims) -> torch.Tensor:
        return self._or_add(Const(0.0), dims, trainable=True)

    def or_ones(self, dims: Dims) -> torch.Tensor:
        return self._or_add(Const(1.0), dims, trainable=True)

    def or_zeros_no_train(self, dims: Dims) -> torch.Tensor:
        return self._or_add(Const(0.0), dims, trainable=False)

    def or_ones_no_train(self, dims: Dims) -> torch.Tensor:
        return self._or_add(Const(1.0), dims, trainable=False)

    def or_randn_standard(self, dims: Dims) -> torch.Tensor:
        return self._or_add(Randn(0.0, 1.0), dims, trainable=True)

    def or_randn(self, dims: Dims, mean: float, stdev: float) -> torch.Tensor:
        return self._or_add(Randn(mean, stdev), dims, trainable=True)

    def or_uniform(self, dims: Dims, lo: float, up: float) -> torch.Tensor:
        return self._or_add(Uniform(lo, up), dims, trainable=True)

    def or_kaiming_uniform(self, dims: Dims) -> torch.Tensor:
        return self._or_add(KaimingUniform(), dims, trainable=True)

    def or_var_copy(self, tensor: torch.Tensor) -> torch.Tensor:
        store = self._path.store

        def _factory() -> torch.Tensor:
            value = store._init(Const(0.0), tuple(tensor.shape))
            value.copy_(tensor.detach())
            return value

        return store._get_or_register(self._name, _factory, trainable=True)

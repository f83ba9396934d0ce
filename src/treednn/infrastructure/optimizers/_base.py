"""
Shared optimizer machinery.

Every optimizer in this package updates a `ParameterTree` in place from a
structurally congruent gradient tree. The base class owns the parts common
to all update rules:

- hyperparameter validation helpers (`HyperparameterError` on bad ranges)
- the step counter and the decayed learning rate
  ``lr_t = learning_rate / (1 + decay * step)`` (step counted from 1)
- per-parameter state trees (velocity, moments), allocated all-zero from
  the model tree on first use and checked for congruence on every update
- the `OptimizerKind` registry used by `build_optimizer`

`LeafwiseOptimizer` adds the lock-step walk over model, gradient and state
leaves. Its subclasses declare the names of their state trees and implement
`_update_leaf`, which mutates one parameter leaf and its state leaves.
Optimizers that move whole trees (`RiemannSGD`) implement `update` directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

import numpy as np

from ...domain._errors import HyperparameterError
from ...domain._optimizers import IOptimizer, OptimizerKind
from ...domain._parameter_tree import Address
from .._parameter_tree import ParameterTree


def _non_negative(name: str, value: Any) -> float:
    value = float(value)
    if not value >= 0.0:
        raise HyperparameterError(name, value, "must be non-negative")
    return value


def _unit_interval(name: str, value: Any) -> float:
    value = float(value)
    if not 0.0 <= value <= 1.0:
        raise HyperparameterError(name, value, "must be in [0, 1]")
    return value


class Optimizer(IOptimizer, ABC):
    """
    Base class for tree-structured optimizers.

    Parameters
    ----------
    learning_rate : float
        Base step size. Must be non-negative.
    decay : float
        Learning-rate decay. Must be non-negative.
    parameters : ParameterTree, optional
        When given, optimizer state is allocated immediately for this tree;
        otherwise it is allocated on the first `update`.

    Notes
    -----
    - `update` validates congruence of the gradient (and of existing state)
      before touching any leaf, so a failed update leaves the model and the
      step counter unchanged.
    """

    kind: ClassVar[OptimizerKind]
    state_names: ClassVar[Tuple[str, ...]] = ()

    def __init__(
        self,
        learning_rate: float,
        decay: float = 0.0,
        parameters: Optional[ParameterTree] = None,
    ) -> None:
        self.learning_rate = _non_negative("learning_rate", learning_rate)
        self.decay = _non_negative("decay", decay)
        self._step = 0
        self._state: Dict[str, ParameterTree] = {}
        if parameters is not None:
            self._ensure_state(parameters)

    @property
    def step(self) -> int:
        """Number of updates applied so far."""
        return self._step

    @property
    def state(self) -> Mapping[str, ParameterTree]:
        """Read-only view of the state trees, keyed by state name."""
        return MappingProxyType(self._state)

    def learning_rate_at(self, step: int) -> float:
        """Return the decayed learning rate for the given (1-based) step."""
        return self.learning_rate / (1.0 + self.decay * step)

    def _ensure_state(self, model: ParameterTree) -> None:
        if not self._state:
            self._state = {name: model.zeros_like() for name in self.state_names}
            return
        for name, tree in self._state.items():
            model.check_congruent(tree, where=f"{type(self).__name__} state {name!r}")

    @abstractmethod
    def update(self, model: ParameterTree, gradient: ParameterTree) -> None:
        """
        Apply one optimization step to `model` in place.

        Raises
        ------
        StructuralMismatchError
            If `gradient` or the optimizer state is not congruent to `model`.
        """
        ...

    def reset(self) -> None:
        """Drop all state and reset the step counter."""
        self._state = {}
        self._step = 0

    def get_config(self) -> Dict[str, Any]:
        return {"learning_rate": self.learning_rate, "decay": self.decay}

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "Optimizer":
        """Construct an optimizer from a `get_config` dictionary."""
        return cls(**dict(cfg))

    def __repr__(self) -> str:
        cfg = ", ".join(f"{k}={v!r}" for k, v in self.get_config().items())
        return f"{type(self).__name__}({cfg})"


class LeafwiseOptimizer(Optimizer):
    """
    Optimizer whose update rule acts on each leaf independently.

    `update` walks the model, gradient and state trees in lock step and
    calls `_update_leaf` once per address. Subclasses declare
    `state_names` and implement `_update_leaf`.
    """

    @abstractmethod
    def _update_leaf(
        self,
        address: Address,
        param: np.ndarray,
        grad: np.ndarray,
        state: Dict[str, np.ndarray],
        lr_t: float,
    ) -> None:
        """
        Update one parameter leaf (and its state leaves) in place.

        Parameters
        ----------
        address : Address
            Address of the leaf in the model tree.
        param : np.ndarray
            Live parameter leaf.
        grad : np.ndarray
            Gradient leaf at the same address.
        state : Dict[str, np.ndarray]
            Live state leaves at the same address, keyed by state name.
        lr_t : float
            Decayed learning rate for this step.
        """
        ...

    def update(self, model: ParameterTree, gradient: ParameterTree) -> None:
        model.check_congruent(gradient, where=f"{type(self).__name__}.update")
        self._ensure_state(model)

        self._step += 1
        lr_t = self.learning_rate_at(self._step)

        names = list(self._state.keys())
        state_iters = [self._state[name].enumerate() for name in names]
        for (address, param), (_, grad), *state_leaves in zip(
            model.enumerate(), gradient.enumerate(), *state_iters
        ):
            state = {name: leaf for name, (_, leaf) in zip(names, state_leaves)}
            self._update_leaf(address, param, grad, state, lr_t)


_OPTIMIZERS: Dict[OptimizerKind, Type[Optimizer]] = {}

O = TypeVar("O", bound=Type[Optimizer])


def register_optimizer(kind: OptimizerKind) -> Callable[[O], O]:
    """
    Decorator registering an optimizer class under its `OptimizerKind`.

    Raises
    ------
    ValueError
        If the kind is already registered.
    """
    kind = OptimizerKind(kind)

    def decorator(cls: O) -> O:
        if kind in _OPTIMIZERS:
            raise ValueError(f"Optimizer already registered: {kind.value!r}")
        cls.kind = kind
        _OPTIMIZERS[kind] = cls
        return cls

    return decorator


def build_optimizer(kind: Union[str, OptimizerKind], **hyperparameters: Any) -> Optimizer:
    """
    Construct an optimizer from its kind tag.

    Parameters
    ----------
    kind : str or OptimizerKind
        One of "sgd", "rmsprop", "adam", "riemann_sgd".
    **hyperparameters
        Constructor keyword arguments for the selected optimizer.

    Raises
    ------
    ValueError
        If `kind` is not a supported optimizer.
    HyperparameterError
        If a hyperparameter is out of range.
    """
    try:
        tag = OptimizerKind(kind)
    except ValueError:
        available = ", ".join(k.value for k in OptimizerKind)
        raise ValueError(
            f"Unsupported optimizer: {kind!r}. Available: {available}"
        ) from None
    return _OPTIMIZERS[tag](**hyperparameters)

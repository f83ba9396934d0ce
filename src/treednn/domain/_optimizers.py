"""
Domain-level optimizer contracts for treednn.

This module defines the `IOptimizer` protocol and the closed set of optimizer
kinds. The set of update rules is fixed and known in advance, so optimizers
are identified by an `OptimizerKind` tag and built through a factory that
dispatches on it.

Notes
-----
- Domain contracts are backend-agnostic and must not depend on NumPy or
  infrastructure implementations.
- Optimizers receive the gradient tree explicitly. How it was computed is
  outside the scope of this protocol.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Protocol, runtime_checkable

from ._parameter_tree import IParameterTree


class OptimizerKind(str, Enum):
    """Tag identifying one of the supported update rules."""

    SGD = "sgd"
    RMSPROP = "rmsprop"
    ADAM = "adam"
    RIEMANN_SGD = "riemann_sgd"


@runtime_checkable
class IOptimizer(Protocol):
    """
    Optimizer interface contract.

    An optimizer owns per-parameter state keyed by parameter address and
    updates a parameter tree in place from a congruent gradient tree.

    Required members
    ----------------
    - `update(model, gradient)` applies one optimization step.
    - `step` counts the updates applied so far.
    - `kind` identifies the update rule.
    """

    kind: OptimizerKind

    @property
    def step(self) -> int:
        """Number of `update` calls applied so far."""
        ...

    def update(self, model: IParameterTree, gradient: IParameterTree) -> None:
        """
        Apply one optimization step to `model` in place.

        Implementations must visit every leaf exactly once and must reject a
        `gradient` that is not structurally congruent to `model`.
        """
        ...

    def get_config(self) -> Dict[str, Any]:
        """Return the optimizer hyperparameters."""
        ...

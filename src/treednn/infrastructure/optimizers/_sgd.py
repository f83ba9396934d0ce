"""
Stochastic Gradient Descent with optional (Nesterov) momentum.

Update rule, per leaf:

    velocity = momentum * velocity - lr_t * grad
    param   += momentum * velocity - lr_t * grad    (nesterov)
    param   += velocity                              (otherwise)

With ``momentum == 0`` this is plain gradient descent.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import numpy as np

from ...domain._optimizers import OptimizerKind
from ...domain._parameter_tree import Address
from .._parameter_tree import ParameterTree
from ._base import LeafwiseOptimizer, _non_negative, register_optimizer


@register_optimizer(OptimizerKind.SGD)
class SGD(LeafwiseOptimizer):
    """
    SGD optimizer.

    Parameters
    ----------
    learning_rate : float, optional
        Defaults to 0.01.
    momentum : float, optional
        Velocity decay, non-negative. Defaults to 0.
    decay : float, optional
        Learning-rate decay, non-negative. Defaults to 0.
    nesterov : bool, optional
        Use the Nesterov look-ahead step. Defaults to False.
    parameters : ParameterTree, optional
        Allocate the velocity tree eagerly for this model.
    """

    state_names = ("velocity",)

    def __init__(
        self,
        learning_rate: float = 0.01,
        momentum: float = 0.0,
        decay: float = 0.0,
        nesterov: bool = False,
        parameters: Optional[ParameterTree] = None,
    ) -> None:
        self.momentum = _non_negative("momentum", momentum)
        self.nesterov = bool(nesterov)
        super().__init__(learning_rate, decay, parameters)

    def _update_leaf(
        self,
        address: Address,
        param: np.ndarray,
        grad: np.ndarray,
        state: Dict[str, np.ndarray],
        lr_t: float,
    ) -> None:
        velocity = state["velocity"]
        velocity[...] = self.momentum * velocity - lr_t * grad
        if self.nesterov:
            param += self.momentum * velocity - lr_t * grad
        else:
            param += velocity

    def get_config(self) -> Dict[str, Any]:
        return {
            "learning_rate": self.learning_rate,
            "momentum": self.momentum,
            "decay": self.decay,
            "nesterov": self.nesterov,
        }

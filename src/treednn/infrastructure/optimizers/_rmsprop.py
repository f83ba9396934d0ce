"""
RMSProp optimizer.

Update rule, per leaf:

    alpha  = rho * alpha + (1 - rho) * grad ** 2
    param -= lr_t * grad / (sqrt(alpha) + epsilon)
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import numpy as np

from ...domain._optimizers import OptimizerKind
from ...domain._parameter_tree import Address
from .._parameter_tree import ParameterTree
from ._base import LeafwiseOptimizer, _non_negative, _unit_interval, register_optimizer


@register_optimizer(OptimizerKind.RMSPROP)
class RMSProp(LeafwiseOptimizer):
    """
    RMSProp optimizer.

    Parameters
    ----------
    learning_rate : float, optional
        Defaults to 1e-3.
    rho : float, optional
        Decay of the squared-gradient average, in [0, 1]. Defaults to 0.9.
    epsilon : float, optional
        Denominator floor, non-negative. Defaults to 1e-8.
    decay : float, optional
        Learning-rate decay, non-negative. Defaults to 0.
    parameters : ParameterTree, optional
        Allocate the `alpha` tree eagerly for this model.
    """

    state_names = ("alpha",)

    def __init__(
        self,
        learning_rate: float = 1e-3,
        rho: float = 0.9,
        epsilon: float = 1e-8,
        decay: float = 0.0,
        parameters: Optional[ParameterTree] = None,
    ) -> None:
        self.rho = _unit_interval("rho", rho)
        self.epsilon = _non_negative("epsilon", epsilon)
        super().__init__(learning_rate, decay, parameters)

    def _update_leaf(
        self,
        address: Address,
        param: np.ndarray,
        grad: np.ndarray,
        state: Dict[str, np.ndarray],
        lr_t: float,
    ) -> None:
        alpha = state["alpha"]
        alpha[...] = self.rho * alpha + (1.0 - self.rho) * grad * grad
        param -= lr_t * grad / (np.sqrt(alpha) + self.epsilon)

    def get_config(self) -> Dict[str, Any]:
        return {
            "learning_rate": self.learning_rate,
            "rho": self.rho,
            "epsilon": self.epsilon,
            "decay": self.decay,
        }

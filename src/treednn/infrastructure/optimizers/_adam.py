"""
Adam optimizer implementation.

Adam keeps exponentially decaying averages of past gradients (first moment)
and past squared gradients (second moment) and folds both bias corrections
into the step size.

Update rule
-----------
Let ``g`` be the gradient and ``t`` the (1-based) step:

    m = beta1 * m + (1 - beta1) * g
    v = beta2 * v + (1 - beta2) * g ** 2

    step_size = lr_t * sqrt(1 - beta2 ** t) / (1 - beta1 ** t)
    p <- p - step_size * m / (sqrt(v) + epsilon)

On the first step with zero state this moves every element by
``lr * g / (|g| + epsilon * sqrt(1 - beta2))``, i.e. roughly ``lr * sign(g)``.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional

import numpy as np

from ...domain._optimizers import OptimizerKind
from ...domain._parameter_tree import Address
from .._parameter_tree import ParameterTree
from ._base import LeafwiseOptimizer, _non_negative, _unit_interval, register_optimizer


@register_optimizer(OptimizerKind.ADAM)
class Adam(LeafwiseOptimizer):
    """
    Adam optimizer.

    Parameters
    ----------
    learning_rate : float, optional
        Defaults to 1e-3.
    beta1 : float, optional
        First-moment decay in [0, 1]. Defaults to 0.9.
    beta2 : float, optional
        Second-moment decay in [0, 1]. Defaults to 0.999.
    epsilon : float, optional
        Denominator floor, non-negative. Defaults to 1e-8.
    decay : float, optional
        Learning-rate decay, non-negative. Defaults to 0.
    parameters : ParameterTree, optional
        Allocate the moment trees eagerly for this model.

    Notes
    -----
    ``beta1 == 1`` is accepted but makes the bias correction divide by zero;
    the resulting step is not finite.
    """

    state_names = ("first_moments", "second_moments")

    def __init__(
        self,
        learning_rate: float = 1e-3,
        beta1: float = 0.9,
        beta2: float = 0.999,
        epsilon: float = 1e-8,
        decay: float = 0.0,
        parameters: Optional[ParameterTree] = None,
    ) -> None:
        self.beta1 = _unit_interval("beta1", beta1)
        self.beta2 = _unit_interval("beta2", beta2)
        self.epsilon = _non_negative("epsilon", epsilon)
        super().__init__(learning_rate, decay, parameters)

    def step_size_at(self, step: int) -> float:
        """Return the bias-corrected step size for the given (1-based) step."""
        lr_t = self.learning_rate_at(step)
        correction = 1.0 - self.beta1**step
        if correction == 0.0:
            return math.inf
        return lr_t * math.sqrt(1.0 - self.beta2**step) / correction

    def _update_leaf(
        self,
        address: Address,
        param: np.ndarray,
        grad: np.ndarray,
        state: Dict[str, np.ndarray],
        lr_t: float,
    ) -> None:
        m = state["first_moments"]
        v = state["second_moments"]
        m[...] = self.beta1 * m + (1.0 - self.beta1) * grad
        v[...] = self.beta2 * v + (1.0 - self.beta2) * grad * grad
        param -= self.step_size_at(self.step) * m / (np.sqrt(v) + self.epsilon)

    def get_config(self) -> Dict[str, Any]:
        return {
            "learning_rate": self.learning_rate,
            "beta1": self.beta1,
            "beta2": self.beta2,
            "epsilon": self.epsilon,
            "decay": self.decay,
        }

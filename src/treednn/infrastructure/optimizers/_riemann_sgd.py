"""
Riemannian SGD.

Gradient descent on a parameter tree whose leaves may live on a manifold:

    model <- retract(model, -learning_rate * tangent_vector(model, gradient))

Both the projection of the gradient onto the tangent space and the
retraction are delegated to the manifold carried by each (sub)tree, so the
same optimizer works for flat parameters (`EuclideanManifold`, where it
reduces to plain SGD) and constrained ones (`SphereManifold`).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ...domain._optimizers import OptimizerKind
from .._parameter_tree import ParameterTree
from ._base import Optimizer, register_optimizer


@register_optimizer(OptimizerKind.RIEMANN_SGD)
class RiemannSGD(Optimizer):
    """
    Riemannian SGD optimizer.

    Parameters
    ----------
    learning_rate : float
        Step size along the tangent direction. Must be non-negative.
    parameters : ParameterTree, optional
        Accepted for interface symmetry; RiemannSGD keeps no state.
    """

    def __init__(
        self,
        learning_rate: float = 0.01,
        parameters: Optional[ParameterTree] = None,
    ) -> None:
        super().__init__(learning_rate, 0.0, parameters)

    def update(self, model: ParameterTree, gradient: ParameterTree) -> None:
        """
        Move `model` along the negative tangent direction of `gradient`.

        Raises
        ------
        StructuralMismatchError
            If `gradient` is not congruent to `model`.
        """
        model.check_congruent(gradient, where="RiemannSGD.update")
        direction = model.tangent_vector(gradient) * -self.learning_rate
        model.assign(model.moved(direction))
        self._step += 1

    def get_config(self) -> Dict[str, Any]:
        return {"learning_rate": self.learning_rate}

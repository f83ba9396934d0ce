"""
Manifold geometries for parameter trees.

A parameter tree delegates "move along a direction" to a manifold object, so
that optimizers such as `RiemannSGD` can update parameters that do not live
in a flat vector space. Two geometries are provided:

- `EuclideanManifold`: the flat default. Tangent vectors are gradients and
  retraction is plain addition.
- `SphereManifold`: each leaf is constrained to the unit sphere (unit
  Frobenius norm). Gradients are projected onto the tangent space and the
  moved point is renormalized.

Both implement the domain `IManifold` protocol and operate leaf by leaf on
NumPy arrays.
"""

from __future__ import annotations

import numpy as np

from ..domain._parameter_tree import IManifold


class EuclideanManifold(IManifold):
    """Flat geometry: `tangent_vector` is identity and `retract` adds."""

    def tangent_vector(self, point: np.ndarray, cotangent: np.ndarray) -> np.ndarray:
        return cotangent

    def retract(self, point: np.ndarray, direction: np.ndarray) -> np.ndarray:
        return point + direction

    def __repr__(self) -> str:
        return "EuclideanManifold()"


class SphereManifold(IManifold):
    """
    Unit-sphere geometry applied independently to every leaf.

    The tangent space at a unit-norm point ``p`` consists of directions
    orthogonal to ``p``; a gradient ``g`` is projected as
    ``g - <g, p> p``. Retraction moves in the ambient space and renormalizes:
    ``(p + v) / ||p + v||``.

    Parameters
    ----------
    epsilon : float, optional
        Lower bound on the norm used when renormalizing. Defaults to 1e-12.
    """

    def __init__(self, epsilon: float = 1e-12) -> None:
        self.epsilon = float(epsilon)

    def project(self, point: np.ndarray) -> np.ndarray:
        """Return `point` scaled to unit norm."""
        norm = float(np.sqrt(np.sum(point * point)))
        return point / max(norm, self.epsilon)

    def tangent_vector(self, point: np.ndarray, cotangent: np.ndarray) -> np.ndarray:
        return cotangent - np.sum(cotangent * point) * point

    def retract(self, point: np.ndarray, direction: np.ndarray) -> np.ndarray:
        return self.project(point + direction)

    def __repr__(self) -> str:
        return f"SphereManifold(epsilon={self.epsilon!r})"

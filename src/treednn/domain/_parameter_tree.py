"""
Parameter tree and manifold interface definitions.

A parameter tree is the nested, ordered structure holding every learnable
tensor of a model. Optimizers only ever see this interface: they enumerate
leaves by address and update them in place, without knowing which layers
compose the model.

An *address* is the key path from the root of a tree to one leaf. Addresses
are stable across structurally congruent trees, so an address taken from a
model's tree also locates the matching leaf in its gradient tree and in any
optimizer state tree.
"""

from __future__ import annotations

from typing import Any, Iterator, Protocol, Tuple, runtime_checkable

Address = Tuple[str, ...]
"""Key path from the root of a parameter tree to one leaf."""


@runtime_checkable
class IParameterTree(Protocol):
    """
    Domain-level parameter tree interface.

    Notes
    -----
    - `enumerate` must produce leaves in a fixed, deterministic order that is
      identical for every congruent tree. Optimizers rely on this to zip the
      model, gradient and state trees leaf by leaf.
    - Leaves yielded by `enumerate` are live: mutating them mutates the tree.
    """

    def enumerate(self) -> Iterator[Tuple[Address, Any]]:
        """
        Yield every `(address, leaf)` pair in declared order.

        Returns
        -------
        Iterator[Tuple[Address, Any]]
            Address and mutable leaf tensor for each leaf.
        """
        ...

    def zeros_like(self) -> "IParameterTree":
        """
        Return an all-zero tree congruent to this one.

        Returns
        -------
        IParameterTree
            The additive identity for this tree's shape.
        """
        ...

    def is_congruent(self, other: "IParameterTree") -> bool:
        """
        Return whether `other` has the same addresses and leaf shapes.

        Parameters
        ----------
        other : IParameterTree
            Tree to compare against.

        Returns
        -------
        bool
            True if both trees are structurally congruent.
        """
        ...


@runtime_checkable
class IManifold(Protocol):
    """
    Geometry used to move a parameter tree along a direction.

    A manifold turns a cotangent (gradient) into a tangent direction at a
    point, and retracts the point along a tangent direction back onto the
    manifold. For flat parameter spaces both operations are trivial.
    """

    def tangent_vector(self, point: Any, cotangent: Any) -> Any:
        """
        Map a gradient at `point` to a tangent direction.

        Parameters
        ----------
        point : Any
            Leaf tensor the gradient was taken at.
        cotangent : Any
            Gradient leaf for `point`.

        Returns
        -------
        Any
            Tangent direction with the shape of `point`.
        """
        ...

    def retract(self, point: Any, direction: Any) -> Any:
        """
        Move `point` along the tangent `direction`.

        Parameters
        ----------
        point : Any
            Leaf tensor to move.
        direction : Any
            Tangent direction with the shape of `point`.

        Returns
        -------
        Any
            The moved leaf, lying on the manifold.
        """
        ...

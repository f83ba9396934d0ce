"""
Concrete parameter tree implementation.

This module defines `ParameterTree`, the infrastructure implementation of the
domain `IParameterTree` contract. A `ParameterTree` is an ordered, nested
mapping from names to either NumPy arrays (leaves) or further
`ParameterTree`s (subtrees).

Design notes
------------
- Insertion order is the declared order of the owning layer. Enumeration is
  depth-first in that order, so congruent trees always enumerate their leaves
  identically. Optimizers depend on this to zip the model, gradient and
  optimizer-state trees leaf by leaf.
- Leaves are stored without copying. A tree built by
  `Layer.parameter_tree()` therefore shares its arrays with the layer, and an
  in-place update of a leaf is an update of the layer.
- Arithmetic (`+`, `-`, scalar `*`) always returns a new tree with fresh
  leaves and requires structural congruence.
- Each (sub)tree carries a manifold used by `tangent_vector` and `moved`;
  the default is flat Euclidean space.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import (
    Any,
    Callable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

import numpy as np

from ..domain._errors import StructuralMismatchError
from ..domain._parameter_tree import Address, IManifold, IParameterTree
from ._manifolds import EuclideanManifold

Signature = List[Tuple[Address, Tuple[int, ...]]]


def _as_address(key: Union[str, Address]) -> Address:
    if isinstance(key, str):
        return (key,)
    return tuple(key)


class ParameterTree(IParameterTree):
    """
    Ordered nested container of parameter arrays.

    Parameters
    ----------
    entries : Mapping or iterable of (name, value) pairs, optional
        Initial children. Values may be NumPy arrays (stored as-is), nested
        mappings (converted to subtrees), `ParameterTree`s, or scalars
        (converted to 0-d float32 arrays).
    manifold : IManifold, optional
        Geometry of this tree's own leaves. Defaults to `EuclideanManifold`.

    Notes
    -----
    - `len(tree)` is the number of leaves, not the number of direct children.
    - Subtrees without leaves (e.g. for parameterless layers) are allowed and
      do not affect congruence.
    """

    def __init__(
        self,
        entries: Optional[Union[Mapping[str, Any], Any]] = None,
        *,
        manifold: Optional[IManifold] = None,
    ) -> None:
        self._children: "OrderedDict[str, Union[np.ndarray, ParameterTree]]" = (
            OrderedDict()
        )
        self.manifold: IManifold = (
            manifold if manifold is not None else EuclideanManifold()
        )
        if entries is not None:
            items = entries.items() if isinstance(entries, Mapping) else entries
            for name, value in items:
                self[name] = value

    # ------------------------------------------------------------------
    # Construction and access
    # ------------------------------------------------------------------
    def __setitem__(self, name: str, value: Any) -> None:
        """
        Add or replace a direct child.

        Parameters
        ----------
        name : str
            Child name. Must be a non-empty string.
        value : Any
            Leaf array, subtree, mapping, or scalar.
        """
        if not isinstance(name, str) or not name:
            raise TypeError(f"child names must be non-empty strings, got {name!r}")
        if isinstance(value, ParameterTree):
            self._children[name] = value
        elif isinstance(value, Mapping):
            self._children[name] = ParameterTree(value)
        elif isinstance(value, np.ndarray):
            self._children[name] = value
        else:
            self._children[name] = np.asarray(value, dtype=np.float32)

    def __getitem__(
        self, key: Union[str, Address]
    ) -> Union[np.ndarray, "ParameterTree"]:
        """
        Return the child or leaf at `key`.

        Parameters
        ----------
        key : str or Address
            A direct child name or a full key path.

        Raises
        ------
        KeyError
            If the path does not exist.
        """
        node: Union[np.ndarray, ParameterTree] = self
        for part in _as_address(key):
            if not isinstance(node, ParameterTree) or part not in node._children:
                raise KeyError(f"no entry at address {_as_address(key)!r}")
            node = node._children[part]
        return node

    def __contains__(self, key: Union[str, Address]) -> bool:
        try:
            self[key]
        except KeyError:
            return False
        return True

    def keys(self) -> List[str]:
        """Return the names of direct children in declared order."""
        return list(self._children.keys())

    def items(self) -> List[Tuple[str, Union[np.ndarray, "ParameterTree"]]]:
        """Return `(name, child)` pairs for direct children in declared order."""
        return list(self._children.items())

    def get(self, address: Union[str, Address]) -> np.ndarray:
        """
        Return the leaf array at `address`.

        Raises
        ------
        KeyError
            If the address does not name a leaf.
        """
        node = self[address]
        if isinstance(node, ParameterTree):
            raise KeyError(f"address {_as_address(address)!r} names a subtree")
        return node

    def set(self, address: Union[str, Address], value: Any) -> None:
        """
        Overwrite the values of the leaf at `address` in place.

        The leaf array object is kept, so any layer sharing it observes the
        new values.

        Raises
        ------
        KeyError
            If the address does not name a leaf.
        ValueError
            If `value` cannot be broadcast to the leaf shape.
        """
        leaf = self.get(address)
        value = np.asarray(value)
        if value.shape != leaf.shape:
            raise ValueError(
                f"shape mismatch at {_as_address(address)!r}: "
                f"leaf {leaf.shape}, value {value.shape}"
            )
        leaf[...] = value

    # ------------------------------------------------------------------
    # Enumeration and addressing
    # ------------------------------------------------------------------
    def enumerate(self, prefix: Address = ()) -> Iterator[Tuple[Address, np.ndarray]]:
        """
        Yield every `(address, leaf)` pair, depth-first in declared order.

        Parameters
        ----------
        prefix : Address, optional
            Address of this tree inside an enclosing tree (used for recursion).

        Yields
        ------
        Tuple[Address, np.ndarray]
            Address and live leaf array.
        """
        for name, child in self._children.items():
            address = prefix + (name,)
            if isinstance(child, ParameterTree):
                yield from child.enumerate(address)
            else:
                yield address, child

    def addresses(self) -> List[Address]:
        """Return all leaf addresses in enumeration order."""
        return [address for address, _ in self.enumerate()]

    def leaves(self) -> List[np.ndarray]:
        """Return all leaf arrays in enumeration order."""
        return [leaf for _, leaf in self.enumerate()]

    def signature(self) -> Signature:
        """Return `[(address, shape), ...]` in enumeration order."""
        return [(address, tuple(leaf.shape)) for address, leaf in self.enumerate()]

    def __len__(self) -> int:
        return sum(1 for _ in self.enumerate())

    def num_scalars(self) -> int:
        """Return the total number of scalar values across all leaves."""
        return int(sum(leaf.size for leaf in self.leaves()))

    # ------------------------------------------------------------------
    # Congruence
    # ------------------------------------------------------------------
    def is_congruent(self, other: "ParameterTree") -> bool:
        """Return whether `other` has identical addresses and leaf shapes."""
        return isinstance(other, ParameterTree) and self.signature() == other.signature()

    def check_congruent(self, other: "ParameterTree", *, where: str = "") -> None:
        """
        Raise if `other` is not structurally congruent to this tree.

        Raises
        ------
        StructuralMismatchError
            On the first differing `(address, shape)` entry.
        """
        if not isinstance(other, ParameterTree):
            raise StructuralMismatchError(
                "ParameterTree", type(other).__name__, where=where
            )
        mine = self.signature()
        theirs = other.signature()
        if mine == theirs:
            return
        for expected, actual in zip(mine, theirs):
            if expected != actual:
                raise StructuralMismatchError(expected, actual, where=where)
        if len(mine) > len(theirs):
            raise StructuralMismatchError(mine[len(theirs)], None, where=where)
        raise StructuralMismatchError(None, theirs[len(mine)], where=where)

    # ------------------------------------------------------------------
    # Leaf-wise transforms
    # ------------------------------------------------------------------
    def _map_nodes(
        self,
        fn: Callable[..., np.ndarray],
        others: List[Optional["ParameterTree"]],
        use_manifold: bool,
    ) -> "ParameterTree":
        out = ParameterTree(manifold=self.manifold)
        for name, child in self._children.items():
            counterparts = [
                None if other is None else other._children.get(name)
                for other in others
            ]
            if isinstance(child, ParameterTree):
                out._children[name] = child._map_nodes(fn, counterparts, use_manifold)
            elif use_manifold:
                out._children[name] = fn(self.manifold, child, *counterparts)
            else:
                out._children[name] = fn(child, *counterparts)
        return out

    def map(self, fn: Callable[..., np.ndarray], *others: "ParameterTree") -> "ParameterTree":
        """
        Apply `fn` leaf-wise over this tree and congruent `others`.

        Parameters
        ----------
        fn : Callable[..., np.ndarray]
            Called as `fn(leaf, *other_leaves)` for every address.
        *others : ParameterTree
            Trees congruent to this one.

        Returns
        -------
        ParameterTree
            New tree with this tree's structure and manifolds.

        Raises
        ------
        StructuralMismatchError
            If any of `others` is not congruent.
        """
        for other in others:
            self.check_congruent(other, where="map")
        return self._map_nodes(fn, list(others), use_manifold=False)

    def zeros_like(self) -> "ParameterTree":
        """Return an all-zero tree congruent to this one."""
        return self._map_nodes(np.zeros_like, [], use_manifold=False)

    def copy(self) -> "ParameterTree":
        """Return a congruent tree holding copies of every leaf."""
        return self._map_nodes(np.array, [], use_manifold=False)

    def assign(self, other: "ParameterTree") -> None:
        """
        Copy the values of a congruent tree into this tree's leaves in place.

        Raises
        ------
        StructuralMismatchError
            If `other` is not congruent.
        """
        self.check_congruent(other, where="assign")
        for (_, leaf), (_, value) in zip(self.enumerate(), other.enumerate()):
            leaf[...] = value

    def allclose(self, other: "ParameterTree", rtol: float = 1e-5, atol: float = 1e-8) -> bool:
        """Return whether `other` is congruent and numerically close leaf-wise."""
        if not self.is_congruent(other):
            return False
        return all(
            np.allclose(a, b, rtol=rtol, atol=atol)
            for a, b in zip(self.leaves(), other.leaves())
        )

    # ------------------------------------------------------------------
    # Manifold operations
    # ------------------------------------------------------------------
    def tangent_vector(self, gradient: "ParameterTree") -> "ParameterTree":
        """
        Map a congruent gradient tree to tangent directions at this point.

        Each subtree uses its own manifold.
        """
        self.check_congruent(gradient, where="tangent_vector")
        return self._map_nodes(
            lambda m, p, g: m.tangent_vector(p, g), [gradient], use_manifold=True
        )

    def moved(self, direction: "ParameterTree") -> "ParameterTree":
        """
        Return this point retracted along a congruent tangent `direction`.

        Each subtree uses its own manifold. The result is a new tree; use
        `assign` to write it back in place.
        """
        self.check_congruent(direction, where="moved")
        return self._map_nodes(
            lambda m, p, d: m.retract(p, d), [direction], use_manifold=True
        )

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------
    def __add__(self, other: "ParameterTree") -> "ParameterTree":
        if not isinstance(other, ParameterTree):
            return NotImplemented
        return self.map(lambda a, b: a + b, other)

    def __sub__(self, other: "ParameterTree") -> "ParameterTree":
        if not isinstance(other, ParameterTree):
            return NotImplemented
        return self.map(lambda a, b: a - b, other)

    def __neg__(self) -> "ParameterTree":
        return self._map_nodes(np.negative, [], use_manifold=False)

    def __mul__(self, k: float) -> "ParameterTree":
        if isinstance(k, ParameterTree):
            return NotImplemented
        return self._map_nodes(lambda a: a * k, [], use_manifold=False)

    __rmul__ = __mul__

    def __truediv__(self, k: float) -> "ParameterTree":
        if isinstance(k, ParameterTree):
            return NotImplemented
        return self._map_nodes(lambda a: a / k, [], use_manifold=False)

    def __repr__(self) -> str:
        parts = []
        for name, child in self._children.items():
            if isinstance(child, ParameterTree):
                parts.append(f"{name}={child!r}")
            else:
                parts.append(f"{name}={tuple(child.shape)}")
        return f"ParameterTree({', '.join(parts)})"


def zeros_like(tree: ParameterTree) -> ParameterTree:
    """Return an all-zero tree congruent to `tree`."""
    return tree.zeros_like()


def add(a: ParameterTree, b: ParameterTree) -> ParameterTree:
    """Return the leaf-wise sum of two congruent trees."""
    return a.map(lambda x, y: x + y, b)


def sub(a: ParameterTree, b: ParameterTree) -> ParameterTree:
    """Return the leaf-wise difference of two congruent trees."""
    return a.map(lambda x, y: x - y, b)


def scale(k: float, a: ParameterTree) -> ParameterTree:
    """Return `a` with every leaf multiplied by the scalar `k`."""
    return a * k

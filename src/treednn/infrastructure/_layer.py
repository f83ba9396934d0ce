"""
Infrastructure layer base class.

This module provides the concrete `Layer` implementation of the domain-level
`ILayer` protocol. It implements the conveniences shared by every layer:

- parameter registration (learnable arrays, updated only by optimizers)
- buffer registration (non-learnable arrays such as running statistics)
- child layer registration
- the parameter tree visitor (`parameter_tree`) and its inverse
  (`load_parameter_tree`)
- `__call__` forwarding to `forward`

Subclasses implement `value_with_pullback`; `forward` is derived from it.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

import numpy as np

from ..domain._layer import ILayer, Pullback
from ..domain._parameter_tree import IManifold
from ..domain._training_context import TrainingContext
from ._parameter_tree import ParameterTree


class Layer(ILayer):
    """
    Infrastructure base class for layers.

    Subclasses typically:
    - create arrays and register them with `register_parameter` (learnable)
      or `register_buffer` (state),
    - assign child layers as attributes (auto-registered),
    - implement `value_with_pullback`.

    Attributes
    ----------
    _parameters : OrderedDict[str, np.ndarray]
        Learnable arrays of this layer, in declared order.
    _buffers : OrderedDict[str, np.ndarray]
        Non-learnable arrays of this layer.
    _layers : OrderedDict[str, Layer]
        Child layers, in declared order.
    manifold : Optional[IManifold]
        Geometry of this layer's own parameters. None means Euclidean.

    Notes
    -----
    - The parameter tree lists this layer's own parameters first, then one
      subtree per child layer, each in declared order. Children without
      parameters still get an (empty) subtree so addresses stay stable.
    - Reassigning a registered parameter attribute (``self.weight = arr``)
      updates the registry as well.
    """

    manifold: Optional[IManifold] = None

    def __init__(self) -> None:
        super().__setattr__("_parameters", OrderedDict())
        super().__setattr__("_buffers", OrderedDict())
        super().__setattr__("_layers", OrderedDict())

    def __setattr__(self, name: str, value: Any) -> None:
        """
        Intercept attribute assignment to auto-register child layers and to
        keep registered parameters and buffers in sync.
        """
        if name in {"_parameters", "_buffers", "_layers"}:
            super().__setattr__(name, value)
            return

        registries = (
            self.__dict__.get("_parameters"),
            self.__dict__.get("_buffers"),
            self.__dict__.get("_layers"),
        )
        if registries[0] is None:
            raise AttributeError(
                f"{type(self).__name__}.__init__ must call Layer.__init__() "
                "before assigning attributes"
            )
        params, buffers, layers = registries

        if value is None:
            params.pop(name, None)
            buffers.pop(name, None)
            layers.pop(name, None)
        elif isinstance(value, Layer):
            layers[name] = value
        elif name in params:
            params[name] = self._as_array(name, value)
            value = params[name]
        elif name in buffers:
            buffers[name] = self._as_array(name, value)
            value = buffers[name]

        super().__setattr__(name, value)

    @staticmethod
    def _as_array(name: str, value: Any) -> np.ndarray:
        if isinstance(value, np.ndarray):
            return value
        try:
            return np.asarray(value, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise TypeError(f"{name} must be array-like, got {type(value).__name__}") from e

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def register_parameter(self, name: str, value: Optional[Any]) -> None:
        """
        Register a learnable array with this layer.

        Parameters
        ----------
        name : str
            Name under which the parameter is stored (e.g., "weight").
        value : Optional[array-like]
            Initial value. If None, registration is skipped.
        """
        if value is None:
            return
        arr = self._as_array(name, value)
        self._buffers.pop(name, None)
        self._parameters[name] = arr
        super().__setattr__(name, arr)

    def register_buffer(self, name: str, value: Optional[Any]) -> None:
        """
        Register a non-learnable array (state) with this layer.

        Buffers are not part of the parameter tree and are never touched by
        optimizers.
        """
        if value is None:
            return
        arr = self._as_array(name, value)
        self._parameters.pop(name, None)
        self._buffers[name] = arr
        super().__setattr__(name, arr)

    def register_layer(self, name: str, layer: Optional["Layer"]) -> None:
        """
        Register a child layer under `name`.

        This also sets the attribute so `getattr(self, name)` works, which
        allows names such as "0" that are not valid identifiers.

        Raises
        ------
        TypeError
            If `layer` is not a `Layer`.
        ValueError
            If `name` is an attribute of the class (e.g. "forward"), which
            the child would shadow.
        """
        if layer is None:
            return
        if not isinstance(layer, Layer):
            raise TypeError(f"expected a Layer, got {type(layer).__name__}")
        if hasattr(type(self), name):
            raise ValueError(
                f"child name {name!r} shadows an attribute of {type(self).__name__}"
            )
        self._layers[name] = layer
        super().__setattr__(name, layer)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------
    def children(self) -> Iterator[Tuple[str, "Layer"]]:
        """Yield `(name, child)` pairs in declared order."""
        yield from self._layers.items()

    def named_parameters(self, prefix: str = "") -> Iterator[Tuple[str, np.ndarray]]:
        """
        Yield `(dotted_name, array)` for every parameter (recursive).

        Parameters
        ----------
        prefix : str
            Prefix prepended to names (used for recursion).
        """
        base = prefix + "." if prefix else ""
        for name, p in self._parameters.items():
            yield f"{base}{name}", p
        for child_name, child in self._layers.items():
            yield from child.named_parameters(f"{base}{child_name}")

    def parameters(self) -> Iterator[np.ndarray]:
        """Yield every parameter array (recursive) in tree order."""
        for _, p in self.named_parameters():
            yield p

    def named_buffers(self, prefix: str = "") -> Iterator[Tuple[str, np.ndarray]]:
        """Yield `(dotted_name, array)` for every buffer (recursive)."""
        base = prefix + "." if prefix else ""
        for name, b in self._buffers.items():
            yield f"{base}{name}", b
        for child_name, child in self._layers.items():
            yield from child.named_buffers(f"{base}{child_name}")

    def parameter_tree(self) -> ParameterTree:
        """
        Return this layer's learnable parameters as a `ParameterTree`.

        The leaves are the layer's own arrays, not copies: an in-place update
        of a leaf is an update of the layer.
        """
        tree = ParameterTree(manifold=self.manifold)
        for name, p in self._parameters.items():
            tree[name] = p
        for child_name, child in self._layers.items():
            tree[child_name] = child.parameter_tree()
        return tree

    def load_parameter_tree(self, tree: ParameterTree) -> None:
        """
        Copy the values of a congruent tree into this layer's parameters.

        Raises
        ------
        StructuralMismatchError
            If `tree` is not congruent to `parameter_tree()`.
        """
        self.parameter_tree().assign(tree)

    def gradient_tree(
        self,
        own: Optional[Mapping[str, np.ndarray]] = None,
        children: Optional[Mapping[str, ParameterTree]] = None,
    ) -> ParameterTree:
        """
        Assemble a gradient tree congruent to `parameter_tree()`.

        Parameters
        ----------
        own : Mapping[str, np.ndarray], optional
            Gradients of this layer's own parameters, by name.
        children : Mapping[str, ParameterTree], optional
            Gradient subtrees of child layers, by child name. Missing
            children contribute zero subtrees.

        Raises
        ------
        KeyError
            If a gradient for one of this layer's own parameters is missing.
        """
        own = own or {}
        children = children or {}
        tree = ParameterTree()
        for name, p in self._parameters.items():
            if name not in own:
                raise KeyError(f"{type(self).__name__}: missing gradient for {name!r}")
            g = np.asarray(own[name])
            if g.shape != p.shape:
                raise ValueError(
                    f"{type(self).__name__}: gradient for {name!r} has shape "
                    f"{g.shape}, parameter has {p.shape}"
                )
            tree[name] = g
        for child_name, child in self._layers.items():
            sub = children.get(child_name)
            tree[child_name] = sub if sub is not None else child.parameter_tree().zeros_like()
        return tree

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------
    def value_with_pullback(
        self, x: Any, context: Optional[TrainingContext] = None
    ) -> Tuple[Any, Pullback]:
        """
        Compute the output and its pullback. Subclasses must implement this.
        """
        raise NotImplementedError

    def forward(self, x: Any, context: Optional[TrainingContext] = None) -> Any:
        """Compute the output only."""
        y, _ = self.value_with_pullback(x, context)
        return y

    def __call__(self, x: Any, context: Optional[TrainingContext] = None) -> Any:
        return self.forward(x, context)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def get_config(self) -> Dict[str, Any]:
        """
        Return the constructor hyperparameters of this layer.

        Subclasses with hyperparameters override this; the default is an
        empty configuration.
        """
        return {}

    def __repr__(self) -> str:
        cfg = ", ".join(f"{k}={v!r}" for k, v in self.get_config().items())
        return f"{type(self).__name__}({cfg})"

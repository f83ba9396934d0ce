"""
Sequential container model.

`Sequential` composes child layers into a single `Model` applied in order:

    y = L_n(...L_2(L_1(x)))

Children are registered under ``"0"``, ``"1"``, ... (or an explicit name), so
the parameter tree of a `Sequential` holds one subtree per child in
execution order, e.g. ``("0", "weight")``.

The pullback runs the children's pullbacks in reverse order, threading the
input gradient of each child into the previous one and collecting each
child's gradient subtree.
"""

from typing import Any, Dict, Iterator, Optional, Tuple

import numpy as np

from ...domain._layer import Pullback
from ...domain._training_context import TrainingContext, resolve_context
from .._layer import Layer
from ._models import Model


class Sequential(Model):
    """
    Sequential container model.

    Parameters
    ----------
    *layers : Layer
        Child layers, appended in order.
    """

    def __init__(self, *layers: Layer) -> None:
        super().__init__()
        for layer in layers:
            self.add(layer)

    def add(self, layer: Layer, name: Optional[str] = None) -> None:
        """
        Append a layer and register it as a child.

        Parameters
        ----------
        layer : Layer
            The layer to append.
        name : Optional[str], optional
            Explicit child name. Defaults to the insertion index ("0", "1", ...),
            skipping indices already used as explicit names.

        Raises
        ------
        TypeError
            If `layer` is not a `Layer`.
        ValueError
            If the name is already taken.
        """
        if not isinstance(layer, Layer):
            raise TypeError(f"Sequential.add expects a Layer, got: {type(layer)}")
        if name is None:
            index = len(self._layers)
            while str(index) in self._layers:
                index += 1
            layer_name = str(index)
        else:
            layer_name = str(name)
        if layer_name in self._layers:
            raise ValueError(f"Duplicate layer name '{layer_name}' in Sequential.")
        self.register_layer(layer_name, layer)

    def value_with_pullback(
        self, x: Any, context: Optional[TrainingContext] = None
    ) -> Tuple[Any, Pullback]:
        context = resolve_context(context)
        out = np.asarray(x)
        pullbacks = []
        for name, layer in self._layers.items():
            out, pb = layer.value_with_pullback(out, context)
            pullbacks.append((name, pb))

        def pullback(grad_out: Any):
            grad = grad_out
            child_grads: Dict[str, Any] = {}
            for name, pb in reversed(pullbacks):
                child_grads[name], grad = pb(grad)
            return self.gradient_tree(children=child_grads), grad

        return out, pullback

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self._layers.values())

    def __getitem__(self, idx: int) -> Layer:
        return list(self._layers.values())[idx]

    def summary(self) -> str:
        """Return a one-line-per-layer description with parameter counts."""
        lines = []
        total = 0
        for name, layer in self._layers.items():
            count = int(sum(p.size for p in layer.parameters()))
            total += count
            lines.append(f"{name}: {layer!r} params={count}")
        lines.append(f"total params={total}")
        return "\n".join(lines)

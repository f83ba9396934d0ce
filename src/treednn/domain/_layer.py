"""
Layer interface definitions.

This module defines the domain-level interface for neural network layers
using structural subtyping via `typing.Protocol`.

A layer owns a slice of a model's parameter tree and exposes a
differentiable forward transform. Layers compose by nesting: a container
layer's parameter tree holds its children's trees as subtrees, so optimizers
can update any composition without knowing its concrete layers.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, Tuple, runtime_checkable

from ._parameter_tree import IParameterTree
from ._training_context import TrainingContext

Pullback = Callable[[Any], Tuple[IParameterTree, Any]]
"""Maps an output-space gradient to `(parameter-space gradient tree, input gradient)`."""


@runtime_checkable
class ILayer(Protocol):
    """
    Domain-level layer interface.

    Notes
    -----
    - Any object implementing `forward`, `value_with_pullback` and
      `parameter_tree` is considered a valid layer.
    - The gradient tree returned by a pullback must be structurally congruent
      to `parameter_tree()`.
    - Forward passes are pure functions of (parameters, input, context),
      except for the running-statistic updates of batch normalization in
      training mode.
    """

    def forward(self, x: Any, context: Optional[TrainingContext] = None) -> Any:
        """
        Compute the layer output.

        Parameters
        ----------
        x : Any
            Input tensor.
        context : Optional[TrainingContext]
            Mode flag for this call. None selects training mode.

        Returns
        -------
        Any
            Output tensor.
        """
        ...

    def value_with_pullback(
        self, x: Any, context: Optional[TrainingContext] = None
    ) -> Tuple[Any, Pullback]:
        """
        Compute the layer output together with its pullback.

        Parameters
        ----------
        x : Any
            Input tensor.
        context : Optional[TrainingContext]
            Mode flag for this call. None selects training mode.

        Returns
        -------
        Tuple[Any, Pullback]
            The output and a function mapping an output gradient to
            `(gradient_tree, input_gradient)`.
        """
        ...

    def parameter_tree(self) -> IParameterTree:
        """
        Return the layer's learnable parameters as a tree.

        Returns
        -------
        IParameterTree
            Tree whose leaves are the layer's live parameter arrays.
        """
        ...

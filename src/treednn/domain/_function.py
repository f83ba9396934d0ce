"""
Differentiable function interface definitions.

This module defines the abstract base class for differentiable operations.
Concrete subclasses of `Function` implement both the forward computation and
its vector-Jacobian product (backward). Layers and losses compose these
pairs into pullbacks; there is no general graph-tracing engine.
"""

from abc import ABC, abstractmethod
from typing import Any, Tuple


class Function(ABC):
    """
    Abstract base class for differentiable operations.

    A `Function` encapsulates both:
    - the forward computation
    - the backward (gradient) computation

    Subclasses implement both as static methods. Intermediate values needed
    by the backward pass are stored on the per-call `ctx` object during the
    forward pass.

    Notes
    -----
    - Methods are `@staticmethod` so a `Function` class holds no state and
      can be reused across calls.
    - `ctx` is created fresh for every forward call.
    """

    @staticmethod
    @abstractmethod
    def forward(ctx, *inputs: Any) -> Any:
        """
        Perform the forward computation.

        Parameters
        ----------
        ctx : Context
            Per-call context used to save values for the backward pass.
        *inputs : Any
            Input arrays and hyperparameters of the operation.

        Returns
        -------
        Any
            Output array of the operation.
        """
        ...

    @staticmethod
    @abstractmethod
    def backward(ctx, grad_out: Any) -> Tuple[Any, ...]:
        """
        Compute gradients with respect to the differentiable inputs.

        Parameters
        ----------
        ctx : Context
            The context populated during the forward pass.
        grad_out : Any
            Gradient of the loss with respect to the output.

        Returns
        -------
        tuple
            Gradients with respect to each differentiable input, in the order
            documented by the subclass.
        """
        ...

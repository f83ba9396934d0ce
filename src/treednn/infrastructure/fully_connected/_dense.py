"""
Fully connected (dense) layer.

`Dense` computes ``y = x @ weight + bias`` with ``weight`` of shape
``(input_size, output_size)`` and ``bias`` of shape ``(output_size,)``. The
weight is Glorot-uniform initialized and the bias starts at zero.

The numerical work is done by `DenseFn`, a `Function` whose backward pass
returns the gradients of the input, the weight and the bias.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import numpy as np

from ...domain._function import Function
from ...domain._layer import Pullback
from ...domain._training_context import TrainingContext, resolve_context
from ...domain.utils._weight_initialization import _calculate_fan_in_and_fan_out
from .._autodiff import call_function
from .._context import Context
from .._layer import Layer
from ..ops._broadcast import sum_to_shape
from ..utils.weight_initializer import WeightInitializer


class DenseFn(Function):
    """
    Affine map ``x @ w + b`` over the last axis of `x`.

    Inputs may have any number of leading (batch) dimensions.
    """

    @staticmethod
    def forward(ctx: Context, x: np.ndarray, w: np.ndarray, b: np.ndarray) -> np.ndarray:
        ctx.save_for_backward(x, w)
        ctx.saved_meta["b_shape"] = b.shape
        return x @ w + b

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Returns
        -------
        tuple[np.ndarray, np.ndarray, np.ndarray]
            ``(grad_x, grad_w, grad_b)``.
        """
        x, w = ctx.saved_tensors
        grad_x = grad_out @ w.T
        x2 = x.reshape(-1, x.shape[-1])
        g2 = grad_out.reshape(-1, grad_out.shape[-1])
        grad_w = x2.T @ g2
        grad_b = sum_to_shape(grad_out, ctx.meta("b_shape"))
        return grad_x, grad_w, grad_b


class Dense(Layer):
    """
    Fully connected layer ``y = x @ weight + bias``.

    Parameters
    ----------
    input_size : int
        Number of input features (`fan_in`).
    output_size : int
        Number of output features (`fan_out`).
    kernel_initializer : str, optional
        Registered initializer name for the weight. Defaults to
        "glorot_uniform".
    rng : np.random.Generator, optional
        Random generator used for initialization.

    Raises
    ------
    ValueError
        If a size is negative.
    ShapeError
        If ``input_size + output_size == 0``.
    """

    def __init__(
        self,
        input_size: int,
        output_size: int,
        *,
        kernel_initializer: str = "glorot_uniform",
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        super().__init__()
        if int(input_size) < 0 or int(output_size) < 0:
            raise ValueError(
                f"Dense sizes must be non-negative, got ({input_size}, {output_size})"
            )
        self.input_size = int(input_size)
        self.output_size = int(output_size)
        self.kernel_initializer = str(kernel_initializer)
        _calculate_fan_in_and_fan_out((self.input_size, self.output_size))

        init = WeightInitializer(self.kernel_initializer)
        self.register_parameter("weight", init((self.input_size, self.output_size), rng=rng))
        self.register_parameter("bias", WeightInitializer("zeros")((self.output_size,)))

    @classmethod
    def create(
        cls, input_size: int, output_size: int, *, rng: Optional[np.random.Generator] = None
    ) -> "Dense":
        """Build a Glorot-uniform initialized layer mapping `input_size` to `output_size`."""
        return cls(input_size, output_size, rng=rng)

    @classmethod
    def from_arrays(cls, weight: Any, bias: Any) -> "Dense":
        """
        Build a layer from explicit weight and bias values.

        Raises
        ------
        ValueError
            If `weight` is not 2D or `bias` does not have shape
            ``(weight.shape[1],)``.
        """
        weight = np.array(weight, dtype=np.float32)
        bias = np.array(bias, dtype=np.float32)
        if weight.ndim != 2 or bias.shape != (weight.shape[1],):
            raise ValueError(
                f"incompatible Dense arrays: weight {weight.shape}, bias {bias.shape}"
            )
        layer = cls(weight.shape[0], weight.shape[1], kernel_initializer="zeros")
        layer.weight[...] = weight
        layer.bias[...] = bias
        return layer

    def value_with_pullback(
        self, x: np.ndarray, context: Optional[TrainingContext] = None
    ) -> Tuple[np.ndarray, Pullback]:
        resolve_context(context)
        x = np.asarray(x)
        if x.ndim < 1 or x.shape[-1] != self.input_size:
            raise ValueError(
                f"Dense expects inputs with last dimension {self.input_size}, got {x.shape}"
            )
        y, backward = call_function(DenseFn, x, self.weight, self.bias)

        def pullback(grad_out: np.ndarray):
            grad_x, grad_w, grad_b = backward(np.asarray(grad_out))
            return self.gradient_tree({"weight": grad_w, "bias": grad_b}), grad_x

        return y, pullback

    def get_config(self) -> Dict[str, Any]:
        return {
            "input_size": self.input_size,
            "output_size": self.output_size,
            "kernel_initializer": self.kernel_initializer,
        }

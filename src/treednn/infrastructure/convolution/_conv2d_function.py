"""
Differentiable Conv2D primitive.

`Conv2dFn` implements the `Function` contract for a 2D convolution over NHWC
inputs with a ``(K_h, K_w, C_in, C_out)`` filter. It is a thin wrapper: the
numerical work lives in `ops.conv2d_cpu`, and this class only records what
the backward pass needs.
"""

from typing import Tuple, Union

import numpy as np

from ...domain._function import Function
from ...domain._pooling import Padding
from .._context import Context
from ..ops.conv2d_cpu import conv2d_backward_cpu, conv2d_forward_cpu


class Conv2dFn(Function):
    """
    2D convolution (NHWC, no bias).

    Saves the input and filter plus the stride / padding metadata.
    """

    @staticmethod
    def forward(
        ctx: Context,
        x: np.ndarray,
        w: np.ndarray,
        *,
        strides: Tuple[int, int] = (1, 1),
        padding: Union[str, Padding] = Padding.VALID,
    ) -> np.ndarray:
        """
        Perform the forward pass of a 2D convolution.

        Parameters
        ----------
        ctx : Context
            Per-call context.
        x : np.ndarray
            Input in NHWC layout.
        w : np.ndarray
            Filter of shape (K_h, K_w, C_in, C_out).
        strides : tuple[int, int]
            Spatial strides.
        padding : Padding or str
            SAME or VALID.

        Returns
        -------
        np.ndarray
            Output in NHWC layout.
        """
        y = conv2d_forward_cpu(x, w, strides, padding)
        ctx.save_for_backward(x, w)
        ctx.saved_meta["strides"] = strides
        ctx.saved_meta["padding"] = padding
        return y

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Returns
        -------
        tuple[np.ndarray, np.ndarray]
            ``(grad_x, grad_w)``.
        """
        x, w = ctx.saved_tensors
        return conv2d_backward_cpu(
            x, w, grad_out, ctx.meta("strides"), ctx.meta("padding")
        )

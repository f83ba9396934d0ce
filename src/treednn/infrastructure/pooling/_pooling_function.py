"""
Differentiable 2D pooling primitives.

`MaxPool2dFn` and `AvgPool2dFn` wrap the NumPy kernels in `ops.pool2d_cpu`
and record the metadata their backward passes need. Pooling has no
parameters, so each backward returns only the input gradient.
"""

from typing import Tuple, Union

import numpy as np

from ...domain._function import Function
from ...domain._pooling import Padding
from .._context import Context
from ..ops.pool2d_cpu import (
    avgpool2d_backward_cpu,
    avgpool2d_forward_cpu,
    maxpool2d_backward_cpu,
    maxpool2d_forward_cpu,
)


def _save_geometry(ctx: Context, x: np.ndarray, pool_size, strides, padding) -> None:
    ctx.saved_meta["x_shape"] = x.shape
    ctx.saved_meta["pool_size"] = pool_size
    ctx.saved_meta["strides"] = strides
    ctx.saved_meta["padding"] = padding


class MaxPool2dFn(Function):
    """Spatial max pooling (NHWC); gradients flow to each window's maximum."""

    @staticmethod
    def forward(
        ctx: Context,
        x: np.ndarray,
        *,
        pool_size: Tuple[int, int],
        strides: Tuple[int, int],
        padding: Union[str, Padding],
    ) -> np.ndarray:
        y, argmax_idx = maxpool2d_forward_cpu(
            x, pool_size=pool_size, strides=strides, padding=padding
        )
        ctx.save_for_backward(argmax_idx)
        _save_geometry(ctx, x, pool_size, strides, padding)
        return y

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray]:
        (argmax_idx,) = ctx.saved_tensors
        grad_x = maxpool2d_backward_cpu(
            grad_out,
            argmax_idx,
            x_shape=ctx.meta("x_shape"),
            pool_size=ctx.meta("pool_size"),
            strides=ctx.meta("strides"),
            padding=ctx.meta("padding"),
        )
        return (grad_x,)


class AvgPool2dFn(Function):
    """Spatial average pooling (NHWC) over in-bounds window elements."""

    @staticmethod
    def forward(
        ctx: Context,
        x: np.ndarray,
        *,
        pool_size: Tuple[int, int],
        strides: Tuple[int, int],
        padding: Union[str, Padding],
    ) -> np.ndarray:
        _save_geometry(ctx, x, pool_size, strides, padding)
        return avgpool2d_forward_cpu(
            x, pool_size=pool_size, strides=strides, padding=padding
        )

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray]:
        grad_x = avgpool2d_backward_cpu(
            grad_out,
            x_shape=ctx.meta("x_shape"),
            pool_size=ctx.meta("pool_size"),
            strides=ctx.meta("strides"),
            padding=ctx.meta("padding"),
        )
        return (grad_x,)

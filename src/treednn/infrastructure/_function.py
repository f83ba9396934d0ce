"""
Elementwise and reshaping differentiable primitives.

This module collects the small `Function` implementations used by the
stateless layers:

- `SigmoidFn`: ``1 / (1 + exp(-x))``
- `ReLUFn`: ``max(x, 0)``
- `LogSoftmaxFn`: ``x - logsumexp(x)`` along an axis
- `FlattenFn`: reshape ``(N, ...) -> (N, prod(...))``

Plain-array helpers (`sigmoid`, `relu`, `log_softmax`) expose the forward
computations without a context.
"""

from typing import Tuple

import numpy as np

from ..domain._function import Function
from ._context import Context


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Numerically stable logistic sigmoid."""
    x = np.asarray(x)
    out = np.empty_like(x, dtype=np.result_type(x, np.float32))
    pos = x >= 0
    out[pos] = 1.0 / (1.0 + np.exp(-x[pos]))
    ez = np.exp(x[~pos])
    out[~pos] = ez / (1.0 + ez)
    return out


def relu(x: np.ndarray) -> np.ndarray:
    """Rectified linear unit."""
    return np.maximum(np.asarray(x), 0)


def log_softmax(x: np.ndarray, axis: int = -1) -> np.ndarray:
    """Log of the softmax along `axis`, computed with the max-shift trick."""
    x = np.asarray(x)
    shifted = x - x.max(axis=axis, keepdims=True)
    return shifted - np.log(np.exp(shifted).sum(axis=axis, keepdims=True))


class SigmoidFn(Function):
    """Sigmoid; backward uses ``dy * s * (1 - s)`` with the saved output."""

    @staticmethod
    def forward(ctx: Context, x: np.ndarray) -> np.ndarray:
        out = sigmoid(x)
        ctx.save_for_backward(out)
        return out

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray]:
        (out,) = ctx.saved_tensors
        return (grad_out * out * (1.0 - out),)


class ReLUFn(Function):
    """ReLU; the gradient at exactly zero is zero."""

    @staticmethod
    def forward(ctx: Context, x: np.ndarray) -> np.ndarray:
        mask = x > 0
        ctx.save_for_backward(mask)
        return np.where(mask, x, 0).astype(x.dtype, copy=False)

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray]:
        (mask,) = ctx.saved_tensors
        return (grad_out * mask,)


class LogSoftmaxFn(Function):
    """
    Log-softmax along an axis.

    Backward: ``dx = dy - softmax(x) * sum(dy, axis)``.
    """

    @staticmethod
    def forward(ctx: Context, x: np.ndarray, *, axis: int = -1) -> np.ndarray:
        out = log_softmax(x, axis=axis)
        ctx.save_for_backward(out)
        ctx.saved_meta["axis"] = axis
        return out

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray]:
        (out,) = ctx.saved_tensors
        axis = ctx.meta("axis")
        return (grad_out - np.exp(out) * grad_out.sum(axis=axis, keepdims=True),)


class FlattenFn(Function):
    """Collapse every non-batch dimension into one."""

    @staticmethod
    def forward(ctx: Context, x: np.ndarray) -> np.ndarray:
        if x.ndim < 1:
            raise ValueError("Flatten expects an input with a batch dimension")
        ctx.saved_meta["x_shape"] = x.shape
        return x.reshape(x.shape[0], -1)

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray]:
        return (grad_out.reshape(ctx.meta("x_shape")),)

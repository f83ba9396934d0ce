"""
Batch normalization for treednn.

`BatchNorm` normalizes its input over a configurable set of *reduced* axes
(the batch axis by default) and applies a learnable per-feature affine
transform:

    y = (x - mean) * rsqrt(variance + epsilon) * scale + offset

The layer behaves differently depending on the `TrainingContext` passed to
the forward call:

- **training**: `mean` / `variance` are the population statistics of the
  current batch over the reduced axes (keepdims). The running statistics are
  moved towards them by an exponential moving average,

      running += (batch_stat - running) * (1 - momentum)

  and the pullback is the full batch-norm gradient, including the
  dependence of the batch statistics on the input.
- **inference**: the stored running statistics are used as constants; no
  state is modified.

Running statistics are buffers, not parameters: they are excluded from the
parameter tree and never touched by optimizers. They start as the scalars
``running_mean = 0`` and ``running_variance = 1`` and take the keepdims
statistic shape on the first training call.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from ...domain._errors import HyperparameterError
from ...domain._function import Function
from ...domain._layer import Pullback
from ...domain._training_context import TrainingContext, resolve_context
from .._autodiff import call_function
from .._context import Context
from .._layer import Layer
from ..ops._broadcast import sum_to_shape
from ..utils.weight_initializer import WeightInitializer


def _affine_grads(
    grad_out: np.ndarray, x_hat: np.ndarray, scale: np.ndarray, offset: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return ``(d_x_hat, d_scale, d_offset)`` for ``y = x_hat * scale + offset``."""
    d_scale = sum_to_shape(grad_out * x_hat, scale.shape)
    d_offset = sum_to_shape(grad_out, offset.shape)
    return grad_out * scale, d_scale, d_offset


class BatchNormTrainFn(Function):
    """
    Batch-statistics normalization.

    Forward returns ``(y, mean, variance)``; the statistics are returned so
    the layer can update its running buffers. Backward takes only the output
    gradient and returns ``(grad_x, grad_scale, grad_offset)``.
    """

    @staticmethod
    def forward(
        ctx: Context,
        x: np.ndarray,
        scale: np.ndarray,
        offset: np.ndarray,
        *,
        axes: Tuple[int, ...],
        epsilon: float,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        mean = x.mean(axis=axes, keepdims=True)
        centered = x - mean
        variance = (centered * centered).mean(axis=axes, keepdims=True)
        inv_std = 1.0 / np.sqrt(variance + epsilon)
        x_hat = centered * inv_std
        y = x_hat * scale + offset

        ctx.save_for_backward(x_hat, inv_std, scale, offset)
        ctx.saved_meta["axes"] = axes
        ctx.saved_meta["count"] = int(np.prod([x.shape[a] for a in axes]))
        return y, mean, variance

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        x_hat, inv_std, scale, offset = ctx.saved_tensors
        axes = ctx.meta("axes")
        m = float(ctx.meta("count"))

        d_x_hat, d_scale, d_offset = _affine_grads(grad_out, x_hat, scale, offset)
        sum_d = d_x_hat.sum(axis=axes, keepdims=True)
        sum_d_xhat = (d_x_hat * x_hat).sum(axis=axes, keepdims=True)
        grad_x = (inv_std / m) * (m * d_x_hat - sum_d - x_hat * sum_d_xhat)
        return grad_x, d_scale, d_offset


class BatchNormInferenceFn(Function):
    """
    Running-statistics normalization.

    The running mean and variance are constants of this function; backward
    returns ``(grad_x, grad_scale, grad_offset)``.
    """

    @staticmethod
    def forward(
        ctx: Context,
        x: np.ndarray,
        scale: np.ndarray,
        offset: np.ndarray,
        *,
        running_mean: np.ndarray,
        running_variance: np.ndarray,
        epsilon: float,
    ) -> np.ndarray:
        inv_std = 1.0 / np.sqrt(running_variance + epsilon)
        x_hat = (x - running_mean) * inv_std
        ctx.save_for_backward(x_hat, inv_std, scale, offset)
        ctx.saved_meta["x_shape"] = x.shape
        return x_hat * scale + offset

    @staticmethod
    def backward(ctx: Context, grad_out: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        x_hat, inv_std, scale, offset = ctx.saved_tensors
        d_x_hat, d_scale, d_offset = _affine_grads(grad_out, x_hat, scale, offset)
        grad_x = sum_to_shape(d_x_hat * inv_std, ctx.meta("x_shape"))
        return grad_x, d_scale, d_offset


class BatchNorm(Layer):
    """
    Batch normalization with running statistics.

    Parameters
    ----------
    feature_count : int
        Size of the feature (last) axis; `scale` and `offset` have shape
        ``(feature_count,)``.
    axis : int or Sequence[int], optional
        Axis or axes reduced when computing batch statistics. Defaults to 0.
    momentum : float, optional
        Running-statistic decay in ``[0, 1]``. Defaults to 0.99.
    epsilon : float, optional
        Non-negative variance floor. Defaults to 1e-3.

    Attributes
    ----------
    scale : np.ndarray
        Learnable scale (gamma), initialized to ones.
    offset : np.ndarray
        Learnable offset (beta), initialized to zeros.
    running_mean : np.ndarray
        Buffer, initially ``0``.
    running_variance : np.ndarray
        Buffer, initially ``1``.

    Notes
    -----
    After `n` training calls on batches with identical statistics `s`,
    ``|running - s| == momentum**n * |initial - s|``.
    """

    def __init__(
        self,
        feature_count: int,
        axis: Union[int, Sequence[int]] = 0,
        momentum: float = 0.99,
        epsilon: float = 1e-3,
    ) -> None:
        super().__init__()
        if int(feature_count) <= 0:
            raise ValueError(f"feature_count must be positive, got {feature_count}")
        momentum = float(momentum)
        if not 0.0 <= momentum <= 1.0:
            raise HyperparameterError("momentum", momentum, "must be in [0, 1]")
        epsilon = float(epsilon)
        if epsilon < 0.0:
            raise HyperparameterError("epsilon", epsilon, "must be non-negative")

        self.feature_count = int(feature_count)
        self.axis: Tuple[int, ...] = (
            (int(axis),) if isinstance(axis, (int, np.integer)) else tuple(int(a) for a in axis)
        )
        if not self.axis:
            raise ValueError("axis must name at least one axis")
        self.momentum = momentum
        self.epsilon = epsilon

        self.register_parameter("scale", WeightInitializer("ones")((self.feature_count,)))
        self.register_parameter("offset", WeightInitializer("zeros")((self.feature_count,)))
        self.register_buffer("running_mean", np.array(0.0, dtype=np.float32))
        self.register_buffer("running_variance", np.array(1.0, dtype=np.float32))

    def _reduced_axes(self, x: np.ndarray) -> Tuple[int, ...]:
        axes = []
        for a in self.axis:
            if not -x.ndim <= a < x.ndim:
                raise ValueError(f"axis {a} is out of range for input of rank {x.ndim}")
            axes.append(a % x.ndim)
        return tuple(sorted(set(axes)))

    def _update_running(self, mean: np.ndarray, variance: np.ndarray) -> None:
        rate = 1.0 - self.momentum
        self.running_mean = (
            self.running_mean + (mean - self.running_mean) * rate
        ).astype(np.float32, copy=False)
        self.running_variance = (
            self.running_variance + (variance - self.running_variance) * rate
        ).astype(np.float32, copy=False)

    def value_with_pullback(
        self, x: np.ndarray, context: Optional[TrainingContext] = None
    ) -> Tuple[np.ndarray, Pullback]:
        context = resolve_context(context)
        x = np.asarray(x)
        if x.ndim == 0 or x.shape[-1] != self.feature_count:
            raise ValueError(
                f"BatchNorm expects a last dimension of {self.feature_count}, got shape {x.shape}"
            )

        if context.training:
            (y, mean, variance), backward = call_function(
                BatchNormTrainFn,
                x,
                self.scale,
                self.offset,
                axes=self._reduced_axes(x),
                epsilon=self.epsilon,
            )
            self._update_running(mean, variance)
        else:
            y, backward = call_function(
                BatchNormInferenceFn,
                x,
                self.scale,
                self.offset,
                running_mean=self.running_mean,
                running_variance=self.running_variance,
                epsilon=self.epsilon,
            )

        def pullback(grad_out: np.ndarray):
            grad_x, grad_scale, grad_offset = backward(np.asarray(grad_out))
            grads = {"scale": grad_scale, "offset": grad_offset}
            return self.gradient_tree(grads), grad_x

        return y, pullback

    def get_config(self) -> Dict[str, Any]:
        return {
            "feature_count": self.feature_count,
            "axis": list(self.axis),
            "momentum": self.momentum,
            "epsilon": self.epsilon,
        }

"""
Loss functions for treednn.

Each loss is a `Function` subclass with explicit forward / backward passes,
wrapped in a `Loss` object so it can be called for its value or
differentiated by `value_with_gradient`.

Implemented losses
------------------
- `mean_squared_error`: ``mean((pred - target) ** 2)``
- `softmax_cross_entropy`: ``-(labels * log_softmax(logits)).sum()``
  (summed over batch and classes)
- `negative_log_likelihood`: ``-(labels * log_probs).sum() / batch``, for
  models that already end in `LogSoftmax`

All losses return Python floats. Backward passes scale the gradient by the
upstream scalar `grad_out` and return the gradient w.r.t. the prediction
only; targets are constants.
"""

from typing import Callable, Dict, Tuple, Type

import numpy as np

from ..domain._function import Function
from ._autodiff import call_function
from ._context import Context
from ._function import log_softmax


def _check_same_shape(name: str, pred: np.ndarray, target: np.ndarray) -> None:
    if pred.shape != target.shape:
        raise ValueError(
            f"{name}: prediction shape {pred.shape} does not match target shape {target.shape}"
        )


class MSEFn(Function):
    """
    Mean Squared Error.

    Gradient: ``d/dpred = 2 * (pred - target) / pred.size``.
    """

    @staticmethod
    def forward(ctx: Context, pred: np.ndarray, target: np.ndarray) -> float:
        _check_same_shape("mean_squared_error", pred, target)
        diff = pred - target
        ctx.save_for_backward(diff)
        return float(np.mean(diff * diff))

    @staticmethod
    def backward(ctx: Context, grad_out: float) -> Tuple[np.ndarray]:
        (diff,) = ctx.saved_tensors
        return (diff * (2.0 * float(grad_out) / max(diff.size, 1)),)


class SoftmaxCrossEntropyFn(Function):
    """
    Softmax cross entropy on logits, summed over batch and classes.

    Gradient: ``softmax(logits) * labels.sum(-1) - labels``, which reduces to
    ``softmax(logits) - labels`` for one-hot rows.
    """

    @staticmethod
    def forward(ctx: Context, logits: np.ndarray, labels: np.ndarray) -> float:
        _check_same_shape("softmax_cross_entropy", logits, labels)
        log_probs = log_softmax(logits, axis=-1)
        ctx.save_for_backward(log_probs, labels)
        return float(-(labels * log_probs).sum())

    @staticmethod
    def backward(ctx: Context, grad_out: float) -> Tuple[np.ndarray]:
        log_probs, labels = ctx.saved_tensors
        grad = np.exp(log_probs) * labels.sum(axis=-1, keepdims=True) - labels
        return (grad * float(grad_out),)


class NegativeLogLikelihoodFn(Function):
    """
    Negative log likelihood of log-probabilities, averaged over the batch.

    Gradient: ``-labels / batch``.
    """

    @staticmethod
    def forward(ctx: Context, log_probs: np.ndarray, labels: np.ndarray) -> float:
        _check_same_shape("negative_log_likelihood", log_probs, labels)
        batch = log_probs.shape[0] if log_probs.ndim > 0 else 1
        ctx.save_for_backward(labels)
        ctx.saved_meta["batch"] = max(int(batch), 1)
        return float(-(labels * log_probs).sum() / ctx.meta("batch"))

    @staticmethod
    def backward(ctx: Context, grad_out: float) -> Tuple[np.ndarray]:
        (labels,) = ctx.saved_tensors
        return (labels * (-float(grad_out) / ctx.meta("batch")),)


class Loss:
    """
    Differentiable scalar loss ``loss(y_pred, y_true) -> float``.

    Parameters
    ----------
    fn : Type[Function]
        Primitive implementing the loss and its gradient w.r.t. `y_pred`.
    name : str
        Name used for registry lookup and reporting.
    """

    def __init__(self, fn: Type[Function], name: str) -> None:
        self.fn = fn
        self.name = name
        self.__name__ = name

    def value_with_pullback(
        self, y_pred: np.ndarray, y_true: np.ndarray
    ) -> Tuple[float, Callable[[float], np.ndarray]]:
        """
        Return the loss value and a pullback mapping the upstream scalar
        gradient to the gradient w.r.t. `y_pred`.
        """
        y_pred = np.asarray(y_pred)
        y_true = np.asarray(y_true, dtype=y_pred.dtype)
        value, backward = call_function(self.fn, y_pred, y_true)

        def pullback(grad_out: float = 1.0) -> np.ndarray:
            (grad_pred,) = backward(grad_out)
            return grad_pred

        return value, pullback

    def __call__(self, y_pred: np.ndarray, y_true: np.ndarray) -> float:
        value, _ = self.value_with_pullback(y_pred, y_true)
        return value

    def __repr__(self) -> str:
        return f"Loss({self.name!r})"


mean_squared_error = Loss(MSEFn, "mean_squared_error")
softmax_cross_entropy = Loss(SoftmaxCrossEntropyFn, "softmax_cross_entropy")
negative_log_likelihood = Loss(NegativeLogLikelihoodFn, "negative_log_likelihood")

LOSSES: Dict[str, Loss] = {
    loss.name: loss
    for loss in (mean_squared_error, softmax_cross_entropy, negative_log_likelihood)
}


def get_loss(name: str) -> Loss:
    """
    Look up a built-in loss by name.

    Raises
    ------
    ValueError
        If `name` is not a registered loss.
    """
    try:
        return LOSSES[name]
    except KeyError as e:
        available = ", ".join(sorted(LOSSES))
        raise ValueError(f"Unsupported loss name: {name!r}. Available: {available}") from e

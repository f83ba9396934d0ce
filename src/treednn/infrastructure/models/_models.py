"""
High-level model utilities.

This module defines the infrastructure-level `Model` base class, which extends
`Layer` with the conveniences expected at the top-level network boundary:

- inference helpers (`predict`, `evaluate`)
- a small training loop (`train_on_batch`, `fit`)

A training step is:

    y_pred, pullback = value_with_pullback(model, x, TrainingContext.train())
    loss, loss_pullback = loss_fn.value_with_pullback(y_pred, y)
    gradient, _ = pullback(loss_pullback(1.0))
    optimizer.update(model.parameter_tree(), gradient)

The parameter tree's leaves are the model's own arrays, so the optimizer's
in-place update is the model update.
"""

from __future__ import annotations

import warnings
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import numpy as np

from ...domain._optimizers import IOptimizer
from ...domain._training_context import TrainingContext
from .._autodiff import value_with_pullback
from .._layer import Layer
from .._losses import Loss, get_loss
from ..optimizers import build_optimizer
from ._history import History

Metric = Callable[[Any, Any], float]


def _resolve_loss(loss: Union[str, Loss]) -> Loss:
    return get_loss(loss) if isinstance(loss, str) else loss


def _resolve_optimizer(optimizer: Union[str, IOptimizer]) -> IOptimizer:
    return build_optimizer(optimizer) if isinstance(optimizer, str) else optimizer


def _metric_name(metric: Metric, i: int) -> str:
    return getattr(metric, "__name__", None) or f"metric_{i}"


def _iter_minibatches_xy(
    x: np.ndarray,
    y: np.ndarray,
    *,
    batch_size: int,
    shuffle: bool,
    drop_remainder: bool,
    rng: Optional[np.random.Generator],
) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
    """
    Yield `(x_batch, y_batch)` mini-batches along the first axis.

    Parameters
    ----------
    x, y : np.ndarray
        Inputs and targets with the same leading length.
    batch_size : int
        Mini-batch size.
    shuffle : bool
        Permute the sample order before batching.
    drop_remainder : bool
        Skip the final batch when it is smaller than `batch_size`.
    rng : np.random.Generator, optional
        Generator used for shuffling; defaults to NumPy's global state.

    Raises
    ------
    ValueError
        If `x` and `y` have different lengths.
    """
    n = len(x)
    if len(y) != n:
        raise ValueError(f"x and y must have same length, got len(x)={n}, len(y)={len(y)}")

    if shuffle:
        idxs = rng.permutation(n) if rng is not None else np.random.permutation(n)
    else:
        idxs = np.arange(n)

    stop = n - (n % batch_size) if drop_remainder else n
    for start in range(0, stop, batch_size):
        batch_ids = idxs[start : start + batch_size]
        yield x[batch_ids], y[batch_ids]


class Model(Layer):
    """
    Base class for top-level networks.

    `Model` keeps every `Layer` behavior (registration, parameter tree,
    pullbacks) and adds inference and training helpers. Subclasses either
    implement `value_with_pullback` themselves or compose children (see
    `Sequential`).
    """

    def predict(self, x: Any, *, batch_size: Optional[int] = None) -> np.ndarray:
        """
        Run the model in inference mode.

        Parameters
        ----------
        x : array-like
            Model input.
        batch_size : int, optional
            If given, run in chunks of this many samples.

        Returns
        -------
        np.ndarray
            Model output.
        """
        x = np.asarray(x)
        context = TrainingContext.inference()
        if batch_size is None or len(x) <= batch_size:
            return self.forward(x, context)
        outs = [
            self.forward(x[i : i + batch_size], context)
            for i in range(0, len(x), batch_size)
        ]
        return np.concatenate(outs, axis=0)

    def _batch_logs(
        self,
        loss_value: float,
        y_batch: Any,
        y_pred: Any,
        metrics: Optional[Sequence[Metric]],
    ) -> Dict[str, float]:
        logs: Dict[str, float] = {"loss": float(loss_value)}
        for i, m in enumerate(metrics or ()):
            logs[_metric_name(m, i)] = float(m(y_batch, y_pred))
        return logs

    def train_on_batch(
        self,
        x_batch: Any,
        y_batch: Any,
        *,
        loss: Union[str, Loss],
        optimizer: Union[str, IOptimizer],
        metrics: Optional[Sequence[Metric]] = None,
    ) -> Dict[str, float]:
        """
        Run a single training step on one mini-batch.

        Computes the loss and its gradient in training mode, applies one
        optimizer update and returns the batch logs.

        Parameters
        ----------
        x_batch, y_batch : array-like
            One mini-batch of inputs and targets.
        loss : Loss or str
            Differentiable loss, or the name of a built-in loss.
        optimizer : IOptimizer or str
            Optimizer instance. A name builds a fresh optimizer with default
            hyperparameters, which is only useful for one-off steps.
        metrics : Sequence[Callable], optional
            ``metric(y_true, y_pred) -> float`` callables evaluated on the
            training-mode predictions of this step.

        Returns
        -------
        Dict[str, float]
            Batch logs, e.g. ``{"loss": 0.123, "categorical_accuracy": 0.9}``.
        """
        loss_fn = _resolve_loss(loss)
        optimizer = _resolve_optimizer(optimizer)
        x_batch = np.asarray(x_batch)
        y_batch = np.asarray(y_batch)

        y_pred, pullback = value_with_pullback(self, x_batch, TrainingContext.train())
        loss_value, loss_pullback = loss_fn.value_with_pullback(y_pred, y_batch)
        gradient, _ = pullback(loss_pullback(1.0))
        optimizer.update(self.parameter_tree(), gradient)
        return self._batch_logs(loss_value, y_batch, y_pred, metrics)

    def evaluate(
        self,
        x: Any,
        y: Any,
        *,
        loss: Union[str, Loss],
        metrics: Optional[Sequence[Metric]] = None,
        batch_size: Optional[int] = None,
    ) -> Dict[str, float]:
        """
        Compute the loss and metrics over a dataset in inference mode.

        Returns
        -------
        Dict[str, float]
            Aggregated logs.
        """
        loss_fn = _resolve_loss(loss)
        y = np.asarray(y)
        y_pred = self.predict(x, batch_size=batch_size)
        return self._batch_logs(loss_fn(y_pred, y), y, y_pred, metrics)

    def fit(
        self,
        x: Any,
        y: Any,
        *,
        loss: Union[str, Loss],
        optimizer: Union[str, IOptimizer],
        metrics: Optional[Sequence[Metric]] = None,
        batch_size: int = 32,
        epochs: int = 1,
        shuffle: bool = True,
        drop_remainder: bool = False,
        rng: Optional[np.random.Generator] = None,
        verbose: int = 1,
    ) -> History:
        """
        Train the model for a fixed number of epochs.

        Parameters
        ----------
        x, y : array-like
            Dataset inputs and targets, batched along the first axis.
        loss : Loss or str
            Differentiable loss or built-in loss name.
        optimizer : IOptimizer or str
            Optimizer instance or kind name. A name is built once and
            reused for the whole run.
        metrics : Sequence[Callable], optional
            Metrics averaged per epoch alongside the loss.
        batch_size : int, optional
            Mini-batch size. Default is 32.
        epochs : int, optional
            Number of epochs. Default is 1.
        shuffle : bool, optional
            Shuffle the samples every epoch. Default is True.
        drop_remainder : bool, optional
            Skip a trailing partial batch. A warning reports how many samples
            are skipped per epoch. Default is False.
        rng : np.random.Generator, optional
            Generator used for shuffling.
        verbose : int, optional
            If non-zero, print one summary line per epoch. Default is 1.

        Returns
        -------
        History
            Per-epoch averages, weighted by batch size.

        Raises
        ------
        ValueError
            If `epochs < 1`, `batch_size < 1`, or no batch can be formed.
        """
        if epochs < 1:
            raise ValueError("epochs must be >= 1")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        loss_fn = _resolve_loss(loss)
        optimizer = _resolve_optimizer(optimizer)
        x = np.asarray(x)
        y = np.asarray(y)

        remainder = len(x) % batch_size
        if drop_remainder and len(x) < batch_size:
            raise ValueError(
                f"dataset of {len(x)} samples is smaller than batch_size={batch_size}"
            )
        if drop_remainder and remainder:
            warnings.warn(
                f"{remainder} of {len(x)} samples do not fill a batch of "
                f"{batch_size} and are skipped every epoch",
                RuntimeWarning,
                stacklevel=2,
            )

        hist = History()
        for epoch_idx in range(epochs):
            sums: Dict[str, float] = {}
            seen = 0

            for xb, yb in _iter_minibatches_xy(
                x,
                y,
                batch_size=batch_size,
                shuffle=shuffle,
                drop_remainder=drop_remainder,
                rng=rng,
            ):
                logs = self.train_on_batch(
                    xb, yb, loss=loss_fn, optimizer=optimizer, metrics=metrics
                )
                bs = len(xb)
                seen += bs
                for k, v in logs.items():
                    sums[k] = sums.get(k, 0.0) + float(v) * bs

            epoch_logs = {k: s / float(seen or 1) for k, s in sums.items()}
            hist.append_epoch(epoch_idx, epoch_logs)

            if verbose:
                parts = [f"Epoch {epoch_idx + 1}/{epochs}"]
                for k, v in epoch_logs.items():
                    parts.append(f"{k}: {v:.6f}")
                parts.append(f"seen: {seen}")
                print(" - ".join(parts))

        return hist

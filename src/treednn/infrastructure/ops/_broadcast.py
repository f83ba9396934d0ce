"""
Inverse-broadcast helper.

`sum_to_shape` reduces a gradient back to an operand's original shape after
a broadcasted forward operation (e.g. a bias added to every row of a batch).
It is the adjoint of `numpy.broadcast_to`.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np


def _sum_to_shape_reduce_axes(
    src_shape: Tuple[int, ...], target_shape: Tuple[int, ...]
) -> Tuple[Tuple[int, ...], int]:
    """
    Compute the reduction axes for `sum_to_shape`.

    Parameters
    ----------
    src_shape:
        The source (broadcast) shape to reduce from.
    target_shape:
        The target (pre-broadcast) shape to reduce to.

    Returns
    -------
    reduce_axes:
        Axes of the source to sum with `keepdims=True`.
    pad:
        Number of leading dimensions the target lacks relative to the source.

    Raises
    ------
    ValueError
        If `target_shape` could not have been broadcast to `src_shape`.
    """
    src = tuple(int(d) for d in src_shape)
    tgt = tuple(int(d) for d in target_shape)

    if len(tgt) > len(src):
        raise ValueError(f"target_shape rank {len(tgt)} > src rank {len(src)}")

    pad = len(src) - len(tgt)
    padded = (1,) * pad + tgt
    axes = []
    for axis, (s, t) in enumerate(zip(src, padded)):
        if t == s:
            continue
        if t != 1:
            raise ValueError(f"shape {tgt} is not broadcast-compatible with {src}")
        axes.append(axis)
    return tuple(axes), pad


def sum_to_shape(grad: np.ndarray, target_shape: Tuple[int, ...]) -> np.ndarray:
    """
    Sum `grad` over broadcast axes so that it has `target_shape`.

    Parameters
    ----------
    grad : np.ndarray
        Gradient in the broadcast shape.
    target_shape : tuple[int, ...]
        Shape of the operand before broadcasting. May be `()`.

    Returns
    -------
    np.ndarray
        Reduced gradient of shape `target_shape`.
    """
    target_shape = tuple(target_shape)
    if grad.shape == target_shape:
        return grad
    axes, pad = _sum_to_shape_reduce_axes(grad.shape, target_shape)
    out = grad.sum(axis=axes, keepdims=True) if axes else grad
    if pad:
        out = out.reshape(out.shape[pad:])
    return out.reshape(target_shape)

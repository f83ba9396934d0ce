"""
CPU reference implementations for 2D pooling (NumPy, NHWC).

Implemented pooling variants
-----------------------------
- MaxPool2D (forward + backward)
- AvgPool2D (forward + backward)

Design notes
------------
- Integer and boolean inputs are promoted to float32 before pooling.
- Padding semantics are explicit:
  - MaxPool pads with `-inf` so padded values never win.
  - AvgPool pads with zeros and divides every window by the number of
    *in-bounds* elements it covers, so SAME windows at the border are not
    diluted by padding.
- Forward passes gather windows with `sliding_window_view`; backward passes
  scatter-add per kernel offset, so overlapping windows accumulate.
"""

from __future__ import annotations

from typing import Tuple, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from ...domain._pooling import Padding
from ._windows import pad_nhwc, resolve_windows, unpad_nhwc, window_slices


def _windows(
    x_pad: np.ndarray,
    pool_size: Tuple[int, int],
    strides: Tuple[int, int],
    out_hw: Tuple[int, int],
) -> np.ndarray:
    """Return windows of shape (N, H_out, W_out, C, K_h * K_w)."""
    win = sliding_window_view(x_pad, pool_size, axis=(1, 2))
    win = win[:, :: strides[0], :: strides[1]][:, : out_hw[0], : out_hw[1]]
    n, h, w, c = win.shape[:4]
    return win.reshape(n, h, w, c, pool_size[0] * pool_size[1])


def _check_input(x: np.ndarray) -> np.ndarray:
    """Check the NHWC rank and promote integer or boolean input to float32."""
    if x.ndim != 4:
        raise ValueError(f"pool2d expects NHWC input with 4 dims, got shape {x.shape}")
    if not np.issubdtype(x.dtype, np.floating):
        return x.astype(np.float32)
    return x


def maxpool2d_forward_cpu(
    x: np.ndarray,
    *,
    pool_size: Tuple[int, int],
    strides: Tuple[int, int],
    padding: Union[str, Padding],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    MaxPool2D forward pass for NHWC tensors.

    Parameters
    ----------
    x : np.ndarray
        Input tensor of shape (N, H, W, C).
    pool_size : tuple[int, int]
        Pooling window size.
    strides : tuple[int, int]
        Pooling strides.
    padding : Padding or str
        SAME or VALID.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        y :
            Output tensor of shape (N, H_out, W_out, C).
        argmax_idx :
            Integer array of shape (N, H_out, W_out, C) holding the winning
            offset ``i * K_w + j`` inside each window. Ties pick the first
            offset in row-major order.
    """
    x = _check_input(x)
    out_hw, pads = resolve_windows(x.shape[1:3], pool_size, strides, padding)
    x_pad = pad_nhwc(x, pads, value=-np.inf)
    win = _windows(x_pad, pool_size, strides, out_hw)
    argmax_idx = np.argmax(win, axis=-1)
    y = np.take_along_axis(win, argmax_idx[..., None], axis=-1)[..., 0]
    return y.astype(x.dtype, copy=False), argmax_idx


def maxpool2d_backward_cpu(
    grad_out: np.ndarray,
    argmax_idx: np.ndarray,
    *,
    x_shape: Tuple[int, int, int, int],
    pool_size: Tuple[int, int],
    strides: Tuple[int, int],
    padding: Union[str, Padding],
) -> np.ndarray:
    """
    MaxPool2D backward pass.

    Routes each output gradient to the input position that produced the
    maximum in the forward pass.

    Parameters
    ----------
    grad_out : np.ndarray
        Gradient w.r.t. the output, shape (N, H_out, W_out, C).
    argmax_idx : np.ndarray
        Winning offsets returned by `maxpool2d_forward_cpu`.
    x_shape : tuple
        Shape of the forward input.
    pool_size, strides, padding
        Same values as in the forward pass.

    Returns
    -------
    np.ndarray
        Gradient w.r.t. the input, shape `x_shape`.
    """
    out_hw, pads = resolve_windows(x_shape[1:3], pool_size, strides, padding)
    (top, bottom), (left, right) = pads
    n, h, w, c = x_shape
    grad_x_pad = np.zeros((n, h + top + bottom, w + left + right, c), dtype=grad_out.dtype)

    k_h, k_w = pool_size
    for i in range(k_h):
        for j in range(k_w):
            mask = argmax_idx == (i * k_w + j)
            grad_x_pad[window_slices(i, j, out_hw, strides)] += grad_out * mask

    return unpad_nhwc(grad_x_pad, pads)


def _in_bounds_counts(
    x_shape: Tuple[int, int, int, int],
    pool_size: Tuple[int, int],
    strides: Tuple[int, int],
    out_hw: Tuple[int, int],
    pads: Tuple[Tuple[int, int], Tuple[int, int]],
) -> np.ndarray:
    """Return the number of in-bounds elements per window, shape (1, H_out, W_out, 1)."""
    ones = np.ones((1, x_shape[1], x_shape[2], 1), dtype=np.float64)
    win = _windows(pad_nhwc(ones, pads), pool_size, strides, out_hw)
    return win.sum(axis=-1)


def avgpool2d_forward_cpu(
    x: np.ndarray,
    *,
    pool_size: Tuple[int, int],
    strides: Tuple[int, int],
    padding: Union[str, Padding],
) -> np.ndarray:
    """
    AvgPool2D forward pass for NHWC tensors.

    Parameters
    ----------
    x : np.ndarray
        Input tensor of shape (N, H, W, C).
    pool_size, strides, padding
        Window geometry.

    Returns
    -------
    np.ndarray
        Output tensor of shape (N, H_out, W_out, C). Each element is the
        mean of the in-bounds elements of its window.
    """
    x = _check_input(x)
    out_hw, pads = resolve_windows(x.shape[1:3], pool_size, strides, padding)
    win = _windows(pad_nhwc(x, pads), pool_size, strides, out_hw)
    counts = _in_bounds_counts(x.shape, pool_size, strides, out_hw, pads)
    y = win.sum(axis=-1) / counts
    return y.astype(x.dtype, copy=False)


def avgpool2d_backward_cpu(
    grad_out: np.ndarray,
    *,
    x_shape: Tuple[int, int, int, int],
    pool_size: Tuple[int, int],
    strides: Tuple[int, int],
    padding: Union[str, Padding],
) -> np.ndarray:
    """
    AvgPool2D backward pass.

    Each output gradient is divided by its window's in-bounds count and added
    to every input position of the window.

    Returns
    -------
    np.ndarray
        Gradient w.r.t. the input, shape `x_shape`.
    """
    out_hw, pads = resolve_windows(x_shape[1:3], pool_size, strides, padding)
    (top, bottom), (left, right) = pads
    n, h, w, c = x_shape
    counts = _in_bounds_counts(x_shape, pool_size, strides, out_hw, pads)
    share = (grad_out / counts).astype(grad_out.dtype, copy=False)

    grad_x_pad = np.zeros((n, h + top + bottom, w + left + right, c), dtype=grad_out.dtype)
    k_h, k_w = pool_size
    for i in range(k_h):
        for j in range(k_w):
            grad_x_pad[window_slices(i, j, out_hw, strides)] += share

    return unpad_nhwc(grad_x_pad, pads)

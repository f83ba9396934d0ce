"""
CPU Conv2D kernels for treednn (NumPy).

Forward and backward passes of a 2D convolution over **NHWC** inputs with
filters laid out as ``(K_h, K_w, C_in, C_out)``.

Implementation notes
--------------------
- Forward gathers every window with `sliding_window_view` and contracts the
  window and channel axes against the filter in one `einsum`.
- Backward loops over the ``K_h * K_w`` kernel offsets only. For each offset
  the strided slice of the (padded) input is a plain view, so the filter
  gradient is one `tensordot` and the input gradient is one scatter-add.
- Padding is resolved from a `Padding` policy (SAME / VALID); see
  `ops._windows`.
"""

from __future__ import annotations

from typing import Tuple, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from ...domain._pooling import Padding
from ._windows import pad_nhwc, resolve_windows, unpad_nhwc, window_slices


def _check_shapes(x: np.ndarray, w: np.ndarray) -> None:
    if x.ndim != 4:
        raise ValueError(f"conv2d expects NHWC input with 4 dims, got shape {x.shape}")
    if w.ndim != 4:
        raise ValueError(
            f"conv2d expects a (K_h, K_w, C_in, C_out) filter, got shape {w.shape}"
        )
    if x.shape[3] != w.shape[2]:
        raise ValueError(
            f"in_channels mismatch: x has {x.shape[3]}, filter has {w.shape[2]}"
        )


def conv2d_forward_cpu(
    x: np.ndarray,
    w: np.ndarray,
    strides: Tuple[int, int],
    padding: Union[str, Padding],
) -> np.ndarray:
    """
    Compute the forward pass of a 2D convolution.

    Parameters
    ----------
    x : np.ndarray
        Input of shape (N, H, W, C_in).
    w : np.ndarray
        Filter of shape (K_h, K_w, C_in, C_out).
    strides : tuple[int, int]
        Window strides (s_h, s_w).
    padding : Padding or str
        SAME or VALID.

    Returns
    -------
    np.ndarray
        Output of shape (N, H_out, W_out, C_out).

    Raises
    ------
    ValueError
        If the ranks or channel counts of `x` and `w` do not match.
    """
    _check_shapes(x, w)
    k_h, k_w = w.shape[0], w.shape[1]
    out_hw, pads = resolve_windows(x.shape[1:3], (k_h, k_w), strides, padding)
    x_pad = pad_nhwc(x, pads)

    # (N, H_out, W_out, C_in, K_h, K_w)
    windows = sliding_window_view(x_pad, (k_h, k_w), axis=(1, 2))
    windows = windows[:, :: strides[0], :: strides[1]][:, : out_hw[0], : out_hw[1]]
    y = np.einsum("nhwcij,ijco->nhwo", windows, w, optimize=True)
    return y.astype(np.result_type(x, w), copy=False)


def conv2d_backward_cpu(
    x: np.ndarray,
    w: np.ndarray,
    grad_out: np.ndarray,
    strides: Tuple[int, int],
    padding: Union[str, Padding],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute the backward pass of a 2D convolution.

    Parameters
    ----------
    x : np.ndarray
        Forward input of shape (N, H, W, C_in).
    w : np.ndarray
        Filter of shape (K_h, K_w, C_in, C_out).
    grad_out : np.ndarray
        Gradient w.r.t. the output, shape (N, H_out, W_out, C_out).
    strides : tuple[int, int]
        Strides used in the forward pass.
    padding : Padding or str
        Padding policy used in the forward pass.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        ``(grad_x, grad_w)`` with the shapes of `x` and `w`.
    """
    _check_shapes(x, w)
    k_h, k_w = w.shape[0], w.shape[1]
    out_hw, pads = resolve_windows(x.shape[1:3], (k_h, k_w), strides, padding)
    if grad_out.shape[1:3] != out_hw:
        raise ValueError(
            f"grad_out spatial shape {grad_out.shape[1:3]} does not match {out_hw}"
        )
    x_pad = pad_nhwc(x, pads)

    grad_x_pad = np.zeros_like(x_pad)
    grad_w = np.zeros_like(w)

    for i in range(k_h):
        for j in range(k_w):
            sl = window_slices(i, j, out_hw, strides)
            # (N, H_out, W_out, C_in) x (N, H_out, W_out, C_out) -> (C_in, C_out)
            grad_w[i, j] = np.tensordot(x_pad[sl], grad_out, axes=([0, 1, 2], [0, 1, 2]))
            grad_x_pad[sl] += grad_out @ w[i, j].T

    return unpad_nhwc(grad_x_pad, pads), grad_w

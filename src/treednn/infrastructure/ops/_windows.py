"""
Window geometry shared by the convolution and pooling kernels.

All spatial kernels in this package use the **NHWC** layout and express
padding as a `Padding` policy rather than explicit pixel counts. This module
resolves a policy into concrete output sizes and per-side padding amounts.

SAME padding follows the usual convention: the output size is
``ceil(input / stride)``, and when the total padding is odd the extra row or
column goes to the bottom / right.
"""

from __future__ import annotations

from typing import Tuple, Union

import numpy as np

from ...domain._pooling import Padding


def _pair(v: Union[int, Tuple[int, int]]) -> Tuple[int, int]:
    """
    Normalize an integer or pair into a 2-tuple of ints.

    Parameters
    ----------
    v : int or tuple[int, int]
        A scalar value or a 2D pair.

    Returns
    -------
    tuple[int, int]
        A normalized (height, width) pair.
    """
    if isinstance(v, (tuple, list)):
        if len(v) != 2:
            raise ValueError(f"expected a pair, got {v!r}")
        return int(v[0]), int(v[1])
    return int(v), int(v)


def _as_padding(padding: Union[str, Padding]) -> Padding:
    try:
        return Padding(padding)
    except ValueError:
        raise ValueError(
            f"padding must be 'same' or 'valid', got {padding!r}"
        ) from None


def _resolve_axis(size: int, k: int, s: int, padding: Padding) -> Tuple[int, int, int]:
    """Return `(out, pad_before, pad_after)` for one spatial axis."""
    if padding is Padding.SAME:
        out = -(-size // s)
        total = max((out - 1) * s + k - size, 0)
        before = total // 2
        return out, before, total - before
    if size < k:
        raise ValueError(
            f"VALID window of size {k} does not fit an input of size {size}"
        )
    return (size - k) // s + 1, 0, 0


def resolve_windows(
    hw: Tuple[int, int],
    kernel: Tuple[int, int],
    strides: Tuple[int, int],
    padding: Union[str, Padding],
) -> Tuple[Tuple[int, int], Tuple[Tuple[int, int], Tuple[int, int]]]:
    """
    Compute output spatial size and padding for an NHWC window operation.

    Parameters
    ----------
    hw : tuple[int, int]
        Input height and width.
    kernel : tuple[int, int]
        Window size (k_h, k_w).
    strides : tuple[int, int]
        Window strides (s_h, s_w).
    padding : Padding or str
        Padding policy.

    Returns
    -------
    tuple
        ``((H_out, W_out), ((top, bottom), (left, right)))``.

    Raises
    ------
    ValueError
        If strides or kernel sizes are not positive, or a VALID window does
        not fit the input.
    """
    k_h, k_w = kernel
    s_h, s_w = strides
    if min(k_h, k_w) <= 0 or min(s_h, s_w) <= 0:
        raise ValueError(
            f"window sizes and strides must be positive, got kernel={kernel}, strides={strides}"
        )
    policy = _as_padding(padding)
    h_out, top, bottom = _resolve_axis(hw[0], k_h, s_h, policy)
    w_out, left, right = _resolve_axis(hw[1], k_w, s_w, policy)
    return (h_out, w_out), ((top, bottom), (left, right))


def pad_nhwc(
    x: np.ndarray, pads: Tuple[Tuple[int, int], Tuple[int, int]], value: float = 0.0
) -> np.ndarray:
    """Pad the spatial axes of an NHWC array with a constant."""
    (top, bottom), (left, right) = pads
    if top == bottom == left == right == 0:
        return x
    return np.pad(
        x,
        pad_width=((0, 0), (top, bottom), (left, right), (0, 0)),
        mode="constant",
        constant_values=value,
    )


def window_slices(
    i: int, j: int, out_hw: Tuple[int, int], strides: Tuple[int, int]
) -> Tuple[slice, slice, slice, slice]:
    """
    Return the strided NHWC slice picking kernel offset `(i, j)` of every window.

    Indexing a padded input with this slice yields an array of shape
    ``(N, H_out, W_out, C)`` whose element ``[n, a, b, c]`` is the input value
    at row ``a * s_h + i`` and column ``b * s_w + j``.
    """
    h_out, w_out = out_hw
    s_h, s_w = strides
    return (
        slice(None),
        slice(i, i + s_h * (h_out - 1) + 1, s_h),
        slice(j, j + s_w * (w_out - 1) + 1, s_w),
        slice(None),
    )


def unpad_nhwc(
    x_pad: np.ndarray, pads: Tuple[Tuple[int, int], Tuple[int, int]]
) -> np.ndarray:
    """Remove the spatial padding added by `pad_nhwc`."""
    (top, bottom), (left, right) = pads
    h = x_pad.shape[1] - bottom
    w = x_pad.shape[2] - right
    return x_pad[:, top:h, left:w, :]

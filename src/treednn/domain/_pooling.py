"""
Windowed spatial operation interfaces for treednn.

This module defines the padding policy shared by convolution and pooling, and
the domain-level Protocol for 2D pooling layers.

Design principles
-----------------
- Spatial layers operate on **NHWC tensors**: (N, H, W, C).
- Pooling layers are **stateless**: they contribute no parameter-tree leaves.
- Hyperparameters (window size, strides, padding) are fixed at construction.

Notes
-----
This module contains **no NumPy or backend-specific logic**.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, Tuple, runtime_checkable

from ._layer import ILayer


class Padding(str, Enum):
    """
    Padding policy for windowed spatial operations.

    - ``SAME``: zero-pad so that the output spatial size is
      ``ceil(input / stride)``; it depends only on the stride.
    - ``VALID``: no padding; windows must fit entirely inside the input and
      the output shrinks to ``floor((input - window) / stride) + 1``.
    """

    SAME = "same"
    VALID = "valid"


@runtime_checkable
class IPooling2D(ILayer, Protocol):
    """
    Protocol for 2D pooling layers operating on NHWC tensors.

    Shape semantics
    ---------------
    Input:
        x.shape == (N, H, W, C)

    Output:
        y.shape == (N, H_out, W_out, C)

    Design constraints
    ------------------
    - Pooling layers MUST NOT own trainable parameters.
    - Pooling layers MUST preserve the batch and channel dimensions.
    """

    @property
    def pool_size(self) -> Tuple[int, int]:
        """Pooling window size as (k_h, k_w)."""
        ...

    @property
    def strides(self) -> Tuple[int, int]:
        """Window strides as (s_h, s_w)."""
        ...

    @property
    def padding(self) -> Padding:
        """Padding policy applied before pooling."""
        ...

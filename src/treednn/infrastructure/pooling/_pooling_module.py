"""
2D pooling layers (NHWC).

`MaxPool2D` and `AvgPool2D` are stateless layers: their parameter tree is
empty and their pullbacks return an empty gradient tree together with the
input gradient.

Both take the same hyperparameters:

- ``pool_size``: window size ``(k_h, k_w)`` (an int means a square window)
- ``strides``: window strides; defaults to ``pool_size``
- ``padding``: ``Padding.SAME`` or ``Padding.VALID``
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, Type, Union

import numpy as np

from ...domain._function import Function
from ...domain._layer import Pullback
from ...domain._pooling import IPooling2D, Padding
from ...domain._training_context import TrainingContext, resolve_context
from .._autodiff import call_function
from .._layer import Layer
from ..ops._windows import _as_padding, _pair
from ._pooling_function import AvgPool2dFn, MaxPool2dFn


class _Pool2D(Layer, IPooling2D):
    """Shared hyperparameter handling for 2D pooling layers."""

    _fn: Type[Function]

    def __init__(
        self,
        pool_size: Union[int, Tuple[int, int]] = (2, 2),
        strides: Optional[Union[int, Tuple[int, int]]] = None,
        padding: Union[str, Padding] = Padding.VALID,
    ) -> None:
        super().__init__()
        self._pool_size = _pair(pool_size)
        self._strides = _pair(pool_size if strides is None else strides)
        if min(self._pool_size) <= 0 or min(self._strides) <= 0:
            raise ValueError(
                f"pool_size and strides must be positive, got "
                f"pool_size={self._pool_size}, strides={self._strides}"
            )
        self._padding = _as_padding(padding)

    @property
    def pool_size(self) -> Tuple[int, int]:
        return self._pool_size

    @property
    def strides(self) -> Tuple[int, int]:
        return self._strides

    @property
    def padding(self) -> Padding:
        return self._padding

    def value_with_pullback(
        self, x: np.ndarray, context: Optional[TrainingContext] = None
    ) -> Tuple[np.ndarray, Pullback]:
        resolve_context(context)
        y, backward = call_function(
            self._fn,
            np.asarray(x),
            pool_size=self._pool_size,
            strides=self._strides,
            padding=self._padding,
        )

        def pullback(grad_out: np.ndarray):
            (grad_x,) = backward(np.asarray(grad_out))
            return self.gradient_tree(), grad_x

        return y, pullback

    def get_config(self) -> Dict[str, Any]:
        return {
            "pool_size": list(self._pool_size),
            "strides": list(self._strides),
            "padding": self._padding.value,
        }


class MaxPool2D(_Pool2D):
    """
    Spatial max pooling.

    SAME padding fills with ``-inf`` so padded positions never win a window.
    """

    _fn = MaxPool2dFn


class AvgPool2D(_Pool2D):
    """
    Spatial average pooling.

    Each window is averaged over its in-bounds elements only, so SAME
    windows overlapping the border are not diluted by padding.
    """

    _fn = AvgPool2dFn

"""
2D convolution layer (NHWC).

`Conv2D` owns a single learnable `filter` of shape
``(K_h, K_w, C_in, C_out)``. Strides and padding are hyperparameters: they
never appear in the parameter tree and are not touched by optimizers.

The filter is Glorot-uniform initialized with fan-in ``C_in`` and fan-out
``C_out`` (the last two filter dimensions).
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from ...domain._layer import Pullback
from ...domain._pooling import Padding
from ...domain._training_context import TrainingContext, resolve_context
from ...domain.utils._weight_initialization import _calculate_fan_in_and_fan_out
from .._autodiff import call_function
from .._layer import Layer
from ..ops._windows import _as_padding, _pair
from ..utils.weight_initializer import WeightInitializer
from ._conv2d_function import Conv2dFn


class Conv2D(Layer):
    """
    2D convolution layer without bias.

    Parameters
    ----------
    filter_shape : Sequence[int]
        ``(K_h, K_w, C_in, C_out)``.
    strides : int or tuple[int, int], optional
        Spatial strides. Defaults to (1, 1).
    padding : Padding or str, optional
        "same" or "valid". Defaults to "valid".
    kernel_initializer : str, optional
        Registered initializer name. Defaults to "glorot_uniform".
    rng : np.random.Generator, optional
        Random generator used for initialization.

    Raises
    ------
    ValueError
        If `filter_shape` does not have four positive window / channel sizes,
        strides are not positive, or padding is unknown.
    ShapeError
        If ``C_in + C_out == 0``.
    """

    def __init__(
        self,
        filter_shape: Sequence[int],
        strides: Union[int, Tuple[int, int]] = (1, 1),
        padding: Union[str, Padding] = Padding.VALID,
        *,
        kernel_initializer: str = "glorot_uniform",
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        super().__init__()
        filter_shape = tuple(int(d) for d in filter_shape)
        if len(filter_shape) != 4:
            raise ValueError(
                f"filter_shape must be (K_h, K_w, C_in, C_out), got {filter_shape}"
            )
        if filter_shape[0] <= 0 or filter_shape[1] <= 0:
            raise ValueError(f"kernel size must be positive, got {filter_shape[:2]}")
        _calculate_fan_in_and_fan_out(filter_shape)
        self.strides = _pair(strides)
        if min(self.strides) <= 0:
            raise ValueError(f"strides must be positive, got {self.strides}")
        self.padding = _as_padding(padding)
        self.kernel_initializer = str(kernel_initializer)

        init = WeightInitializer(self.kernel_initializer)
        self.register_parameter("filter", init(filter_shape, rng=rng))

    @classmethod
    def from_filter(
        cls,
        filter: Any,
        strides: Union[int, Tuple[int, int]] = (1, 1),
        padding: Union[str, Padding] = Padding.VALID,
    ) -> "Conv2D":
        """Build a layer around an explicit filter array."""
        filter = np.array(filter, dtype=np.float32)
        layer = cls(filter.shape, strides, padding, kernel_initializer="zeros")
        layer.filter[...] = filter
        return layer

    @property
    def filter_shape(self) -> Tuple[int, int, int, int]:
        return tuple(self.filter.shape)

    def value_with_pullback(
        self, x: np.ndarray, context: Optional[TrainingContext] = None
    ) -> Tuple[np.ndarray, Pullback]:
        resolve_context(context)
        x = np.asarray(x)
        y, backward = call_function(
            Conv2dFn, x, self.filter, strides=self.strides, padding=self.padding
        )

        def pullback(grad_out: np.ndarray):
            grad_x, grad_w = backward(np.asarray(grad_out))
            return self.gradient_tree({"filter": grad_w}), grad_x

        return y, pullback

    def get_config(self) -> Dict[str, Any]:
        return {
            "filter_shape": list(self.filter_shape),
            "strides": list(self.strides),
            "padding": self.padding.value,
            "kernel_initializer": self.kernel_initializer,
        }

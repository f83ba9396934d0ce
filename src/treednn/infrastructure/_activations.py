"""
Layer wrappers around the stateless primitives.

`Function` classes implement the math; the layers here give them a `Layer`
interface so they compose inside `Sequential` and models. None of them own
parameters: their parameter tree is empty and their pullbacks return an
empty gradient tree.
"""

from typing import Any, Dict, Optional, Tuple, Type

import numpy as np

from ..domain._function import Function
from ..domain._layer import Pullback
from ..domain._training_context import TrainingContext, resolve_context
from ._autodiff import call_function
from ._function import FlattenFn, LogSoftmaxFn, ReLUFn, SigmoidFn
from ._layer import Layer


class _Stateless(Layer):
    """Base for parameterless single-`Function` layers."""

    _fn: Type[Function]

    def _fn_kwargs(self) -> Dict[str, Any]:
        return {}

    def value_with_pullback(
        self, x: np.ndarray, context: Optional[TrainingContext] = None
    ) -> Tuple[np.ndarray, Pullback]:
        resolve_context(context)
        y, backward = call_function(self._fn, np.asarray(x), **self._fn_kwargs())

        def pullback(grad_out: np.ndarray):
            (grad_x,) = backward(np.asarray(grad_out))
            return self.gradient_tree(), grad_x

        return y, pullback


class Sigmoid(_Stateless):
    """Elementwise ``1 / (1 + exp(-x))``."""

    _fn = SigmoidFn


class ReLU(_Stateless):
    """Elementwise ``max(x, 0)``."""

    _fn = ReLUFn


class LogSoftmax(_Stateless):
    """
    Log-softmax along `axis` (the last axis by default).

    Pairs with `negative_log_likelihood` to form the classifier loss.
    """

    _fn = LogSoftmaxFn

    def __init__(self, axis: int = -1) -> None:
        super().__init__()
        self.axis = int(axis)

    def _fn_kwargs(self) -> Dict[str, Any]:
        return {"axis": self.axis}

    def get_config(self) -> Dict[str, Any]:
        return {"axis": self.axis}


class Flatten(_Stateless):
    """
    Reshape ``(N, d1, ..., dk)`` to ``(N, d1 * ... * dk)``.

    Connects NHWC feature maps to `Dense` layers.
    """

    _fn = FlattenFn

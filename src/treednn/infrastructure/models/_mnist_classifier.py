"""
Two-layer MNIST classifier.

    x (N, 784) -> Dense(784, hidden) -> sigmoid -> Dense(hidden, 10) -> log_softmax

The output is a row of log-probabilities, to be trained with
`negative_log_likelihood` against one-hot labels. The parameter tree has
exactly the addresses ``("l1", "weight")``, ``("l1", "bias")``,
``("l2", "weight")`` and ``("l2", "bias")``; the activations are applied as
primitives and own no subtree.
"""

from typing import Any, Dict, Optional, Tuple

import numpy as np

from ...domain._layer import Pullback
from ...domain._training_context import TrainingContext, resolve_context
from .._autodiff import call_function
from .._function import LogSoftmaxFn, SigmoidFn
from ..fully_connected._dense import Dense
from ._models import Model


class MNISTClassifier(Model):
    """
    Dense / sigmoid / dense / log-softmax classifier.

    Parameters
    ----------
    hidden_size : int, optional
        Width of the hidden layer. Defaults to 30.
    input_size : int, optional
        Flattened image size. Defaults to 784 (28 x 28).
    num_classes : int, optional
        Number of output classes. Defaults to 10.
    rng : np.random.Generator, optional
        Random generator used to initialize both dense layers.
    """

    def __init__(
        self,
        hidden_size: int = 30,
        input_size: int = 784,
        num_classes: int = 10,
        *,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        super().__init__()
        self.l1 = Dense(input_size, hidden_size, rng=rng)
        self.l2 = Dense(hidden_size, num_classes, rng=rng)

    def value_with_pullback(
        self, x: Any, context: Optional[TrainingContext] = None
    ) -> Tuple[np.ndarray, Pullback]:
        context = resolve_context(context)
        z1, pb_l1 = self.l1.value_with_pullback(x, context)
        h1, sigmoid_backward = call_function(SigmoidFn, z1)
        z2, pb_l2 = self.l2.value_with_pullback(h1, context)
        y, log_softmax_backward = call_function(LogSoftmaxFn, z2, axis=-1)

        def pullback(grad_out: np.ndarray):
            (g,) = log_softmax_backward(np.asarray(grad_out))
            g_l2, g = pb_l2(g)
            (g,) = sigmoid_backward(g)
            g_l1, g = pb_l1(g)
            return self.gradient_tree(children={"l1": g_l1, "l2": g_l2}), g

        return y, pullback

    def get_config(self) -> Dict[str, Any]:
        return {
            "hidden_size": self.l1.output_size,
            "input_size": self.l1.input_size,
            "num_classes": self.l2.output_size,
        }

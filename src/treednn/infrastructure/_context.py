from typing import Any
from dataclasses import dataclass, field

import numpy as np


@dataclass
class Context:
    """
    Per-call state shared between a `Function`'s forward and backward.

    A `Context` records the information required to compute gradients for one
    invocation of an operation.

    Attributes
    ----------
    saved_tensors : list[np.ndarray]
        Arrays saved during the forward pass for use in backward. These may be
        inputs, outputs or cached intermediates (masks, indices, normalized
        activations).
    saved_meta : dict[str, Any]
        Non-array metadata required for backward (shapes, axes, strides).
    """

    saved_tensors: list = field(default_factory=list)
    saved_meta: dict = field(default_factory=dict)

    def save_for_backward(self, *tensors: np.ndarray) -> None:
        """
        Save arrays for use during the backward computation.

        Parameters
        ----------
        *tensors : np.ndarray
            Any number of arrays to be stored in `saved_tensors`.
        """
        self.saved_tensors.extend(tensors)

    def meta(self, key: str) -> Any:
        """Return a metadata value saved during forward."""
        return self.saved_meta[key]

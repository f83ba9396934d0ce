"""
Constant weight initializers.

Provided initializers
---------------------
- ``zeros``: all elements set to zero (biases, batch-norm offsets).
- ``ones``: all elements set to one (batch-norm scales).
"""

from typing import Optional, Tuple

import numpy as np

from ._base import WeightInitializer


@WeightInitializer.register_initializer("zeros")
def zeros(
    shape: Tuple[int, ...], *, dtype=np.float32, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Return a zero-filled array of `shape`."""
    return np.zeros(shape, dtype=dtype)


@WeightInitializer.register_initializer("ones")
def ones(
    shape: Tuple[int, ...], *, dtype=np.float32, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Return a one-filled array of `shape`."""
    return np.ones(shape, dtype=dtype)

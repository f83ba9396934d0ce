"""
Glorot (Xavier) weight initializers.

Implemented variants
--------------------
- ``glorot_uniform``:
    ``U(-limit, +limit)`` with ``limit = sqrt(6 / (fan_in + fan_out))``.
- ``glorot_normal``:
    zero-mean normal with ``std = sqrt(2 / (fan_in + fan_out))``.

Notes
-----
- Fan-in and fan-out are the last two dimensions of the shape, computed by
  ``_calculate_fan_in_and_fan_out``. For a convolution filter
  ``(K_h, K_w, C_in, C_out)`` the receptive field does not contribute.
- Shapes with fewer than two dimensions, or with ``fan_in + fan_out == 0``,
  raise `ShapeError`.
"""

import math
from typing import Optional, Tuple

import numpy as np

from ._base import WeightInitializer, _generator
from ....domain.utils._weight_initialization import _calculate_fan_in_and_fan_out


def glorot_limit(shape: Tuple[int, ...]) -> float:
    """Return the Glorot-uniform bound ``sqrt(6 / (fan_in + fan_out))`` for `shape`."""
    fan_in, fan_out = _calculate_fan_in_and_fan_out(tuple(shape))
    return math.sqrt(6.0 / float(fan_in + fan_out))


@WeightInitializer.register_initializer("glorot_uniform")
def glorot_uniform(
    shape: Tuple[int, ...], *, dtype=np.float32, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Sample Glorot-uniform weights.

    Parameters
    ----------
    shape:
        Weight shape; the last two dimensions are (fan_in, fan_out).
    dtype:
        Output dtype.
    rng:
        Optional random generator.

    Returns
    -------
    np.ndarray
        Array of `shape` with every element in ``[-limit, +limit]``.
    """
    limit = glorot_limit(shape)
    return _generator(rng).uniform(-limit, limit, size=shape).astype(dtype, copy=False)


@WeightInitializer.register_initializer("glorot_normal")
def glorot_normal(
    shape: Tuple[int, ...], *, dtype=np.float32, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Sample Glorot-normal weights with ``std = sqrt(2 / (fan_in + fan_out))``."""
    fan_in, fan_out = _calculate_fan_in_and_fan_out(tuple(shape))
    std = math.sqrt(2.0 / float(fan_in + fan_out))
    return (_generator(rng).standard_normal(size=shape) * std).astype(dtype, copy=False)

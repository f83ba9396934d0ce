"""
Weight initialization public API.

Importing this module registers the built-in initializers (Glorot and
constants) into the `WeightInitializer` registry via import side effects.

Exports
-------
- WeightInitializer:
    The registry-backed dispatcher used by layers to create parameters.
- glorot_limit:
    The Glorot-uniform bound for a weight shape.
"""

from ._glorot import glorot_limit
from ._constants import *
from ._base import WeightInitializer

__all__ = [
    WeightInitializer.__name__,
    glorot_limit.__name__,
]

"""
Abstract interfaces and utilities for weight initialization.

This module defines the abstract base class for weight initializers, along
with the shared helper computing fan-in and fan-out from a weight shape.

Weights in this project are laid out input-major: a dense weight is
`(fan_in, fan_out)` and a convolution filter is `(kh, kw, c_in, c_out)`.
Fan values are read from the last two dimensions.
"""

from typing import Callable, Dict, Tuple, TypeVar
from abc import ABC

from .._errors import ShapeError


T = TypeVar("T", bound=Callable[..., object])


class _WeightInitializer(ABC):
    """
    Abstract base class for weight initializer dispatchers.

    Design notes
    ------------
    - Initializers are identified by string names.
    - Each initializer is a callable taking a shape (and an optional random
      generator) and returning a freshly sampled array.
    - This class does not prescribe how initializers are stored; it only
      defines the expected interface.
    """

    INITIALIZERS: Dict[str, Callable] = {}

    def __init__(self, initializer_name: str) -> None:
        """
        Construct a weight initializer dispatcher.

        Parameters
        ----------
        initializer_name:
            The string key identifying a registered initializer.
        """
        ...

    @classmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """
        Register a weight initializer under a given name.

        Parameters
        ----------
        name:
            Name used to identify the initializer.
        overwrite:
            Whether to allow overwriting an existing registration.

        Returns
        -------
        Callable
            A decorator that registers the initializer function.
        """
        ...

    @classmethod
    def available(cls) -> Tuple[str, ...]:
        """Return the sorted names of all registered initializers."""
        ...


def _calculate_fan_in_and_fan_out(shape: Tuple[int, ...]) -> Tuple[int, int]:
    """
    Compute fan-in and fan-out for a weight shape.

    The last two dimensions are read as `(fan_in, fan_out)`; leading
    dimensions (e.g. a convolution's kernel height and width) do not
    contribute.

    Parameters
    ----------
    shape:
        Shape of the weight tensor.

    Returns
    -------
    tuple[int, int]
        A tuple of (fan_in, fan_out).

    Raises
    ------
    ShapeError
        If the shape has fewer than two dimensions, or if
        `fan_in + fan_out == 0`.
    """
    if len(shape) < 2:
        raise ShapeError(
            f"weight shape needs at least 2 dimensions, got {tuple(shape)}",
            tuple(shape),
        )
    fan_in = int(shape[-2])
    fan_out = int(shape[-1])
    if fan_in + fan_out == 0:
        raise ShapeError(
            f"fan_in + fan_out must be non-zero for shape {tuple(shape)}",
            tuple(shape),
        )
    return fan_in, fan_out

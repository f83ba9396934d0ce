"""
Weight initializer registry and dispatch utilities.

This module defines the concrete `WeightInitializer` used by layers to create
their initial parameter arrays from a registered strategy name.

Design
------
- Initializers are registered by string name via a decorator-based registry.
- Each initializer is a callable ``(shape, *, dtype, rng) -> np.ndarray``
  returning a freshly sampled array.
- The dispatcher resolves an initializer by name at construction time and
  invokes it via `__call__`.

Usage example
-------------
Registering an initializer:

    @WeightInitializer.register_initializer("glorot_uniform")
    def glorot_uniform(shape, *, dtype=np.float32, rng=None) -> np.ndarray:
        ...

Applying an initializer:

    init = WeightInitializer("glorot_uniform")
    weight = init((784, 30))
"""

from __future__ import annotations

from typing import Any, Callable, ClassVar, Dict, Optional, Tuple, TypeVar

import numpy as np

from ....domain.utils._weight_initialization import _WeightInitializer

T = TypeVar("T", bound=Callable[..., np.ndarray])


def _generator(rng: Optional[np.random.Generator]) -> np.random.Generator:
    """Return `rng`, or a generator drawing from NumPy's global seed state."""
    if rng is not None:
        return rng
    return np.random.default_rng(np.random.randint(0, 2**31 - 1))


class WeightInitializer(_WeightInitializer):
    """
    Registry-backed weight initializer dispatcher.

    Usage
    -----
    Register:
        @WeightInitializer.register_initializer("zeros")
        def zeros(shape, *, dtype=np.float32, rng=None) -> np.ndarray: ...

    Dispatch:
        init = WeightInitializer("zeros")
        init((3, 4))

    Notes
    -----
    - Initializers are stored by string name in a class-level registry.
    - Without an explicit `rng`, sampling draws its seed from
      `np.random`, so `np.random.seed` makes layer construction reproducible.
    """

    INITIALIZERS: ClassVar[Dict[str, Callable[..., np.ndarray]]] = {}

    def __init__(self, initializer_name: str) -> None:
        try:
            self._initializer: Callable[..., np.ndarray] = self.INITIALIZERS[
                initializer_name
            ]
        except KeyError as e:
            available = ", ".join(sorted(self.INITIALIZERS)) or "<none>"
            raise ValueError(
                f"Unsupported initializer name: {initializer_name!r}. "
                f"Available: {available}"
            ) from e
        self.name = initializer_name

    @classmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """
        Decorator to register a weight initializer under `name`.

        Parameters
        ----------
        name:
            Registry key used to retrieve the initializer later.
        overwrite:
            If False (default), raises if `name` is already registered.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Initializer name must be a non-empty string")

        def decorator(func: T) -> T:
            if not overwrite and name in cls.INITIALIZERS:
                raise ValueError(f"Initializer already registered: {name!r}")
            cls.INITIALIZERS[name] = func
            return func

        return decorator

    @classmethod
    def available(cls) -> Tuple[str, ...]:
        """Return registered initializer names (sorted)."""
        return tuple(sorted(cls.INITIALIZERS))

    def __call__(
        self,
        shape: Tuple[int, ...],
        *,
        dtype: Any = np.float32,
        rng: Optional[np.random.Generator] = None,
    ) -> np.ndarray:
        return self._initializer(tuple(int(d) for d in shape), dtype=dtype, rng=rng)

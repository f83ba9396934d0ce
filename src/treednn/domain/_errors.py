"""
Error types for treednn.

This module defines the exceptions raised by the parameter-update core. They
fall into two groups:

- construction-time validation errors (`HyperparameterError`, `ShapeError`),
  raised eagerly by constructors before any training happens;
- structural congruence errors (`StructuralMismatchError`), raised when two
  parameter trees that must share one shape do not. These indicate a bug in
  layer composition and are never caught or retried inside the core.

Numeric edge cases (division by a near-zero variance or second moment) are
not errors: every normalization and update rule carries an additive
`epsilon` instead.
"""

from __future__ import annotations

from typing import Any, Optional


class HyperparameterError(ValueError):
    """
    Raised when a hyperparameter lies outside its valid range.

    Attributes
    ----------
    name : str
        Name of the offending hyperparameter (e.g., "learning_rate").
    value : Any
        The rejected value.
    """

    def __init__(self, name: str, value: Any, requirement: str) -> None:
        """
        Initialize the HyperparameterError.

        Parameters
        ----------
        name : str
            Hyperparameter name.
        value : Any
            Value that was rejected.
        requirement : str
            Human-readable description of the valid range
            (e.g., "must be non-negative").
        """
        super().__init__(f"{name} {requirement}, got {value!r}")
        self.name = name
        self.value = value


class ShapeError(ValueError):
    """
    Raised when a weight shape cannot be initialized or applied.

    This covers shapes with too few dimensions for fan computation and
    shapes whose fan-in plus fan-out is zero.
    """

    def __init__(self, message: str, shape: Optional[tuple] = None) -> None:
        super().__init__(message)
        self.shape = shape


class StructuralMismatchError(RuntimeError):
    """
    Raised when two parameter trees are not structurally congruent.

    Congruent trees enumerate the same addresses, in the same order, with
    the same leaf shapes. A mismatch between a model's parameter tree and its
    gradient tree (or an optimizer's state tree) means the update would apply
    a rule to the wrong parameter, so it is treated as fatal.

    Attributes
    ----------
    expected : Any
        Description of the expected entry (address and shape), or None when
        one tree simply has more leaves than the other.
    actual : Any
        Description of the entry found instead, or None.
    """

    def __init__(self, expected: Any, actual: Any, *, where: str = "") -> None:
        """
        Initialize the StructuralMismatchError.

        Parameters
        ----------
        expected : Any
            First entry of the reference tree that did not match.
        actual : Any
            Corresponding entry of the other tree.
        where : str, optional
            Name of the operation that detected the mismatch.
        """
        prefix = f"{where}: " if where else ""
        super().__init__(
            f"{prefix}parameter trees are not congruent: "
            f"expected {expected!r}, got {actual!r}."
        )
        self.expected = expected
        self.actual = actual

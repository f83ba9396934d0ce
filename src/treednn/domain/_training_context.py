"""
Training / inference mode flag.

`TrainingContext` is the single mode flag shared by every layer of a model
whose behavior differs between training and inference (currently only batch
normalization). Instead of a shared mutable object aliased by every layer,
the flag is an immutable value passed explicitly into every forward call:

    y = model.forward(x, TrainingContext.inference())

The training loop is the only writer: it decides which context to pass for a
step. Because the value is frozen, every layer in one forward pass observes
the same snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TrainingContext:
    """
    Immutable training/inference mode flag.

    Attributes
    ----------
    training : bool
        True selects the training path (batch statistics, running-statistic
        updates); False selects the inference path.
    """

    training: bool = True

    @classmethod
    def train(cls) -> "TrainingContext":
        """Return a context selecting training behavior."""
        return cls(training=True)

    @classmethod
    def inference(cls) -> "TrainingContext":
        """Return a context selecting inference behavior."""
        return cls(training=False)


def resolve_context(context: Optional[TrainingContext]) -> TrainingContext:
    """
    Return `context`, or the default (training) context when None.

    Parameters
    ----------
    context : Optional[TrainingContext]
        Context supplied by the caller.

    Returns
    -------
    TrainingContext
        A concrete context.

    Raises
    ------
    TypeError
        If `context` is neither None nor a `TrainingContext`.
    """
    if context is None:
        return TrainingContext()
    if not isinstance(context, TrainingContext):
        raise TypeError(
            f"context must be a TrainingContext or None, got {type(context).__name__}"
        )
    return context

"""
Differentiation facade for treednn.

There is no graph-tracing engine. Each differentiable primitive is a
`Function` with a static forward / backward pair, and each layer composes
those pairs into a *pullback*: a closure mapping an output gradient to the
gradient of the layer's parameter tree and the gradient of its input.

This module exposes:

- `call_function`: run one `Function` forward and return its backward closure
- `value_with_pullback`: run a layer forward and return its pullback
- `value_with_gradient`: layer + loss -> (loss value, parameter gradient tree)
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Tuple, Type

from ..domain._function import Function
from ..domain._layer import ILayer, Pullback
from ..domain._training_context import TrainingContext, resolve_context
from ._context import Context
from ._parameter_tree import ParameterTree


def call_function(
    fn: Type[Function], *inputs: Any, **kwargs: Any
) -> Tuple[Any, Callable[[Any], Tuple[Any, ...]]]:
    """
    Run `fn.forward` with a fresh `Context` and return its backward closure.

    Parameters
    ----------
    fn : Type[Function]
        The differentiable primitive.
    *inputs, **kwargs
        Forwarded to `fn.forward` after the context.

    Returns
    -------
    tuple
        ``(output, backward)`` where ``backward(grad_out)`` returns the
        gradients documented by `fn.backward`.
    """
    ctx = Context()
    out = fn.forward(ctx, *inputs, **kwargs)

    def backward(grad_out: Any) -> Tuple[Any, ...]:
        return fn.backward(ctx, grad_out)

    return out, backward


def value_with_pullback(
    layer: ILayer, x: Any, context: Optional[TrainingContext] = None
) -> Tuple[Any, Pullback]:
    """
    Return ``layer(x)`` together with the layer's pullback.

    Parameters
    ----------
    layer : ILayer
        Layer to differentiate.
    x : Any
        Input tensor.
    context : Optional[TrainingContext]
        Mode flag. None selects training mode.
    """
    return layer.value_with_pullback(x, resolve_context(context))


def value_with_gradient(
    layer: ILayer,
    x: Any,
    loss_fn: Any,
    target: Any,
    context: Optional[TrainingContext] = None,
) -> Tuple[float, ParameterTree]:
    """
    Compute a scalar loss and its gradient w.r.t. the layer's parameters.

    Parameters
    ----------
    layer : ILayer
        Model whose parameter tree is differentiated.
    x : Any
        Model input.
    loss_fn : Loss
        Loss object exposing ``value_with_pullback(y_pred, y_true)``.
    target : Any
        Ground truth passed to the loss.
    context : Optional[TrainingContext]
        Mode flag. None selects training mode.

    Returns
    -------
    tuple[float, ParameterTree]
        The loss value and a gradient tree congruent to
        ``layer.parameter_tree()``.

    Raises
    ------
    TypeError
        If `loss_fn` is not differentiable.
    StructuralMismatchError
        If the layer produced a gradient tree that is not congruent to its
        parameter tree.
    """
    if not hasattr(loss_fn, "value_with_pullback"):
        raise TypeError(
            f"loss_fn must provide value_with_pullback, got {type(loss_fn).__name__}"
        )
    y, pullback = value_with_pullback(layer, x, context)
    loss, loss_pullback = loss_fn.value_with_pullback(y, target)
    grad_tree, _ = pullback(loss_pullback(1.0))
    layer.parameter_tree().check_congruent(grad_tree, where="value_with_gradient")
    return float(loss), grad_tree

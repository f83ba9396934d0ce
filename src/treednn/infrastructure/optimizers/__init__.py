"""
Optimizers over parameter trees.

Importing this package registers every `OptimizerKind` with
`build_optimizer`.
"""

from ._base import LeafwiseOptimizer, Optimizer, build_optimizer, register_optimizer
from ._sgd import SGD
from ._rmsprop import RMSProp
from ._adam import Adam
from ._riemann_sgd import RiemannSGD

__all__ = [
    Optimizer.__name__,
    LeafwiseOptimizer.__name__,
    SGD.__name__,
    RMSProp.__name__,
    Adam.__name__,
    RiemannSGD.__name__,
    build_optimizer.__name__,
    register_optimizer.__name__,
]

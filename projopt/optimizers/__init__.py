"""
Optimizers - drive strategies through verification and rollback

Example:
    ```python
    from projopt.optimizers import ProjectionOptimizer

    optimizer = ProjectionOptimizer()
    result = optimizer.optimize(["id", "name", "email"], {"supportsLazyLoading": True})
    print(result.get_summary())
    ```
"""

from projopt.optimizers.base import OptimizationResult
from projopt.optimizers.projection import OptimizerConfig, ProjectionOptimizer
from projopt.optimizers.query import QueryOptimizer, QueryOptimizerConfig

__all__ = [
    "OptimizationResult",
    "ProjectionOptimizer",
    "OptimizerConfig",
    "QueryOptimizer",
    "QueryOptimizerConfig",
]

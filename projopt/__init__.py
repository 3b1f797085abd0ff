"""
projopt - rewrite-and-verify optimizer for projections and structured queries

Takes a projection (fields to include/exclude, possibly nested) or a query
(filter/sort/join/projection) and rewrites it into a cheaper equivalent.
Every accepted rewrite preserves the request's semantics and improves the
estimated cost by at least a configurable margin; rejected rewrites are
rolled back and kept in an audit ledger.
"""

__version__ = "0.1.0"

# Main API
from projopt.core.analysis import analyze, analyze_query
from projopt.core.context import CancellationToken, OptimizationContext
from projopt.core.cost import CostEstimate, HeuristicQueryCostModel, estimate_projection_cost
from projopt.core.descriptor import Descriptor, FieldSpec, to_descriptor
from projopt.core.errors import (
    ConfigurationError,
    OptimizationCancelled,
    OptimizerError,
    StrategyExecutionError,
    ValidationError,
)
from projopt.core.query import Query, to_query
from projopt.optimizers.projection import OptimizerConfig, ProjectionOptimizer
from projopt.optimizers.query import QueryOptimizer, QueryOptimizerConfig

__all__ = [
    "__version__",
    "analyze",
    "analyze_query",
    "estimate_projection_cost",
    "to_descriptor",
    "to_query",
    "Descriptor",
    "FieldSpec",
    "Query",
    "CostEstimate",
    "HeuristicQueryCostModel",
    "OptimizationContext",
    "CancellationToken",
    "ProjectionOptimizer",
    "OptimizerConfig",
    "QueryOptimizer",
    "QueryOptimizerConfig",
    "OptimizerError",
    "ValidationError",
    "ConfigurationError",
    "StrategyExecutionError",
    "OptimizationCancelled",
]

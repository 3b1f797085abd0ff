"""
Rewrite strategies

Every strategy exposes apply(target, context) -> target and the typed
run(target, context) -> StrategyOutcome:

- Projection: FieldSelectionStrategy, PushdownStrategy, LazyLoadingStrategy
- Query: IndexStrategy, FilterStrategy, JoinStrategy, SortStrategy,
  ProjectionStrategy
"""

from projopt.strategies.base import OutcomeStatus, Strategy, StrategyOutcome
from projopt.strategies.field_selection import FieldSelectionStrategy
from projopt.strategies.lazy_loading import LazyLoadingStrategy
from projopt.strategies.pushdown import PushdownStrategy
from projopt.strategies.query import (
    FilterStrategy,
    IndexStrategy,
    JoinStrategy,
    ProjectionStrategy,
    QueryStrategy,
    SortStrategy,
)

__all__ = [
    "Strategy",
    "StrategyOutcome",
    "OutcomeStatus",
    "FieldSelectionStrategy",
    "PushdownStrategy",
    "LazyLoadingStrategy",
    "QueryStrategy",
    "IndexStrategy",
    "FilterStrategy",
    "JoinStrategy",
    "SortStrategy",
    "ProjectionStrategy",
]

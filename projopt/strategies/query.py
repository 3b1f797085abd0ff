"""
Query rewrite strategies

Same contract as the projection strategies, over a structured Query. Each
class is an extension point: subclass and override can_optimize()/rewrite()
to plug in engine-specific rules. The shipped rewrites are deliberately
conservative and never change a query's result:

- IndexStrategy: hint the most selective indexed filter column
- FilterStrategy: drop duplicate predicates, evaluate selective ones first
- JoinStrategy: order independent inner joins smallest table first
- SortStrategy: drop repeated sort keys
- ProjectionStrategy: drop redundant exclusions from the projection
"""

from dataclasses import replace
from typing import Any, List

from projopt.core.analysis import QueryAnalysis, analyze_query
from projopt.core.context import OptimizationContext
from projopt.core.cost import selectivity_for
from projopt.core.query import JoinClause, Query, to_query
from projopt.strategies.base import Strategy
from projopt.strategies.field_selection import FieldSelectionStrategy


class QueryStrategy(Strategy):
    """
    Base class for query rewrites

    The default implementation is a pass-through: it always claims to apply
    and returns the query unchanged.
    """

    name = "query"

    def normalize(self, target: Any) -> Query:
        return to_query(target)

    def analyze(self, target: Query, context: OptimizationContext) -> QueryAnalysis:
        return analyze_query(target, context)

    def can_optimize(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> bool:
        return True

    def rewrite(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> Query:
        return query


class IndexStrategy(QueryStrategy):
    """
    Point the source at an index

    Indexed columns come from context.field_statistics. Among the filter
    conditions on indexed columns, the most selective one is recorded as
    hints["index"].
    """

    name = "index"
    description = "Optimizes query to use indexes"

    def _indexed(self, context: OptimizationContext) -> set:
        if not context.field_statistics:
            return set()
        return {name for name, stats in context.field_statistics.items() if stats.indexed}

    def can_optimize(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> bool:
        if "index" in query.hints:
            return False
        indexed = self._indexed(context)
        return any(column in indexed for column in analysis.filtered_columns)

    def rewrite(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> Query:
        indexed = self._indexed(context)
        candidates = [c for c in query.filters if c.column in indexed]
        best = min(candidates, key=lambda c: selectivity_for(query, c, context))
        return query.with_hints(index=best.column)


class FilterStrategy(QueryStrategy):
    """
    Tidy the filter section

    Conditions are ANDed, so duplicates are dropped and the rest are
    ordered by ascending estimated selectivity (stable for ties).
    """

    name = "filter"
    description = "Optimizes filter conditions"

    def can_optimize(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> bool:
        return analysis.filter_count > 1

    def rewrite(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> Query:
        unique = list(dict.fromkeys(query.filters))
        ordered = sorted(unique, key=lambda c: selectivity_for(query, c, context))
        if tuple(ordered) == query.filters:
            return query
        return replace(query, filters=tuple(ordered))


class JoinStrategy(QueryStrategy):
    """
    Join smaller tables first

    Only inner joins whose left key is qualified with the base source
    (orders.customer_id) are reordered. An unqualified key may belong to
    any joined source, so such queries keep their join order. Row counts
    come from context.table_statistics.
    """

    name = "join"
    description = "Optimizes join operations"

    def can_optimize(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> bool:
        if analysis.join_count < 2 or not context.table_statistics:
            return False
        if any(j.join_type != "INNER" for j in query.joins):
            return False
        if not query.source:
            return False
        return all(self._keyed_on_base(j, query.source) for j in query.joins)

    def _keyed_on_base(self, join: JoinClause, source: str) -> bool:
        if "." not in join.on_left:
            return False
        return join.on_left.split(".", 1)[0] == source

    def rewrite(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> Query:
        stats = context.table_statistics

        def rows(join: JoinClause) -> float:
            if join.right_source in stats:
                return stats[join.right_source].row_count
            return float("inf")

        ordered = sorted(query.joins, key=rows)
        if tuple(ordered) == query.joins:
            return query
        return replace(query, joins=tuple(ordered))


class SortStrategy(QueryStrategy):
    """
    Drop repeated sort keys

    A later key on an already-sorted column never changes the order, so
    only the first occurrence of each column is kept.
    """

    name = "sort"
    description = "Optimizes sort operations"

    def can_optimize(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> bool:
        return len(set(analysis.sort_columns)) < analysis.sort_count

    def rewrite(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> Query:
        seen = set()
        keys: List = []
        for key in query.sort:
            if key.column not in seen:
                seen.add(key.column)
                keys.append(key)
        return replace(query, sort=tuple(keys))


class ProjectionStrategy(QueryStrategy):
    """Drop redundant exclusion entries from the query's projection"""

    name = "projection"
    description = "Optimizes projections"

    def __init__(self):
        self._field_selection = FieldSelectionStrategy(min_included_fields=0)

    def can_optimize(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> bool:
        return query.projection is not None

    def rewrite(self, query: Query, analysis: QueryAnalysis, context: OptimizationContext) -> Query:
        projection = self._field_selection.apply(query.projection, context)
        if projection is query.projection:
            return query
        return replace(query, projection=projection)

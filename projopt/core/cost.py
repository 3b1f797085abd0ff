"""
Cost estimation

Provides the local cost estimator used for projections and a heuristic
query cost model that can serve as the external cost-model collaborator of
the query optimizer.

Costs are in abstract units. Lower is better. The goal is to compare a
descriptor against its rewrite, not to predict absolute runtime.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from projopt.core.analysis import Analysis, analyze
from projopt.core.context import ColumnStatistics, OptimizationContext
from projopt.core.descriptor import to_descriptor
from projopt.core.query import Condition, Query, to_query


@dataclass(frozen=True)
class CostEstimate:
    """
    Three-part cost estimate

    total_cost is always retrieval + processing + memory.
    """

    retrieval_cost: float = 0.0
    processing_cost: float = 0.0
    memory_cost: float = 0.0

    def __post_init__(self):
        for name in ("retrieval_cost", "processing_cost", "memory_cost"):
            value = getattr(self, name)
            if math.isnan(value) or value < 0:
                raise ValueError(f"{name} must be a non-negative number, got {value}")

    @property
    def total_cost(self) -> float:
        return self.retrieval_cost + self.processing_cost + self.memory_cost

    @classmethod
    def from_value(cls, value: Any) -> "CostEstimate":
        """
        Coerce a cost model's answer into a CostEstimate

        Accepts a CostEstimate, a mapping with retrieval/processing/memory
        components (camelCase or snake_case), or a mapping or number holding
        only a total, which is booked as processing cost.
        """
        if isinstance(value, CostEstimate):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return cls(processing_cost=float(value))
        if isinstance(value, Mapping):
            parts = {}
            for name, camel in (
                ("retrieval_cost", "retrievalCost"),
                ("processing_cost", "processingCost"),
                ("memory_cost", "memoryCost"),
            ):
                if name in value or camel in value:
                    parts[name] = float(value.get(name, value.get(camel)))
            if parts:
                return cls(**parts)
            total = value.get("total_cost", value.get("totalCost"))
            if total is not None:
                return cls(processing_cost=float(total))
        raise ValueError(f"Cannot interpret cost estimate: {value!r}")

    def to_dict(self) -> Dict[str, float]:
        return {
            "retrieval_cost": self.retrieval_cost,
            "processing_cost": self.processing_cost,
            "memory_cost": self.memory_cost,
            "total_cost": self.total_cost,
        }


class CostEstimator:
    """
    Local cost model for projections

    retrieval  = (eager included + 1.5 per eager nested field) * base_field_cost
                 * data_source_cost_factor
    processing = (score * base_processing_cost + depth * base_processing_cost * 2)
                 * (1 - PUSHDOWN_PROCESSING_DISCOUNT * pushed ratio)
    memory     = total fields * base_memory_cost + depth * base_memory_cost * 1.5

    Lazy fields are fetched on demand and carry no retrieval cost up front.
    """

    # Cost constants (tunable)
    NESTED_RETRIEVAL_SURCHARGE = 1.5
    NESTED_PROCESSING_SURCHARGE = 2.0
    NESTED_MEMORY_SURCHARGE = 1.5
    PUSHDOWN_PROCESSING_DISCOUNT = 0.5

    def estimate(self, analysis: Analysis, context: Optional[OptimizationContext] = None) -> CostEstimate:
        """
        Estimate the cost of an analyzed projection

        Args:
            analysis: Result of analyze()
            context: Supplies the numeric cost knobs

        Returns:
            Cost estimate
        """
        context = context or OptimizationContext()
        return CostEstimate(
            retrieval_cost=self.retrieval_cost(analysis, context),
            processing_cost=self.processing_cost(analysis, context),
            memory_cost=self.memory_cost(analysis, context),
        )

    def retrieval_cost(self, analysis: Analysis, context: OptimizationContext) -> float:
        fields = analysis.fields
        lazy = set(fields.lazy_fields)
        eager_included = sum(1 for f in fields.included_fields if f not in lazy)
        eager_nested = sum(1 for f in fields.nested_fields if f not in lazy)

        base = context.base_field_cost
        cost = eager_included * base
        cost += eager_nested * base * self.NESTED_RETRIEVAL_SURCHARGE
        return cost * context.data_source_cost_factor

    def processing_cost(self, analysis: Analysis, context: OptimizationContext) -> float:
        base = context.base_processing_cost
        complexity = analysis.complexity

        cost = complexity.complexity_score * base
        cost += complexity.nested_depth * base * self.NESTED_PROCESSING_SURCHARGE

        if analysis.fields.pushed_count and analysis.fields.count:
            pushed_ratio = analysis.fields.pushed_count / analysis.fields.count
            cost *= 1 - self.PUSHDOWN_PROCESSING_DISCOUNT * pushed_ratio
        return cost

    def memory_cost(self, analysis: Analysis, context: OptimizationContext) -> float:
        base = context.base_memory_cost
        complexity = analysis.complexity

        cost = complexity.total_field_count * base
        cost += complexity.nested_depth * base * self.NESTED_MEMORY_SURCHARGE
        return cost


_default_estimator = CostEstimator()


def estimate_projection_cost(projection: Any, context: Optional[OptimizationContext] = None) -> CostEstimate:
    """
    Analyze a projection and estimate its cost with the default estimator

    Args:
        projection: Descriptor or raw projection
        context: Optimization context

    Returns:
        Cost estimate
    """
    context = context or OptimizationContext()
    return _default_estimator.estimate(analyze(to_descriptor(projection), context), context)


class HeuristicQueryCostModel:
    """
    Statistics-driven cost model for structured queries

    Implements the estimate_query_cost() contract the query optimizer
    expects from its cost-model engine. Row counts come from
    context.table_statistics; unknown sources default to DEFAULT_ROW_COUNT.

    Note:
        These are rough heuristics. Predicates are charged in order on the
        rows that survived the previous ones, so selective predicates first
        are cheaper. An index hint on a filtered column shrinks the scan.
    """

    # Cost constants (tunable)
    COST_PER_ROW_SCAN = 1.0  # Cost to read one row
    COST_PER_ROW_FILTER = 0.1  # Cost to evaluate one predicate on one row
    COST_PER_ROW_PROJECT = 0.05  # Cost to project one field of one row
    COST_PER_ROW_SORT = 2.0  # Cost to sort one row (N log N)
    COST_PER_ROW_HASH = 1.5  # Cost to hash one row (for joins)
    COST_PER_ROW_JOIN = 0.5  # Cost to probe one row
    COST_PER_ROW_MEMORY = 0.01  # Cost to hold one field of one row

    DEFAULT_ROW_COUNT = 1000
    DEFAULT_FIELD_COUNT = 10

    def estimate_query_cost(
        self, query: Any, context: Optional[OptimizationContext] = None
    ) -> CostEstimate:
        """
        Estimate the cost of executing a query

        Args:
            query: Query or raw query mapping
            context: Supplies table statistics and data_source_cost_factor

        Returns:
            Cost estimate
        """
        context = context or OptimizationContext()
        query = to_query(query)

        rows = self._row_count(query.source, context)
        stats = self._column_stats(query.source, context)

        # Scan, possibly through an index
        filters = list(query.filters)
        index_column = query.hints.get("index")
        scanned = float(rows)
        if index_column:
            for i, condition in enumerate(filters):
                if condition.column == index_column:
                    scanned = rows * self.estimate_selectivity(condition, stats.get(condition.column))
                    del filters[i]
                    break
        retrieval = self.estimate_scan_cost(scanned) * context.data_source_cost_factor

        # Filters, charged on surviving rows
        processing = 0.0
        remaining = scanned
        for condition in filters:
            processing += remaining * self.COST_PER_ROW_FILTER
            remaining *= self.estimate_selectivity(condition, stats.get(condition.column))

        # Joins, left-deep in the given order
        for join in query.joins:
            right_rows = self._row_count(join.right_source, context)
            processing += self.estimate_join_cost(remaining, right_rows)
            if join.join_type == "INNER":
                remaining = min(remaining, right_rows)

        # Sort, one pass per key
        if query.sort:
            processing += self.estimate_sort_cost(remaining) * len(query.sort)

        if query.limit is not None:
            remaining = min(remaining, query.limit)

        # Projection
        if query.projection is not None:
            field_count = analyze(query.projection, context).complexity.total_field_count
            output_fields = len(query.projection.included_fields) or self.DEFAULT_FIELD_COUNT
        else:
            field_count = output_fields = self.DEFAULT_FIELD_COUNT
        processing += remaining * field_count * self.COST_PER_ROW_PROJECT

        memory = remaining * output_fields * self.COST_PER_ROW_MEMORY

        return CostEstimate(retrieval_cost=retrieval, processing_cost=processing, memory_cost=memory)

    def _row_count(self, source: Optional[str], context: OptimizationContext) -> int:
        if source and context.table_statistics and source in context.table_statistics:
            return context.table_statistics[source].row_count
        return self.DEFAULT_ROW_COUNT

    def _column_stats(self, source: Optional[str], context: OptimizationContext) -> Dict[str, ColumnStatistics]:
        if source and context.table_statistics and source in context.table_statistics:
            return context.table_statistics[source].column_stats
        return {}

    @classmethod
    def estimate_scan_cost(cls, row_count: float) -> float:
        return row_count * cls.COST_PER_ROW_SCAN

    @classmethod
    def estimate_join_cost(cls, left_rows: float, right_rows: float) -> float:
        """
        Estimate cost of hash join

        Builds the hash table on the smaller side and probes with the larger.
        """
        build_rows = min(left_rows, right_rows)
        probe_rows = max(left_rows, right_rows)
        return build_rows * cls.COST_PER_ROW_HASH + probe_rows * cls.COST_PER_ROW_JOIN

    @classmethod
    def estimate_sort_cost(cls, row_count: float) -> float:
        """Estimate cost of sorting (O(N log N))"""
        if row_count <= 1:
            return 0.0
        return row_count * math.log2(row_count) * cls.COST_PER_ROW_SORT

    @classmethod
    def estimate_selectivity(
        cls, condition: Condition, stats: Optional[ColumnStatistics] = None
    ) -> float:
        """
        Estimate selectivity of a filter condition

        Args:
            condition: Filter condition
            stats: Column statistics (if available)

        Returns:
            Estimated selectivity (0.0-1.0)
        """
        op = condition.operator

        if op == "=":
            if stats and stats.distinct_count > 0:
                return 1.0 / stats.distinct_count
            return 0.1

        elif op in (">", "<", ">=", "<="):
            return 0.5

        elif op == "!=":
            if stats and stats.distinct_count > 0:
                return 1.0 - (1.0 / stats.distinct_count)
            return 0.9

        elif op == "IN":
            count = len(condition.value)
            if stats and stats.distinct_count > 0:
                return min(1.0, count / stats.distinct_count)
            return min(1.0, 0.1 * count)

        else:
            return 0.5


def selectivity_for(query: Query, condition: Condition, context: OptimizationContext) -> float:
    """Selectivity of a condition using the query source's column statistics"""
    stats = None
    if query.source and context.table_statistics and query.source in context.table_statistics:
        stats = context.table_statistics[query.source].column_stats.get(condition.column)
    return HeuristicQueryCostModel.estimate_selectivity(condition, stats)

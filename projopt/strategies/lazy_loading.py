"""
Lazy Loading Strategy

Splits the included fields of a projection into an eagerly fetched subset
and a deferred (lazy) subset. The logical field set never changes; only
fetch timing does.
"""

from typing import List

from projopt.core.analysis import Analysis
from projopt.core.context import OptimizationContext
from projopt.core.descriptor import (
    Descriptor,
    FieldSpec,
    LazyLoadingInfo,
    transform_descriptor,
)
from projopt.strategies.base import Strategy
from projopt.strategies.ranking import rank_fields


class LazyLoadingStrategy(Strategy):
    """
    Defer low-priority fields

    Benefits:
    - Smaller initial payload for wide projections
    - Large, rarely read fields (content, images) are fetched on demand

    Conditions:
    1. Context says the caller supports lazy loading
    2. More included fields than eager_load_limit, or, with field sizes
       known, the eager subset covers less than half the total bytes

    Example:
        12 included fields, eager_load_limit=10

        The 10 highest-priority fields stay eager, the other 2 become
        {include, lazy: True, original: spec}.
    """

    name = "lazy_loading"
    description = "Defers low-priority fields to on-demand loading"

    def __init__(
        self,
        eager_load_limit: int = 10,
        use_field_statistics: bool = True,
        prioritize_id_fields: bool = True,
    ):
        """
        Args:
            eager_load_limit: Maximum number of fields to load eagerly
            use_field_statistics: Rank with context.field_statistics
            prioritize_id_fields: Give identifier-like fields top priority
        """
        self.eager_load_limit = eager_load_limit
        self.use_field_statistics = use_field_statistics
        self.prioritize_id_fields = prioritize_id_fields

    def can_optimize(self, descriptor: Descriptor, analysis: Analysis, context: OptimizationContext) -> bool:
        if context.supports_lazy_loading is not True:
            return False

        # Already partitioned
        if descriptor.metadata.lazy_loading is not None:
            return False

        return self._is_beneficial(analysis, context)

    def _is_beneficial(self, analysis: Analysis, context: OptimizationContext) -> bool:
        included = analysis.fields.included_fields
        if len(included) > self.eager_load_limit:
            return True

        if context.field_sizes:
            eager = set(self.fields_by_priority(analysis, context)[: self.eager_load_limit])
            total_size = 0.0
            eager_size = 0.0
            for name in included:
                size = context.field_sizes.get(name) or 1
                total_size += size
                if name in eager:
                    eager_size += size
            if eager_size < total_size * 0.5:
                return True

        return False

    def fields_by_priority(self, analysis: Analysis, context: OptimizationContext) -> List[str]:
        """Included fields, highest priority first"""
        statistics = context.field_statistics if self.use_field_statistics else None
        return rank_fields(analysis.fields.included_fields, statistics, self.prioritize_id_fields)

    def rewrite(self, descriptor: Descriptor, analysis: Analysis, context: OptimizationContext) -> Descriptor:
        ranked = self.fields_by_priority(analysis, context)
        eager_fields = ranked[: self.eager_load_limit]
        lazy_fields = ranked[self.eager_load_limit :]
        lazy_set = set(lazy_fields)

        def mark_lazy(name: str, spec: FieldSpec) -> FieldSpec:
            if name not in lazy_set:
                return spec
            return FieldSpec(
                include=spec.include,
                nested=spec.nested,
                lazy=True,
                pushed=spec.pushed,
                original=spec,
            )

        transformed = transform_descriptor(descriptor, mark_lazy)
        return transformed.with_metadata(
            lazy_loading=LazyLoadingInfo(
                enabled=True,
                eager_fields=tuple(eager_fields),
                lazy_fields=tuple(lazy_fields),
                eager_load_limit=self.eager_load_limit,
            )
        )

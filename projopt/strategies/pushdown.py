"""
Projection Pushdown Strategy

Marks the fields a data source can evaluate on its side, so projection work
happens at the source instead of after the fetch. The field set itself is
never changed: fields the source cannot handle stay as residual fields,
evaluated locally.
"""

from typing import List, Set

from projopt.core.analysis import Analysis, analyze_complexity
from projopt.core.context import DataSourceCapabilities, OptimizationContext
from projopt.core.descriptor import Descriptor, FieldSpec, PushdownInfo, transform_descriptor
from projopt.strategies.base import Strategy
from projopt.strategies.ranking import rank_fields


class PushdownStrategy(Strategy):
    """
    Push projection evaluation to the data source

    Benefits:
    - Less data leaves the source
    - Source-native projection is cheaper than post-fetch filtering

    Conditions:
    1. context.supports_projection_pushdown is true
    2. complexity score is above min_complexity_score (default 10)
    3. The data source supports projection at all

    A field is pushable when the source supports its kind (inclusion or
    exclusion) and, for nested fields, nested projection up to
    max_projection_depth. When more fields are pushable than
    max_projection_fields, the highest-priority ones are pushed.
    """

    name = "pushdown"
    description = "Marks fields for evaluation by the data source"

    def __init__(self, min_complexity_score: float = 10):
        self.min_complexity_score = min_complexity_score

    def can_optimize(self, descriptor: Descriptor, analysis: Analysis, context: OptimizationContext) -> bool:
        if not context.supports_projection_pushdown:
            return False

        if descriptor.metadata.pushdown is not None:
            return False

        if analysis.complexity.complexity_score <= self.min_complexity_score:
            return False

        return self.capabilities(context).supports_projection

    def capabilities(self, context: OptimizationContext) -> DataSourceCapabilities:
        return context.data_source_capabilities or DataSourceCapabilities()

    def rewrite(self, descriptor: Descriptor, analysis: Analysis, context: OptimizationContext) -> Descriptor:
        capabilities = self.capabilities(context)

        pushable = [
            name
            for name, spec in descriptor.fields.items()
            if self._is_pushable(spec, capabilities)
        ]
        pushed = self._cap(pushable, capabilities, context)
        if not pushed:
            return descriptor

        def mark_pushed(name: str, spec: FieldSpec) -> FieldSpec:
            if name not in pushed:
                return spec
            return FieldSpec(
                include=spec.include,
                nested=spec.nested,
                lazy=spec.lazy,
                pushed=True,
                original=spec.original,
            )

        transformed = transform_descriptor(descriptor, mark_pushed)
        pushed_fields = tuple(name for name in descriptor.fields if name in pushed)
        residual_fields = tuple(name for name in descriptor.fields if name not in pushed)
        return transformed.with_metadata(
            pushdown=PushdownInfo(
                enabled=True,
                pushed_fields=pushed_fields,
                residual_fields=residual_fields,
            )
        )

    def _is_pushable(self, spec: FieldSpec, capabilities: DataSourceCapabilities) -> bool:
        if spec.include and not capabilities.supports_inclusion:
            return False
        if not spec.include and not capabilities.supports_exclusion:
            return False
        if spec.nested is not None:
            if not capabilities.supports_nested:
                return False
            depth = 1 + analyze_complexity(spec.nested).nested_depth
            if depth > capabilities.max_projection_depth:
                return False
        return True

    def _cap(
        self,
        pushable: List[str],
        capabilities: DataSourceCapabilities,
        context: OptimizationContext,
    ) -> Set[str]:
        limit = capabilities.max_projection_fields
        if not limit or len(pushable) <= limit:
            return set(pushable)
        ranked = rank_fields(pushable, context.field_statistics)
        return set(ranked[:limit])

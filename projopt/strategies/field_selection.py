"""
Field Selection Strategy

Tidies wide projections. By default it only removes exclusion entries that
are redundant in an inclusion projection, which leaves the included field
set untouched. Pruning included fields happens only when the strategy is
explicitly licensed to prune, and every pruned field is recorded in
metadata.field_selection.pruned_fields.
"""

from typing import Iterable, Optional

from projopt.core.analysis import Analysis
from projopt.core.context import OptimizationContext
from projopt.core.descriptor import Descriptor, FieldSelectionInfo, FieldSpec, transform_descriptor
from projopt.strategies.base import Strategy

# Exclusions that stay meaningful next to inclusions (Mongo-style _id)
DEFAULT_PRESERVED_EXCLUSIONS = ("_id",)


class FieldSelectionStrategy(Strategy):
    """
    Narrow what a wide projection asks the source to handle

    Conditions:
    1. More than min_included_fields (default 10) included fields
    2. There is something to drop: redundant exclusions, or, when licensed
       with prune=True, included fields missing from context.required_fields

    Example:
        {a..k: 1, secret: 0}  ->  {a..k: 1}

        In an inclusion projection every unlisted field is already left
        out, so the explicit 'secret: 0' only adds work.
    """

    name = "field_selection"
    description = "Drops redundant exclusions and, when licensed, unused fields"

    def __init__(
        self,
        min_included_fields: int = 10,
        prune: bool = False,
        preserved_exclusions: Optional[Iterable[str]] = None,
    ):
        """
        Args:
            min_included_fields: Only act on projections wider than this
            prune: Licence to drop included fields not in required_fields
            preserved_exclusions: Exclusions never considered redundant
        """
        self.min_included_fields = min_included_fields
        self.prune = prune
        if preserved_exclusions is None:
            preserved_exclusions = DEFAULT_PRESERVED_EXCLUSIONS
        self.preserved_exclusions = frozenset(preserved_exclusions)

    def can_optimize(self, descriptor: Descriptor, analysis: Analysis, context: OptimizationContext) -> bool:
        if analysis.fields.included_count <= self.min_included_fields:
            return False
        return bool(self._redundant_exclusions(analysis) or self._prunable(analysis, context))

    def rewrite(self, descriptor: Descriptor, analysis: Analysis, context: OptimizationContext) -> Descriptor:
        dropped = set(self._redundant_exclusions(analysis))
        pruned = set(self._prunable(analysis, context))

        def select(name: str, spec: FieldSpec) -> Optional[FieldSpec]:
            if name in dropped or name in pruned:
                return None
            return spec

        transformed = transform_descriptor(descriptor, select)
        return transformed.with_metadata(
            field_selection=FieldSelectionInfo(
                flagged=True,
                included_count=analysis.fields.included_count,
                dropped_exclusions=tuple(n for n in analysis.fields.excluded_fields if n in dropped),
                pruned_fields=tuple(n for n in analysis.fields.included_fields if n in pruned),
            )
        )

    def _redundant_exclusions(self, analysis: Analysis):
        # Only an inclusion projection makes exclusions redundant
        if not analysis.fields.included_count:
            return ()
        return tuple(
            name for name in analysis.fields.excluded_fields if name not in self.preserved_exclusions
        )

    def _prunable(self, analysis: Analysis, context: OptimizationContext):
        if not self.prune or context.required_fields is None:
            return ()
        required = set(context.required_fields)
        prunable = tuple(n for n in analysis.fields.included_fields if n not in required)
        # Pruning everything would turn the projection into "all fields"
        if len(prunable) == analysis.fields.included_count:
            return ()
        return prunable

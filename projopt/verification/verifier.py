"""
Verification of rewrite steps

A step is accepted only if it passes two checks, in order:

1. Semantic equivalence: the rewrite returns the same data. For
   projections that means the same set of included field names.
2. Performance improvement: estimated total cost drops by at least the
   threshold, in percent.

A rejection is a normal result, not an exception.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from projopt.core.analysis import analyze
from projopt.core.context import OptimizationContext
from projopt.core.cost import CostEstimate, CostEstimator
from projopt.core.descriptor import Descriptor, to_descriptor
from projopt.core.query import Query

DEFAULT_PERFORMANCE_THRESHOLD = 5.0


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of verifying one step

    Attributes:
        accepted: Whether the step may be committed
        reason: Human-readable explanation
        improvement: Cost improvement in percent, when measured
        before: Cost of the original
        after: Cost of the rewrite
    """

    accepted: bool
    reason: str
    improvement: Optional[float] = None
    before: Optional[CostEstimate] = None
    after: Optional[CostEstimate] = None


def check_improvement(
    before: CostEstimate,
    after: CostEstimate,
    threshold: float = DEFAULT_PERFORMANCE_THRESHOLD,
) -> VerificationResult:
    """
    Accept only if cost dropped by at least threshold percent

    A zero original cost has no measurable improvement and is rejected
    rather than divided by.
    """
    if before.total_cost <= 0:
        return VerificationResult(
            accepted=False,
            reason="No measurable improvement: original cost is zero",
            before=before,
            after=after,
        )

    improvement = (before.total_cost - after.total_cost) / before.total_cost * 100

    if improvement < threshold:
        return VerificationResult(
            accepted=False,
            reason=f"Performance improvement ({improvement:.2f}%) is below threshold ({threshold}%)",
            improvement=improvement,
            before=before,
            after=after,
        )

    return VerificationResult(
        accepted=True,
        reason=f"Performance improved by {improvement:.2f}%",
        improvement=improvement,
        before=before,
        after=after,
    )


def check_projection_equivalence(
    original: Any,
    transformed: Any,
    context: Optional[OptimizationContext] = None,
    allow_documented_pruning: bool = False,
) -> VerificationResult:
    """
    Compare the included field sets of two projections

    Strict by default. With allow_documented_pruning, a rewrite may drop
    included fields when it lists exactly those fields in
    metadata.field_selection.pruned_fields; nothing may be added.
    """
    original = to_descriptor(original)
    transformed = to_descriptor(transformed)
    fields1 = set(analyze(original, context).fields.included_fields)
    fields2 = set(analyze(transformed, context).fields.included_fields)

    added = fields2 - fields1
    if added:
        return VerificationResult(
            accepted=False,
            reason=f"Field {sorted(added)[0]} is in the rewrite but not in the original",
        )

    missing = fields1 - fields2
    if missing:
        selection = transformed.metadata.field_selection
        documented = set(selection.pruned_fields) if selection else set()
        if allow_documented_pruning and missing == documented:
            return VerificationResult(
                accepted=True,
                reason=f"Projection narrowed by documented pruning of {len(missing)} field(s)",
            )
        return VerificationResult(
            accepted=False,
            reason=f"Field {sorted(missing)[0]} is in the original but not in the rewrite",
        )

    return VerificationResult(accepted=True, reason="Projections are semantically equivalent")


def _effective_sort(query: Query):
    seen = set()
    keys = []
    for key in query.sort:
        if key.column not in seen:
            seen.add(key.column)
            keys.append((key.column, key.direction))
    return keys


def check_query_equivalence(
    original: Query,
    transformed: Query,
    context: Optional[OptimizationContext] = None,
    allow_documented_pruning: bool = False,
) -> VerificationResult:
    """
    Check that two queries return the same data

    Filters and joins compare as sets (they are ANDed / inner-joined),
    sort keys by their effective order, projections by included fields.
    Hints are ignored.
    """
    if original.source != transformed.source:
        return VerificationResult(accepted=False, reason="Queries read different sources")
    if original.limit != transformed.limit:
        return VerificationResult(accepted=False, reason="Queries have different limits")
    if set(original.filters) != set(transformed.filters):
        return VerificationResult(accepted=False, reason="Queries have different filter conditions")
    if set(original.joins) != set(transformed.joins):
        return VerificationResult(accepted=False, reason="Queries have different joins")
    if [j.join_type for j in original.joins if j.join_type != "INNER"] != [
        j.join_type for j in transformed.joins if j.join_type != "INNER"
    ]:
        return VerificationResult(accepted=False, reason="Outer joins were reordered")
    if _effective_sort(original) != _effective_sort(transformed):
        return VerificationResult(accepted=False, reason="Queries sort differently")

    if (original.projection is None) != (transformed.projection is None):
        return VerificationResult(accepted=False, reason="Only one query has a projection")
    if original.projection is not None:
        result = check_projection_equivalence(
            original.projection, transformed.projection, context, allow_documented_pruning
        )
        if not result.accepted:
            return result

    return VerificationResult(accepted=True, reason="Queries are semantically equivalent")


class Verifier:
    """
    Verification function for projection steps

    Example:
        ```python
        verifier = Verifier(performance_threshold=5)
        result = ledger.verify_and_rollback(step_id, verifier)
        ```
    """

    def __init__(
        self,
        performance_threshold: float = DEFAULT_PERFORMANCE_THRESHOLD,
        allow_documented_pruning: bool = False,
        estimator: Optional[CostEstimator] = None,
    ):
        self.performance_threshold = performance_threshold
        self.allow_documented_pruning = allow_documented_pruning
        self.estimator = estimator or CostEstimator()

    def verify(self, step) -> VerificationResult:
        """
        Verify one tracked step

        Args:
            step: OptimizationStep holding original, transformed and context

        Returns:
            Verification result; semantic failures short-circuit the cost check
        """
        if step.transformed is None:
            return VerificationResult(accepted=False, reason="No transformed projection")

        context = step.context or OptimizationContext()
        semantic = check_projection_equivalence(
            step.original, step.transformed, context, self.allow_documented_pruning
        )
        if not semantic.accepted:
            return semantic

        before = self.estimate(step.original, context)
        after = self.estimate(step.transformed, context)
        return check_improvement(before, after, self.threshold_for(context))

    def estimate(self, descriptor: Descriptor, context: OptimizationContext) -> CostEstimate:
        return self.estimator.estimate(analyze(descriptor, context), context)

    def threshold_for(self, context: OptimizationContext) -> float:
        if context.performance_threshold is not None:
            return context.performance_threshold
        return self.performance_threshold

    __call__ = verify


def create_verification_function(
    performance_threshold: float = DEFAULT_PERFORMANCE_THRESHOLD,
    allow_documented_pruning: bool = False,
) -> Callable[[Any], VerificationResult]:
    """Build a step verification function with the given options"""
    return Verifier(performance_threshold, allow_documented_pruning).verify

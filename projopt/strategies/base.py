"""
Base classes for rewrite strategies

A strategy analyzes a descriptor (or query) and returns a rewritten copy.
Each strategy implements a single rewrite rule. Strategies are applied in a
pipeline by the optimizers, one at a time, in registration order.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from projopt.core.analysis import analyze
from projopt.core.context import OptimizationContext
from projopt.core.descriptor import to_descriptor
from projopt.core.errors import StrategyExecutionError


class OutcomeStatus(Enum):
    APPLIED = "applied"
    NOT_APPLICABLE = "not_applicable"
    FAILED = "failed"


@dataclass(frozen=True)
class StrategyOutcome:
    """
    Typed result of running a strategy

    Callers branch on status instead of telling "it raised" apart from
    "it chose not to rewrite" through control flow.
    """

    status: OutcomeStatus
    strategy_name: str
    result: Any = None
    error: Optional[StrategyExecutionError] = None

    @property
    def applied(self) -> bool:
        return self.status is OutcomeStatus.APPLIED

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILED


class Strategy(ABC):
    """
    Base class for all rewrite strategies

    Subclasses implement can_optimize() and rewrite(). apply() ties them
    together and is total: when the strategy does not apply it returns its
    input unchanged. Strategies hold no per-call state, so one instance can
    serve concurrent optimize() calls.
    """

    name = "strategy"
    description = ""

    def normalize(self, target: Any) -> Any:
        """Coerce raw input into the structure this strategy rewrites"""
        return to_descriptor(target)

    def analyze(self, target: Any, context: OptimizationContext) -> Any:
        """Derive the analysis can_optimize() and rewrite() work from"""
        return analyze(target, context)

    @abstractmethod
    def can_optimize(self, target: Any, analysis: Any, context: OptimizationContext) -> bool:
        """
        Check if this rewrite is applicable

        Args:
            target: Normalized descriptor or query
            analysis: Result of analyze()
            context: Optimization context

        Returns:
            True if the rewrite should run
        """

    @abstractmethod
    def rewrite(self, target: Any, analysis: Any, context: OptimizationContext) -> Any:
        """
        Produce the rewritten descriptor or query

        Must not mutate target. Returning target itself means "nothing to do".
        """

    def apply(self, target: Any, context: Optional[OptimizationContext] = None) -> Any:
        """
        Apply the strategy

        Args:
            target: Descriptor or query (raw input is normalized)
            context: Optimization context

        Returns:
            Rewritten copy, or the normalized input if not applicable
        """
        context = context or OptimizationContext()
        target = self.normalize(target)
        analysis = self.analyze(target, context)

        if not self.can_optimize(target, analysis, context):
            return target

        return self.rewrite(target, analysis, context)

    def run(self, target: Any, context: Optional[OptimizationContext] = None) -> StrategyOutcome:
        """
        Apply the strategy and classify the result

        Exceptions raised by apply() are wrapped in StrategyExecutionError
        and reported as a FAILED outcome, never re-raised.
        """
        try:
            target = self.normalize(target)
            result = self.apply(target, context)
        except Exception as e:
            return StrategyOutcome(
                status=OutcomeStatus.FAILED,
                strategy_name=self.name,
                error=StrategyExecutionError(self.name, e),
            )

        if result is target or result == target:
            return StrategyOutcome(status=OutcomeStatus.NOT_APPLICABLE, strategy_name=self.name)

        return StrategyOutcome(status=OutcomeStatus.APPLIED, strategy_name=self.name, result=result)

    def get_name(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"

"""
Shared pieces of the projection and query optimizers
"""

from dataclasses import dataclass
from typing import Any, List, Tuple

from projopt.verification.history import HistoryEntry
from projopt.verification.ledger import OptimizationStep


@dataclass(frozen=True)
class OptimizationResult:
    """
    What one optimize() call returns

    Attributes:
        optimized: Final descriptor or query
        entry: History entry appended for this call
        steps: Ledger steps of the run, accepted and rolled back
    """

    optimized: Any
    entry: HistoryEntry
    steps: Tuple[OptimizationStep, ...] = ()

    @property
    def run_id(self) -> int:
        return self.entry.run_id

    @property
    def applied(self) -> Tuple[str, ...]:
        """Names of strategies whose rewrite was committed"""
        return self.entry.applied

    @property
    def rolled_back(self) -> Tuple[str, ...]:
        """Names of strategies whose rewrite was rejected"""
        return tuple(step.strategy_name for step in self.steps if step.rolled_back)

    def get_applied_optimizations(self) -> List[str]:
        return list(self.applied)

    def get_summary(self) -> str:
        """
        Get summary of all applied optimizations

        Returns:
            Human-readable summary
        """
        if not self.applied:
            return "No optimizations applied"

        summary = "Optimizations applied:\n"
        for name in self.applied:
            summary += f"  - {name}\n"

        return summary.strip()

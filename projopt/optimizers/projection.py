"""
Projection Optimizer - orchestrates the rewrite/verify/rollback pipeline

For each registered strategy, in order: apply, verify, then commit or roll
back. A rejected or failing strategy never aborts the run; the next
strategy starts from the last committed descriptor.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from projopt.core.analysis import analyze
from projopt.core.context import CancellationToken, OptimizationContext
from projopt.core.descriptor import to_descriptor, validate_descriptor
from projopt.optimizers.base import OptimizationResult
from projopt.strategies.base import Strategy
from projopt.strategies.field_selection import FieldSelectionStrategy
from projopt.strategies.lazy_loading import LazyLoadingStrategy
from projopt.strategies.pushdown import PushdownStrategy
from projopt.verification.history import HistoryEntry, OptimizationHistory
from projopt.verification.ledger import RollbackLedger
from projopt.verification.verifier import Verifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptimizerConfig:
    """
    Projection optimizer configuration

    Attributes:
        enable_field_selection: Register FieldSelectionStrategy
        enable_pushdown: Register PushdownStrategy
        enable_lazy_loading: Register LazyLoadingStrategy
        verify_optimizations: Verify each step before committing it
        performance_threshold: Minimum cost improvement in percent
        eager_load_limit: Fields loaded eagerly by LazyLoadingStrategy
        prune_fields: License FieldSelectionStrategy to prune unused fields
        allow_documented_pruning: Let verification accept documented pruning
    """

    enable_field_selection: bool = True
    enable_pushdown: bool = True
    enable_lazy_loading: bool = True
    verify_optimizations: bool = True
    performance_threshold: float = 5.0
    eager_load_limit: int = 10
    prune_fields: bool = False
    allow_documented_pruning: bool = False


class ProjectionOptimizer:
    """
    Projection optimizer and pipeline orchestrator

    Default pipeline:
    1. Field selection - drop redundant entries from wide projections
    2. Pushdown - hand projection work to the data source
    3. Lazy loading - defer low-priority fields

    The order matters: later strategies see the field set left by earlier,
    accepted ones.

    Example:
        ```python
        optimizer = ProjectionOptimizer()
        result = optimizer.optimize(projection, {"supportsLazyLoading": True})
        print(result.get_summary())
        ```
    """

    def __init__(
        self,
        config: Optional[OptimizerConfig] = None,
        strategies: Optional[List[Strategy]] = None,
    ):
        """
        Args:
            config: Optimizer configuration (defaults apply when omitted)
            strategies: Explicit strategy pipeline; replaces the default one
        """
        self.config = config or OptimizerConfig()
        if strategies is None:
            strategies = self._default_strategies()
        self.strategies: List[Strategy] = list(strategies)
        self.history = OptimizationHistory()
        self.ledger = RollbackLedger()
        self.verifier = Verifier(
            performance_threshold=self.config.performance_threshold,
            allow_documented_pruning=self.config.allow_documented_pruning,
        )

    def _default_strategies(self) -> List[Strategy]:
        strategies: List[Strategy] = []
        if self.config.enable_field_selection:
            strategies.append(FieldSelectionStrategy(prune=self.config.prune_fields))
        if self.config.enable_pushdown:
            strategies.append(PushdownStrategy())
        if self.config.enable_lazy_loading:
            strategies.append(LazyLoadingStrategy(eager_load_limit=self.config.eager_load_limit))
        return strategies

    def add_strategy(self, strategy: Strategy) -> None:
        """
        Append a custom strategy to the pipeline

        Example:
            ```python
            optimizer = ProjectionOptimizer()
            optimizer.add_strategy(MyStrategy())
            ```
        """
        self.strategies.append(strategy)

    def get_strategies(self) -> List[Strategy]:
        return list(self.strategies)

    def optimize(
        self,
        projection: Any,
        context: Any = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OptimizationResult:
        """
        Optimize a projection

        Args:
            projection: Descriptor or raw projection
            context: OptimizationContext or a mapping of context options
            cancel_token: Checked between strategies

        Returns:
            Final descriptor, its history entry and the run's steps

        Raises:
            ValidationError: Malformed projection
            ConfigurationError: Invalid context options
            OptimizationCancelled: cancel_token was set during the run
        """
        context = OptimizationContext.from_dict(context)
        descriptor = validate_descriptor(to_descriptor(projection))
        analysis = analyze(descriptor, context)

        run_id = self.ledger.start_run()
        optimized = descriptor
        applied: List[str] = []
        sequence = 0

        try:
            for strategy in self.strategies:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()

                name = strategy.get_name()
                outcome = strategy.run(optimized, context)

                if outcome.failed:
                    logger.warning(
                        "Error applying %s optimization: %s", name, outcome.error.cause,
                        exc_info=outcome.error.cause,
                    )
                    continue

                if not outcome.applied:
                    logger.debug("Optimization %s not applicable", name)
                    continue

                step_id = self.ledger.track_step(
                    run_id, optimized, outcome.result, name, context, sequence
                )
                sequence += 1

                if self.config.verify_optimizations:
                    result = self.ledger.verify_and_rollback(step_id, self.verifier)
                    if not result.accepted:
                        logger.debug("Optimization %s failed verification: %s", name, result.reason)
                        continue

                optimized = outcome.result
                applied.append(name)
                logger.debug("Applied %s optimization", name)
        finally:
            self.ledger.end_run(run_id)

        entry = self.history.add(
            original=descriptor,
            optimized=optimized,
            analysis=analysis,
            context=context,
            run_id=run_id,
            applied=tuple(applied),
        )
        return OptimizationResult(
            optimized=optimized,
            entry=entry,
            steps=tuple(self.ledger.get_steps(run_id)),
        )

    def get_history(self) -> List[HistoryEntry]:
        """Get optimization history, oldest first"""
        return self.history.get_all()

    def clear_history(self) -> None:
        """Forget past calls, including their finished ledger runs"""
        self.history.clear()
        self.ledger.clear()

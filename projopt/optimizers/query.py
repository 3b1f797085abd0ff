"""
Query Optimizer - rewrite/verify/rollback pipeline for structured queries

Same orchestration as the projection optimizer, except cost estimation is
delegated to an external cost-model engine exposing
estimate_query_cost(query, context). The engine may be synchronous or
asynchronous; every call runs under an optional timeout.
"""

import functools
import inspect
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import anyio
import anyio.to_thread

from projopt.core.analysis import analyze_query
from projopt.core.context import CancellationToken, OptimizationContext
from projopt.core.cost import CostEstimate
from projopt.core.descriptor import validate_descriptor
from projopt.core.errors import ConfigurationError
from projopt.core.query import Query, to_query
from projopt.optimizers.base import OptimizationResult
from projopt.strategies.base import Strategy
from projopt.strategies.query import (
    FilterStrategy,
    IndexStrategy,
    JoinStrategy,
    ProjectionStrategy,
    SortStrategy,
)
from projopt.verification.history import HistoryEntry, OptimizationHistory
from projopt.verification.ledger import RollbackLedger
from projopt.verification.verifier import (
    VerificationResult,
    check_improvement,
    check_query_equivalence,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryOptimizerConfig:
    """
    Query optimizer configuration

    Attributes:
        enable_index_optimization: Register IndexStrategy
        enable_filter_optimization: Register FilterStrategy
        enable_join_optimization: Register JoinStrategy
        enable_sort_optimization: Register SortStrategy
        enable_projection_optimization: Register ProjectionStrategy
        verify_optimizations: Verify each step before committing it
        performance_threshold: Minimum cost improvement in percent
        allow_documented_pruning: Let verification accept documented pruning
        timeout: Default seconds allowed per cost-model call (None = no limit)
    """

    enable_index_optimization: bool = True
    enable_filter_optimization: bool = True
    enable_join_optimization: bool = True
    enable_sort_optimization: bool = True
    enable_projection_optimization: bool = True
    verify_optimizations: bool = True
    performance_threshold: float = 5.0
    allow_documented_pruning: bool = False
    timeout: Optional[float] = None


class QueryOptimizer:
    """
    Query optimizer and pipeline orchestrator

    Default pipeline: index, filter, join, sort, projection.

    Example:
        ```python
        optimizer = QueryOptimizer(cost_model_engine=HeuristicQueryCostModel())
        result = await optimizer.optimize(query, context, timeout=2.0)
        ```
    """

    def __init__(
        self,
        config: Optional[QueryOptimizerConfig] = None,
        strategies: Optional[List[Strategy]] = None,
        cost_model_engine: Any = None,
    ):
        """
        Args:
            config: Optimizer configuration
            strategies: Explicit strategy pipeline; replaces the default one
            cost_model_engine: Default cost model for every call
        """
        self.config = config or QueryOptimizerConfig()
        if strategies is None:
            strategies = self._default_strategies()
        self.strategies: List[Strategy] = list(strategies)
        self.cost_model_engine = cost_model_engine
        self.history = OptimizationHistory()
        self.ledger = RollbackLedger()

    def _default_strategies(self) -> List[Strategy]:
        enabled = (
            (self.config.enable_index_optimization, IndexStrategy),
            (self.config.enable_filter_optimization, FilterStrategy),
            (self.config.enable_join_optimization, JoinStrategy),
            (self.config.enable_sort_optimization, SortStrategy),
            (self.config.enable_projection_optimization, ProjectionStrategy),
        )
        return [cls() for flag, cls in enabled if flag]

    def add_strategy(self, strategy: Strategy) -> None:
        self.strategies.append(strategy)

    def _resolve_engine(self, engine: Any, context: OptimizationContext) -> Any:
        engine = engine or context.cost_model_engine or self.cost_model_engine
        if engine is None:
            raise ConfigurationError("Cost model engine is required")
        if not callable(getattr(engine, "estimate_query_cost", None)):
            raise ConfigurationError("Cost model engine must provide estimate_query_cost()")
        return engine

    async def optimize(
        self,
        query: Any,
        context: Any = None,
        *,
        cost_model_engine: Any = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OptimizationResult:
        """
        Optimize a query

        Args:
            query: Query or raw query mapping
            context: OptimizationContext or a mapping of context options
            cost_model_engine: Overrides the context's and the optimizer's engine
            timeout: Seconds allowed per cost-model call
            cancel_token: Checked between strategies

        Returns:
            Final query, its history entry and the run's steps

        Raises:
            ConfigurationError: No usable cost-model engine
            ValidationError: Malformed query
            OptimizationCancelled: cancel_token was set during the run
        """
        context = OptimizationContext.from_dict(context)
        engine = self._resolve_engine(cost_model_engine, context)
        if timeout is None:
            timeout = self.config.timeout

        query = to_query(query)
        if query.projection is not None:
            validate_descriptor(query.projection)
        analysis = analyze_query(query, context)

        run_id = self.ledger.start_run()
        optimized = query
        current_cost: Optional[CostEstimate] = None
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
                    before = current_cost
                    if before is None:
                        before = await self._safe_estimate(engine, optimized, context, timeout)
                    result = await self._verify(
                        engine, optimized, outcome.result, before, context, timeout
                    )
                    self.ledger.verify_and_rollback(step_id, lambda step, result=result: result)
                    if not result.accepted:
                        logger.debug("Optimization %s failed verification: %s", name, result.reason)
                        # Keep a good baseline for the next strategy, retry a failed one
                        current_cost = before if isinstance(before, CostEstimate) else None
                        continue
                    current_cost = result.after
                else:
                    current_cost = None

                optimized = outcome.result
                applied.append(name)
                logger.debug("Applied %s optimization", name)
        finally:
            self.ledger.end_run(run_id)

        entry = self.history.add(
            original=query,
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

    def optimize_blocking(self, query: Any, context: Any = None, **kwargs) -> OptimizationResult:
        """Run optimize() to completion from synchronous code"""
        return anyio.run(functools.partial(self.optimize, query, context, **kwargs))

    async def _verify(
        self,
        engine: Any,
        original: Query,
        transformed: Query,
        before: Any,
        context: OptimizationContext,
        timeout: Optional[float],
    ) -> VerificationResult:
        semantic = check_query_equivalence(
            original, transformed, context, self.config.allow_documented_pruning
        )
        if not semantic.accepted:
            return semantic

        if isinstance(before, VerificationResult):
            return before

        after = await self._safe_estimate(engine, transformed, context, timeout)
        if isinstance(after, VerificationResult):
            return after

        threshold = context.performance_threshold
        if threshold is None:
            threshold = self.config.performance_threshold
        return check_improvement(before, after, threshold)

    async def _safe_estimate(self, engine: Any, query: Query, context: OptimizationContext, timeout: Optional[float]):
        # Estimation failures reject the step instead of failing the run
        try:
            return await self.estimate(engine, query, context, timeout)
        except TimeoutError:
            return VerificationResult(accepted=False, reason="Cost estimation timed out")
        except Exception as e:
            logger.warning("Cost estimation failed: %s", e)
            return VerificationResult(accepted=False, reason=f"Cost estimation failed: {e}")

    async def estimate(
        self,
        engine: Any,
        query: Query,
        context: OptimizationContext,
        timeout: Optional[float] = None,
    ) -> CostEstimate:
        """
        Ask the engine for a query's cost

        Coroutine functions are awaited; plain functions run in a worker
        thread so a slow engine cannot block the event loop.

        Raises:
            TimeoutError: The engine did not answer within timeout seconds
        """
        estimate_fn = engine.estimate_query_cost
        with anyio.fail_after(timeout):
            if inspect.iscoroutinefunction(estimate_fn):
                value = await estimate_fn(query, context)
            else:
                value = await anyio.to_thread.run_sync(
                    estimate_fn, query, context, abandon_on_cancel=True
                )
                if inspect.isawaitable(value):
                    value = await value
        return CostEstimate.from_value(value)

    def get_history(self) -> List[HistoryEntry]:
        return self.history.get_all()

    def clear_history(self) -> None:
        """Forget past calls, including their finished ledger runs"""
        self.history.clear()
        self.ledger.clear()

"""
Rollback ledger

Records every attempted rewrite step of every run, with enough state to
return to the pre-step descriptor. Steps are never deleted; a rejected step
is flagged rolled_back and kept for audit.

The ledger is the only component allowed to flip rolled_back. Ids come
from monotonic counters guarded by a lock, so concurrent runs never share
a run or step id.
"""

import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from projopt.verification.verifier import VerificationResult


@dataclass
class OptimizationStep:
    """
    One strategy application within a run

    Only rolled_back (and its timestamp) ever changes after tracking.
    """

    id: int
    run_id: int
    original: Any
    transformed: Any
    strategy_name: str
    context: Any
    sequence: int
    timestamp: float
    rolled_back: bool = False
    rollback_timestamp: Optional[float] = None


@dataclass
class OptimizationRun:
    """One orchestrator invocation"""

    id: int
    steps: List[int] = field(default_factory=list)
    start_time: float = 0.0
    end_time: Optional[float] = None

    @property
    def finished(self) -> bool:
        return self.end_time is not None


class RollbackLedger:
    """
    Arena of runs and steps, keyed by monotonically increasing ids

    Example:
        ```python
        ledger = RollbackLedger()
        run_id = ledger.start_run()
        step_id = ledger.track_step(run_id, before, after, "pushdown", context, 0)
        result = ledger.verify_and_rollback(step_id, verifier)
        ledger.end_run(run_id)
        ```
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._run_ids = itertools.count(1)
        self._step_ids = itertools.count(1)
        self._runs: Dict[int, OptimizationRun] = {}
        self._steps: Dict[int, OptimizationStep] = {}
        self._results: Dict[int, VerificationResult] = {}

    def start_run(self) -> int:
        """
        Start a new run

        Returns:
            Run id
        """
        with self._lock:
            run_id = next(self._run_ids)
            self._runs[run_id] = OptimizationRun(id=run_id, start_time=time.time())
        return run_id

    def end_run(self, run_id: int) -> OptimizationRun:
        """
        Close a run

        Raises:
            KeyError: If the run does not exist
        """
        with self._lock:
            run = self._get_run(run_id)
            run.end_time = time.time()
        return run

    def get_run(self, run_id: int) -> OptimizationRun:
        with self._lock:
            return self._get_run(run_id)

    def clear(self) -> int:
        """
        Drop finished runs with their steps and verification results

        Runs still in progress are kept. Ids are never reused.

        Returns:
            Number of runs dropped
        """
        with self._lock:
            finished = [run for run in self._runs.values() if run.finished]
            for run in finished:
                for step_id in run.steps:
                    self._steps.pop(step_id, None)
                    self._results.pop(step_id, None)
                del self._runs[run.id]
        return len(finished)

    def _get_run(self, run_id: int) -> OptimizationRun:
        if run_id not in self._runs:
            raise KeyError(f"Optimization run {run_id} not found")
        return self._runs[run_id]

    def track_step(
        self,
        run_id: int,
        original: Any,
        transformed: Any,
        strategy_name: str,
        context: Any,
        sequence: int,
    ) -> int:
        """
        Record a rewrite step

        Args:
            run_id: Run the step belongs to
            original: Descriptor or query before the step
            transformed: Descriptor or query the strategy produced
            strategy_name: Name of the strategy
            context: Context the strategy ran with
            sequence: Position of the strategy in the pipeline

        Returns:
            Step id

        Raises:
            KeyError: If the run does not exist
        """
        with self._lock:
            run = self._get_run(run_id)
            step_id = next(self._step_ids)
            self._steps[step_id] = OptimizationStep(
                id=step_id,
                run_id=run_id,
                original=original,
                transformed=transformed,
                strategy_name=strategy_name,
                context=context,
                sequence=sequence,
                timestamp=time.time(),
            )
            run.steps.append(step_id)
        return step_id

    def get_step(self, step_id: int) -> OptimizationStep:
        with self._lock:
            return self._get_step(step_id)

    def _get_step(self, step_id: int) -> OptimizationStep:
        if step_id not in self._steps:
            raise KeyError(f"Step {step_id} not found")
        return self._steps[step_id]

    def get_steps(self, run_id: int) -> List[OptimizationStep]:
        """All steps of a run, in tracking order"""
        with self._lock:
            run = self._get_run(run_id)
            return [self._steps[step_id] for step_id in run.steps]

    def get_verification(self, step_id: int) -> Optional[VerificationResult]:
        with self._lock:
            return self._results.get(step_id)

    def verify_and_rollback(
        self,
        step_id: int,
        verify_fn: Callable[[OptimizationStep], VerificationResult],
    ) -> VerificationResult:
        """
        Verify a step and roll it back if rejected

        Args:
            step_id: Step to verify
            verify_fn: Called with the step; returns a VerificationResult

        Returns:
            The verification result
        """
        step = self.get_step(step_id)
        result = verify_fn(step)

        with self._lock:
            self._results[step_id] = result

        if not result.accepted:
            self.rollback(step_id)

        return result

    def rollback(self, step_id: int) -> OptimizationStep:
        """Flag a step as rolled back; its transformed value must not be used"""
        with self._lock:
            step = self._get_step(step_id)
            step.rolled_back = True
            step.rollback_timestamp = time.time()
        return step

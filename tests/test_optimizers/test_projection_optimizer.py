"""
Tests for the projection optimizer pipeline
"""

import logging

import pytest

from projopt.core.context import CancellationToken, OptimizationContext
from projopt.core.descriptor import to_descriptor
from projopt.core.errors import ConfigurationError, OptimizationCancelled, ValidationError
from projopt.optimizers.projection import OptimizerConfig, ProjectionOptimizer
from projopt.strategies.base import Strategy
from projopt.strategies.field_selection import FieldSelectionStrategy
from projopt.strategies.lazy_loading import LazyLoadingStrategy
from projopt.strategies.pushdown import PushdownStrategy

ELEVEN = {"f%02d" % i: 1 for i in range(11)}


class ExplodingStrategy(Strategy):
    """Strategy whose rewrite always raises"""

    name = "exploding"

    def can_optimize(self, descriptor, analysis, context):
        return True

    def rewrite(self, descriptor, analysis, context):
        raise RuntimeError("boom")


class CancellingStrategy(Strategy):
    """Strategy that cancels the run it is part of"""

    name = "cancelling"

    def __init__(self, token):
        self.token = token

    def can_optimize(self, descriptor, analysis, context):
        self.token.cancel()
        return False

    def rewrite(self, descriptor, analysis, context):
        return descriptor


class TestDefaultPipeline:
    """Test the default strategy pipeline"""

    def test_default_strategies(self):
        """Test field selection, pushdown and lazy loading run in that order"""
        names = [s.get_name() for s in ProjectionOptimizer().get_strategies()]
        assert names == ["field_selection", "pushdown", "lazy_loading"]

    def test_config_disables_strategies(self):
        """Test enable flags drop strategies from the pipeline"""
        optimizer = ProjectionOptimizer(
            OptimizerConfig(enable_field_selection=False, enable_pushdown=False)
        )
        assert [s.get_name() for s in optimizer.get_strategies()] == ["lazy_loading"]

    def test_config_reaches_strategies(self):
        """Test strategy options come from the configuration"""
        optimizer = ProjectionOptimizer(OptimizerConfig(eager_load_limit=4, prune_fields=True))
        field_selection, _, lazy_loading = optimizer.get_strategies()

        assert field_selection.prune is True
        assert lazy_loading.eager_load_limit == 4

    def test_add_strategy(self):
        """Test custom strategies are appended"""
        optimizer = ProjectionOptimizer(strategies=[])
        optimizer.add_strategy(ExplodingStrategy())

        assert [s.get_name() for s in optimizer.get_strategies()] == ["exploding"]


class TestOptimize:
    """Test end-to-end optimization"""

    def test_wide_projection_lazy_loading(self, wide_projection, lazy_context):
        """Test twelve fields with lazy loading support get an eager/lazy split"""
        result = ProjectionOptimizer().optimize(wide_projection, lazy_context)
        info = result.optimized.metadata.lazy_loading

        assert result.applied == ("lazy_loading",)
        assert info.enabled is True
        assert len(info.eager_fields) == 10
        assert len(info.lazy_fields) == 2
        assert set(result.optimized.included_fields) == set(wide_projection)

    def test_small_projection_unchanged(self):
        """Test no strategy applies to three flat fields"""
        original = to_descriptor(["id", "name", "email"])
        context = {"supportsLazyLoading": True, "supportsProjectionPushdown": True}

        result = ProjectionOptimizer().optimize(original, context)

        assert result.optimized == original
        assert result.applied == ()
        assert result.steps == ()
        assert result.get_summary() == "No optimizations applied"

    def test_pushdown_then_lazy_loading(self, wide_projection):
        """Test later strategies build on accepted earlier ones"""
        context = {"supportsLazyLoading": True, "supportsProjectionPushdown": True}
        result = ProjectionOptimizer().optimize(wide_projection, context)
        optimized = result.optimized

        assert result.applied == ("pushdown", "lazy_loading")
        assert optimized.metadata.pushdown.enabled is True
        assert optimized.metadata.lazy_loading.enabled is True
        assert optimized.fields["tags"].pushed and optimized.fields["tags"].lazy
        assert result.get_summary() == "Optimizations applied:\n  - pushdown\n  - lazy_loading"

    def test_optimized_output_reads_back(self, wide_projection):
        """Test to_dict output of an optimized projection keeps its field set"""
        projection = dict(wide_projection, secret=0)
        context = {"supportsLazyLoading": True, "supportsProjectionPushdown": True}
        optimizer = ProjectionOptimizer(OptimizerConfig(enable_field_selection=False))

        optimized = optimizer.optimize(projection, context).optimized
        restored = to_descriptor(optimized.to_dict())

        assert "pushdown" in optimizer.get_history()[0].applied
        assert set(restored.included_fields) == set(optimized.included_fields)
        assert restored.excluded_fields == ("secret",)
        for name, spec in optimized.fields.items():
            assert restored.fields[name].pushed == spec.pushed
            assert restored.fields[name].lazy == spec.lazy

    def test_field_selection(self):
        """Test redundant exclusions are dropped from a wide projection"""
        projection = dict(ELEVEN, s1=0, s2=0, s3=0)
        result = ProjectionOptimizer().optimize(projection)

        assert result.applied == ("field_selection",)
        assert set(result.optimized.fields) == set(ELEVEN)
        assert result.optimized.metadata.field_selection.dropped_exclusions == ("s1", "s2", "s3")

    def test_all_strategies(self):
        """Test all three strategies can be accepted in one run"""
        projection = dict(ELEVEN, s1=0, s2=0, s3=0)
        context = {"supportsLazyLoading": True, "supportsProjectionPushdown": True}

        result = ProjectionOptimizer().optimize(projection, context)

        assert result.applied == ("field_selection", "pushdown", "lazy_loading")

    def test_accepted_steps_lower_cost(self, wide_projection):
        """Test every accepted step strictly lowers the estimated cost"""
        optimizer = ProjectionOptimizer()
        context = {"supportsLazyLoading": True, "supportsProjectionPushdown": True}
        result = optimizer.optimize(wide_projection, context)

        totals = []
        for step in result.steps:
            verification = optimizer.ledger.get_verification(step.id)
            assert verification.accepted
            assert verification.after.total_cost < verification.before.total_cost
            totals.append(verification.after.total_cost)
        assert totals == sorted(totals, reverse=True)

    def test_idempotent(self, wide_projection, lazy_context):
        """Test optimizing an optimized descriptor changes nothing"""
        optimizer = ProjectionOptimizer()
        first = optimizer.optimize(wide_projection, lazy_context)
        second = optimizer.optimize(first.optimized, lazy_context)

        assert second.optimized == first.optimized
        assert second.applied == ()

    def test_input_not_mutated(self, wide_projection, lazy_context):
        """Test the caller's descriptor is left untouched"""
        original = to_descriptor(wide_projection)
        ProjectionOptimizer().optimize(original, lazy_context)

        assert original.metadata.lazy_loading is None
        assert original == to_descriptor(wide_projection)


class TestRollback:
    """Test rejected steps"""

    def test_threshold_rejects_lazy_loading(self, wide_projection):
        """Test a ~9.8% improvement is rolled back under a 10% threshold"""
        optimizer = ProjectionOptimizer()
        original = to_descriptor(wide_projection)

        result = optimizer.optimize(original, {"supportsLazyLoading": True, "performanceThreshold": 10})

        assert result.optimized == original
        assert result.optimized.metadata.lazy_loading is None
        assert result.applied == ()
        assert result.rolled_back == ("lazy_loading",)
        step = result.steps[0]
        assert step.rolled_back is True
        assert step.transformed.metadata.lazy_loading is not None

    def test_config_threshold(self, wide_projection):
        """Test the configured threshold applies when the context has none"""
        optimizer = ProjectionOptimizer(OptimizerConfig(performance_threshold=50))
        result = optimizer.optimize(wide_projection, {"supportsLazyLoading": True})

        assert result.rolled_back == ("lazy_loading",)

    def test_rejected_step_does_not_leak(self, wide_projection):
        """Test the next strategy starts from the last accepted descriptor"""
        optimizer = ProjectionOptimizer(
            strategies=[LazyLoadingStrategy(eager_load_limit=11), LazyLoadingStrategy()]
        )
        result = optimizer.optimize(wide_projection, {"supportsLazyLoading": True})

        # The 1-field split saves ~4.9% and is rejected, the 2-field split is accepted
        first, second = result.steps
        assert first.rolled_back is True
        assert second.rolled_back is False
        assert second.original == to_descriptor(wide_projection)
        assert result.optimized.metadata.lazy_loading.eager_load_limit == 10

    def test_verification_disabled(self, wide_projection):
        """Test every applicable rewrite is committed without verification"""
        optimizer = ProjectionOptimizer(OptimizerConfig(verify_optimizations=False))
        result = optimizer.optimize(wide_projection, {"supportsLazyLoading": True, "performanceThreshold": 90})

        assert result.applied == ("lazy_loading",)
        assert optimizer.ledger.get_verification(result.steps[0].id) is None


class TestPruning:
    """Test licensed pruning"""

    CONTEXT = {"requiredFields": ["f00", "f01"]}

    def test_pruning_needs_relaxed_verification(self):
        """Test strict verification rolls back pruning"""
        optimizer = ProjectionOptimizer(OptimizerConfig(prune_fields=True))
        result = optimizer.optimize(ELEVEN, self.CONTEXT)

        assert result.rolled_back == ("field_selection",)
        assert set(result.optimized.included_fields) == set(ELEVEN)

    def test_documented_pruning_accepted(self):
        """Test documented pruning passes relaxed verification"""
        optimizer = ProjectionOptimizer(
            OptimizerConfig(prune_fields=True, allow_documented_pruning=True)
        )
        result = optimizer.optimize(ELEVEN, self.CONTEXT)

        assert result.applied == ("field_selection",)
        assert set(result.optimized.included_fields) == {"f00", "f01"}
        assert len(result.optimized.metadata.field_selection.pruned_fields) == 9


class TestFailures:
    """Test error handling"""

    def test_failing_strategy_is_skipped(self, wide_projection, lazy_context, caplog):
        """Test a raising strategy is logged and the run continues"""
        optimizer = ProjectionOptimizer(strategies=[ExplodingStrategy(), LazyLoadingStrategy()])

        with caplog.at_level(logging.WARNING, logger="projopt.optimizers.projection"):
            result = optimizer.optimize(wide_projection, lazy_context)

        assert result.applied == ("lazy_loading",)
        assert [s.strategy_name for s in result.steps] == ["lazy_loading"]
        assert "Error applying exploding optimization" in caplog.text

    def test_invalid_projection(self):
        """Test malformed projections raise ValidationError"""
        with pytest.raises(ValidationError):
            ProjectionOptimizer().optimize({"id": 5})

    def test_invalid_context(self):
        """Test unknown context options raise ConfigurationError"""
        with pytest.raises(ConfigurationError):
            ProjectionOptimizer().optimize(["id"], {"supportsTimeTravel": True})

    def test_invalid_input_records_nothing(self):
        """Test rejected input leaves no history"""
        optimizer = ProjectionOptimizer()
        with pytest.raises(ValidationError):
            optimizer.optimize(42)
        assert optimizer.get_history() == []


class TestCancellation:
    """Test cooperative cancellation"""

    def test_cancelled_before_start(self, wide_projection, lazy_context):
        """Test a cancelled token stops the run before any strategy"""
        optimizer = ProjectionOptimizer()
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OptimizationCancelled):
            optimizer.optimize(wide_projection, lazy_context, cancel_token=token)

        assert optimizer.ledger.get_run(1).finished is True
        assert optimizer.ledger.get_steps(1) == []
        assert optimizer.get_history() == []

    def test_cancelled_between_strategies(self, wide_projection, lazy_context):
        """Test cancellation is noticed before the next strategy"""
        token = CancellationToken()
        optimizer = ProjectionOptimizer(
            strategies=[CancellingStrategy(token), LazyLoadingStrategy()]
        )

        with pytest.raises(OptimizationCancelled):
            optimizer.optimize(wide_projection, lazy_context, cancel_token=token)

        assert optimizer.ledger.get_steps(1) == []


class TestHistory:
    """Test optimization history"""

    def test_history_records_calls(self, wide_projection, lazy_context):
        """Test each call appends one entry"""
        optimizer = ProjectionOptimizer()
        first = optimizer.optimize(wide_projection, lazy_context)
        optimizer.optimize(["id"], lazy_context)

        history = optimizer.get_history()

        assert len(history) == 2
        assert history[0] is first.entry
        assert history[0].original == to_descriptor(wide_projection)
        assert history[0].optimized == first.optimized
        assert history[0].analysis.fields.included_count == 12
        assert history[0].run_id == first.run_id
        assert history[1].index == 1

    def test_clear_history(self, wide_projection):
        """Test clearing history"""
        optimizer = ProjectionOptimizer()
        result = optimizer.optimize(wide_projection, {"supportsLazyLoading": True})
        optimizer.clear_history()

        assert optimizer.get_history() == []
        with pytest.raises(KeyError):
            optimizer.ledger.get_run(result.run_id)
        with pytest.raises(KeyError):
            optimizer.ledger.get_step(result.steps[0].id)

    def test_instances_do_not_share_state(self, wide_projection):
        """Test each optimizer owns its history and ledger"""
        a = ProjectionOptimizer()
        b = ProjectionOptimizer()
        a.optimize(wide_projection)

        assert len(a.get_history()) == 1
        assert b.get_history() == []

    def test_strategy_classes_exported(self):
        """Test the default strategy types"""
        kinds = [type(s) for s in ProjectionOptimizer().get_strategies()]
        assert kinds == [FieldSelectionStrategy, PushdownStrategy, LazyLoadingStrategy]

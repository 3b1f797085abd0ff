"""
Tests for the lazy loading strategy
"""

from projopt.core.context import FieldStatistics, OptimizationContext
from projopt.core.descriptor import FieldSpec, to_descriptor
from projopt.strategies.base import OutcomeStatus
from projopt.strategies.lazy_loading import LazyLoadingStrategy


class TestLazyLoadingApplicability:
    """Test when lazy loading applies"""

    def test_requires_context_support(self, wide_projection):
        """Test nothing happens unless the caller supports lazy loading"""
        strategy = LazyLoadingStrategy()
        d = to_descriptor(wide_projection)

        assert strategy.apply(d, OptimizationContext()) is d
        assert strategy.run(d, OptimizationContext()).status is OutcomeStatus.NOT_APPLICABLE

    def test_few_fields(self, lazy_context):
        """Test projections within the eager limit are left alone"""
        d = to_descriptor(["id", "name", "email"])
        assert LazyLoadingStrategy().apply(d, lazy_context) is d

    def test_already_partitioned(self, wide_projection, lazy_context):
        """Test a lazy descriptor is not partitioned again"""
        strategy = LazyLoadingStrategy()
        once = strategy.apply(wide_projection, lazy_context)

        assert strategy.apply(once, lazy_context) is once

    def test_small_eager_limit(self, lazy_context):
        """Test the eager limit is configurable"""
        result = LazyLoadingStrategy(eager_load_limit=2).apply(["id", "name", "bio"], lazy_context)
        assert result.metadata.lazy_loading.lazy_fields == ("bio",)


class TestLazyLoadingRewrite:
    """Test the eager/lazy partition"""

    def test_partition(self, wide_projection, lazy_context):
        """Test the ten highest-priority fields stay eager"""
        result = LazyLoadingStrategy().apply(wide_projection, lazy_context)
        info = result.metadata.lazy_loading

        assert info.enabled is True
        assert info.eager_load_limit == 10
        assert len(info.eager_fields) == 10
        assert info.lazy_fields == ("tags", "score")
        assert info.eager_fields[:3] == ("id", "name", "status")

    def test_field_set_unchanged(self, wide_projection, lazy_context):
        """Test lazy loading only changes fetch timing"""
        original = to_descriptor(wide_projection)
        result = LazyLoadingStrategy().apply(original, lazy_context)

        assert set(result.included_fields) == set(original.included_fields)
        assert result.metadata.type == "inclusion"

    def test_lazy_specs_keep_original(self, wide_projection, lazy_context):
        """Test lazy fields are annotated and remember their spec"""
        original = to_descriptor(wide_projection)
        result = LazyLoadingStrategy().apply(original, lazy_context)

        tags = result.fields["tags"]
        assert tags.lazy is True
        assert tags.include is True
        assert tags.original == original.fields["tags"]
        assert result.fields["id"] == FieldSpec()

    def test_input_not_mutated(self, wide_projection, lazy_context):
        """Test the input descriptor is left untouched"""
        original = to_descriptor(wide_projection)
        LazyLoadingStrategy().apply(original, lazy_context)

        assert original.metadata.lazy_loading is None
        assert not any(spec.lazy for spec in original.fields.values())

    def test_statistics_change_priority(self, wide_projection):
        """Test frequently read fields stay eager"""
        ctx = OptimizationContext(
            supports_lazy_loading=True,
            field_statistics={"score": FieldStatistics(access_frequency=500)},
        )
        result = LazyLoadingStrategy().apply(wide_projection, ctx)

        assert result.metadata.lazy_loading.eager_fields[0] == "score"
        assert "score" not in result.metadata.lazy_loading.lazy_fields

    def test_statistics_can_be_ignored(self, wide_projection):
        """Test use_field_statistics=False ranks by name only"""
        ctx = OptimizationContext(
            supports_lazy_loading=True,
            field_statistics={"score": FieldStatistics(access_frequency=500)},
        )
        result = LazyLoadingStrategy(use_field_statistics=False).apply(wide_projection, ctx)

        assert result.metadata.lazy_loading.lazy_fields == ("tags", "score")

    def test_run_reports_applied(self, wide_projection, lazy_context):
        """Test the typed outcome of a rewrite"""
        outcome = LazyLoadingStrategy().run(wide_projection, lazy_context)

        assert outcome.applied
        assert outcome.strategy_name == "lazy_loading"
        assert outcome.result.metadata.lazy_loading is not None

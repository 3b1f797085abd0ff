"""
Tests for the optimization context
"""

import pytest

from projopt.core.context import (
    CancellationToken,
    ColumnStatistics,
    DataSourceCapabilities,
    FieldStatistics,
    OptimizationContext,
    TableStatistics,
)
from projopt.core.errors import ConfigurationError, OptimizationCancelled


class TestOptimizationContext:
    """Test context construction and validation"""

    def test_defaults(self):
        """Test documented defaults"""
        ctx = OptimizationContext()

        assert ctx.supports_projection_pushdown is False
        assert ctx.supports_lazy_loading is False
        assert ctx.base_field_cost == 1.0
        assert ctx.base_processing_cost == 0.5
        assert ctx.base_memory_cost == 0.2
        assert ctx.data_source_cost_factor == 1.0
        assert ctx.performance_threshold is None

    def test_from_dict_camel_case(self):
        """Test camelCase keys are accepted"""
        ctx = OptimizationContext.from_dict(
            {"supportsLazyLoading": True, "performanceThreshold": 10, "baseFieldCost": 2}
        )

        assert ctx.supports_lazy_loading is True
        assert ctx.performance_threshold == 10
        assert ctx.base_field_cost == 2

    def test_from_dict_snake_case(self):
        """Test snake_case keys are accepted"""
        ctx = OptimizationContext.from_dict({"supports_projection_pushdown": True})
        assert ctx.supports_projection_pushdown is True

    def test_from_dict_none_and_instance(self):
        """Test None gives defaults and an instance passes through"""
        ctx = OptimizationContext(supports_lazy_loading=True)

        assert OptimizationContext.from_dict(None) == OptimizationContext()
        assert OptimizationContext.from_dict(ctx) is ctx

    def test_unknown_option(self):
        """Test unknown keys are rejected"""
        with pytest.raises(ConfigurationError, match="Unknown context option"):
            OptimizationContext.from_dict({"supportsMagic": True})

    def test_negative_cost(self):
        """Test negative numeric knobs are rejected"""
        with pytest.raises(ConfigurationError, match="non-negative"):
            OptimizationContext(base_field_cost=-1)

    def test_non_numeric_cost(self):
        """Test non-numeric knobs are rejected"""
        with pytest.raises(ConfigurationError, match="must be a number"):
            OptimizationContext.from_dict({"baseMemoryCost": "cheap"})

    def test_non_numeric_threshold(self):
        """Test the threshold must be a number"""
        with pytest.raises(ConfigurationError):
            OptimizationContext(performance_threshold="5%")

    def test_nested_records(self):
        """Test statistics and capabilities are built from mappings"""
        ctx = OptimizationContext.from_dict(
            {
                "fieldStatistics": {"id": {"accessFrequency": 50, "indexed": True}},
                "dataSourceCapabilities": {"supportsNested": True, "maxProjectionDepth": 2},
                "tableStatistics": {
                    "orders": {
                        "rowCount": 5000,
                        "columnStats": {"status": {"distinctCount": 4}},
                    }
                },
                "requiredFields": ["id", "name"],
                "fieldSizes": {"bio": 2048},
            }
        )

        assert ctx.field_statistics["id"] == FieldStatistics(access_frequency=50, indexed=True)
        assert ctx.data_source_capabilities == DataSourceCapabilities(
            supports_nested=True, max_projection_depth=2
        )
        orders = ctx.table_statistics["orders"]
        assert isinstance(orders, TableStatistics)
        assert orders.row_count == 5000
        assert orders.column_stats["status"] == ColumnStatistics(distinct_count=4)
        assert ctx.required_fields == ("id", "name")
        assert ctx.field_sizes == {"bio": 2048}

    def test_unknown_nested_option(self):
        """Test unknown keys inside nested records are rejected"""
        with pytest.raises(ConfigurationError, match="Unknown FieldStatistics option"):
            OptimizationContext.from_dict({"fieldStatistics": {"id": {"hotness": 3}}})

    def test_frozen(self):
        """Test the context cannot be mutated"""
        ctx = OptimizationContext()
        with pytest.raises(AttributeError):
            ctx.supports_lazy_loading = True


class TestCancellationToken:
    """Test cooperative cancellation"""

    def test_not_cancelled_by_default(self):
        """Test a fresh token does not raise"""
        token = CancellationToken()

        assert token.cancelled is False
        token.raise_if_cancelled()

    def test_cancel(self):
        """Test a cancelled token raises"""
        token = CancellationToken()
        token.cancel()

        assert token.cancelled is True
        with pytest.raises(OptimizationCancelled):
            token.raise_if_cancelled()

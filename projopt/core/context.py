"""
Optimization context

The context is an explicit, frozen configuration record handed to the
analyzer, the cost estimator and every strategy. It is built once per call
(directly or from a JSON-shaped dict via OptimizationContext.from_dict) and
never mutated afterwards.
"""

import re
import threading
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional, Tuple

from projopt.core.errors import ConfigurationError, OptimizationCancelled


@dataclass(frozen=True)
class FieldStatistics:
    """
    Usage statistics for one field

    Attributes:
        access_frequency: How often the field is read (any unit, higher = hotter)
        average_size: Average value size in bytes
        indexed: Whether the data source indexes the field
    """

    access_frequency: float = 0.0
    average_size: float = 0.0
    indexed: bool = False


@dataclass(frozen=True)
class DataSourceCapabilities:
    """
    What a data source can evaluate on its side

    Defaults describe a flat document store: projection supported, no
    nested projections, at most 100 projected fields.
    """

    supports_projection: bool = True
    supports_inclusion: bool = True
    supports_exclusion: bool = True
    supports_nested: bool = False
    max_projection_depth: int = 1
    max_projection_fields: int = 100


@dataclass(frozen=True)
class ColumnStatistics:
    """
    Statistics about a single column

    Attributes:
        distinct_count: Number of distinct values (cardinality)
        null_count: Number of NULL values
        min_value: Minimum value
        max_value: Maximum value
    """

    distinct_count: int = 0
    null_count: int = 0
    min_value: Any = None
    max_value: Any = None


@dataclass(frozen=True)
class TableStatistics:
    """
    Statistics about a table/data source

    Attributes:
        row_count: Total number of rows
        column_stats: Per-column statistics
        size_bytes: Approximate size in bytes
    """

    row_count: int = 0
    column_stats: Dict[str, ColumnStatistics] = field(default_factory=dict)
    size_bytes: int = 0


_NUMERIC_KNOBS = (
    "base_field_cost",
    "base_processing_cost",
    "base_memory_cost",
    "data_source_cost_factor",
)


@dataclass(frozen=True)
class OptimizationContext:
    """
    Recognized optimization options

    Attributes:
        supports_projection_pushdown: Data source can evaluate projections
        supports_lazy_loading: Caller can fetch fields on demand
        base_field_cost: Retrieval cost per included field (default 1)
        base_processing_cost: Processing cost per complexity unit (default 0.5)
        base_memory_cost: Memory cost per field (default 0.2)
        data_source_cost_factor: Multiplier on retrieval cost (default 1)
        field_sizes: Field -> estimated size in bytes
        field_statistics: Field -> FieldStatistics
        performance_threshold: Minimum improvement in percent; None defers to
            the optimizer configuration
        cost_model_engine: External cost model (query optimizer only)
        data_source_capabilities: What the data source can push down
        required_fields: Fields the caller actually reads, used when field
            selection is licensed to prune
        table_statistics: Source name -> TableStatistics (query cost model)
    """

    supports_projection_pushdown: bool = False
    supports_lazy_loading: bool = False
    base_field_cost: float = 1.0
    base_processing_cost: float = 0.5
    base_memory_cost: float = 0.2
    data_source_cost_factor: float = 1.0
    field_sizes: Optional[Dict[str, float]] = None
    field_statistics: Optional[Dict[str, FieldStatistics]] = None
    performance_threshold: Optional[float] = None
    cost_model_engine: Any = None
    data_source_capabilities: Optional[DataSourceCapabilities] = None
    required_fields: Optional[Tuple[str, ...]] = None
    table_statistics: Optional[Dict[str, TableStatistics]] = None

    def __post_init__(self):
        for name in _NUMERIC_KNOBS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")
        if self.performance_threshold is not None and not isinstance(
            self.performance_threshold, (int, float)
        ):
            raise ConfigurationError("performance_threshold must be a number")

    @classmethod
    def from_dict(cls, options: Optional[Mapping[str, Any]] = None) -> "OptimizationContext":
        """
        Build a context from a JSON-shaped mapping

        Keys may be camelCase (supportsLazyLoading) or snake_case
        (supports_lazy_loading).

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        if options is None:
            return cls()
        if isinstance(options, OptimizationContext):
            return options

        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in options.items():
            name = _snake_case(key)
            if name not in known:
                raise ConfigurationError(f"Unknown context option: {key}")
            kwargs[name] = value

        if kwargs.get("field_statistics") is not None:
            kwargs["field_statistics"] = {
                name: _field_statistics(stats)
                for name, stats in kwargs["field_statistics"].items()
            }
        if kwargs.get("data_source_capabilities") is not None:
            kwargs["data_source_capabilities"] = _build(
                DataSourceCapabilities, kwargs["data_source_capabilities"]
            )
        if kwargs.get("table_statistics") is not None:
            kwargs["table_statistics"] = {
                name: _table_statistics(stats)
                for name, stats in kwargs["table_statistics"].items()
            }
        if kwargs.get("required_fields") is not None:
            kwargs["required_fields"] = tuple(kwargs["required_fields"])
        if kwargs.get("field_sizes") is not None:
            kwargs["field_sizes"] = dict(kwargs["field_sizes"])

        return cls(**kwargs)


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _build(cls, raw: Any):
    if isinstance(raw, cls):
        return raw
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Expected a mapping for {cls.__name__}, got {raw!r}")
    known = {f.name for f in fields(cls)}
    kwargs = {}
    for key, value in raw.items():
        name = _snake_case(key)
        if name not in known:
            raise ConfigurationError(f"Unknown {cls.__name__} option: {key}")
        kwargs[name] = value
    return cls(**kwargs)


def _field_statistics(raw: Any) -> FieldStatistics:
    return _build(FieldStatistics, raw)


def _table_statistics(raw: Any) -> TableStatistics:
    if isinstance(raw, TableStatistics):
        return raw
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Expected a mapping for TableStatistics, got {raw!r}")
    raw = dict(raw)
    columns = raw.pop("column_stats", raw.pop("columnStats", None)) or {}
    stats = _build(TableStatistics, raw)
    return TableStatistics(
        row_count=stats.row_count,
        column_stats={name: _build(ColumnStatistics, col) for name, col in columns.items()},
        size_bytes=stats.size_bytes,
    )


class CancellationToken:
    """
    Cooperative cancellation flag checked between strategies

    Cancelling never interrupts a strategy mid-rewrite; the orchestrator
    notices the flag before starting the next one.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OptimizationCancelled("Optimization cancelled")

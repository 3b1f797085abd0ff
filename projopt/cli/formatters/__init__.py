"""
Output formatters for CLI

Available formatters:
- TableFormatter: Rich tables
- JSONFormatter: Machine-readable JSON
"""

from projopt.cli.formatters.base import BaseFormatter
from projopt.cli.formatters.json import JSONFormatter
from projopt.cli.formatters.table import TableFormatter

__all__ = ["BaseFormatter", "TableFormatter", "JSONFormatter"]


def get_formatter(format_name: str) -> BaseFormatter:
    """
    Get formatter by name

    Args:
        format_name: Name of formatter (table, json)

    Returns:
        Formatter instance

    Raises:
        ValueError: If formatter not found
    """
    formatters = {
        "table": TableFormatter,
        "json": JSONFormatter,
    }

    if format_name not in formatters:
        available = ", ".join(formatters.keys())
        raise ValueError(f"Unknown format: {format_name}. Available formats: {available}")

    return formatters[format_name]()

"""
Formatter interface for CLI reports

A report is a list of rows (one per step, estimate or analysis) plus an
optional mapping of extra sections such as the summary and the optimized
descriptor.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

Row = Dict[str, Any]


class BaseFormatter(ABC):
    """Base class for report formatters"""

    name = ""

    def format(
        self,
        rows: Sequence[Mapping[str, Any]],
        *,
        no_color: bool = False,
        title: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
        compact: bool = False,
    ) -> str:
        """
        Format a report for output

        Args:
            rows: Report rows; later rows may add columns
            no_color: Disable terminal styling
            title: Report title, where the format has one
            extra: Sections shown next to the rows
            compact: Prefer the shortest rendering

        Returns:
            Formatted string ready for output
        """
        plain = [dict(row) for row in rows]
        return self.render(
            plain,
            columns=collect_columns(plain),
            no_color=no_color,
            title=title,
            extra=dict(extra) if extra else {},
            compact=compact,
        )

    @abstractmethod
    def render(
        self,
        rows: List[Row],
        *,
        columns: List[str],
        no_color: bool,
        title: Optional[str],
        extra: Row,
        compact: bool,
    ) -> str:
        """Render normalized rows"""

    def get_name(self) -> str:
        return self.name


def collect_columns(rows: Sequence[Row]) -> List[str]:
    """Column names in first-seen order across all rows"""
    columns: List[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns

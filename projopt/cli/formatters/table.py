"""
Rich table formatter for terminal output
"""

import json
from typing import Any, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from projopt.cli.formatters.base import BaseFormatter, Row

EMPTY = "[dim]-[/dim]"


class TableFormatter(BaseFormatter):
    """
    Format reports as a Rich table

    Extra sections are printed as indented JSON under the table.
    """

    name = "table"

    # Wide reports switch to a lighter box
    WIDE_REPORT_COLUMNS = 6

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
        if rows:
            table = Table(
                show_header=True,
                header_style="bold magenta",
                box=box.SIMPLE if compact or len(columns) > self.WIDE_REPORT_COLUMNS else box.HEAVY_HEAD,
                title=title,
            )
            for col in columns:
                table.add_column(col, style="cyan", overflow="fold", max_width=40)
            for row in rows:
                table.add_row(*(_display(row.get(col)) for col in columns))

            console = Console(force_terminal=not no_color, no_color=no_color)
            with console.capture() as capture:
                console.print(table)
            output = capture.get()
        else:
            output = "No rows.\n"

        if extra:
            output += json.dumps(extra, indent=None if compact else 2, default=str) + "\n"
        return output


def _display(value: Any) -> str:
    if value is None:
        return EMPTY
    if isinstance(value, float):
        return f"{value:.2f}"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) or EMPTY
    return str(value)

"""
JSON formatter for machine-readable output
"""

import json
import math
from typing import Any, List, Optional

from projopt.cli.formatters.base import BaseFormatter, Row


def clean_value(val: Any) -> Any:
    """Replace NaN and infinity with None so the output stays valid JSON"""
    if isinstance(val, float) and (math.isnan(val) or math.isinf(val)):
        return None
    if isinstance(val, dict):
        return {k: clean_value(v) for k, v in val.items()}
    if isinstance(val, (list, tuple)):
        return [clean_value(v) for v in val]
    return val


class JSONFormatter(BaseFormatter):
    """
    Format reports as JSON

    Rows alone render as a list. With extra sections the output is an
    object {"rows": [...], **extra}.
    """

    name = "json"
    indent = 2

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
        payload: Any = clean_value(rows)
        if extra:
            payload = {"rows": payload, **clean_value(extra)}

        if compact:
            return json.dumps(payload, separators=(",", ":"), default=str)
        return json.dumps(payload, indent=self.indent, default=str)

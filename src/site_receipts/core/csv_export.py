from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any


def escape_csv_value(value: Any) -> str:
    """Quote one field: wrap in double quotes, doubling any embedded quote."""
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def render_csv(header: Sequence[str], rows: Iterable[Mapping[str, Any]]) -> str:
    lines = [",".join(header)]
    for row in rows:
        lines.append(",".join(escape_csv_value(row.get(key)) for key in header))
    return "\n".join(lines)

"""Make query results safe for JSON consumers.

Engine rows may hold 64-bit integers, decimals, temporal values and UUIDs.
JavaScript clients silently lose precision on integers beyond 2**53, so
those are stringified along with the non-JSON scalar types.
"""

from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import Any

MAX_SAFE_INTEGER = 2**53 - 1

_STRINGIFIED_TYPES = (Decimal, dt.date, dt.time, dt.timedelta, uuid.UUID)


def sanitize_value(value: Any) -> Any:
    """Recursively convert unsafe scalars to strings.

    Args:
        value: A row value, row, list of rows, or any nesting of them.

    Returns:
        A structure of the same shape with unsafe scalars stringified.
    """
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return str(value) if abs(value) > MAX_SAFE_INTEGER else value
    if isinstance(value, dt.datetime):
        return value.isoformat()
    if isinstance(value, _STRINGIFIED_TYPES):
        return value.isoformat() if isinstance(value, (dt.date, dt.time)) else str(value)
    if isinstance(value, dict):
        return {key: sanitize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_value(item) for item in value]
    return value


def sanitize_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [sanitize_value(row) for row in rows]

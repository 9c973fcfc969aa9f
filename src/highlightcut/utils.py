"""Shared utility functions for highlightcut.

- utc_iso(): UTC timestamp in ISO format
- clamp() / round_time(): numeric helpers shared by scoring and editing
- to_float_or_default() / to_bool_or_default(): lenient parameter coercion
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any


def utc_iso() -> str:
    """Return current UTC time in ISO 8601 format.

    Returns:
        ISO formatted timestamp string like '2024-01-15T10:30:00+00:00'
    """
    return datetime.now(timezone.utc).isoformat()


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def round_time(value: float) -> float:
    """Round a timeline time to microsecond precision."""
    return round(float(value), 6)


def is_finite_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def to_float_or_default(value: Any, default: float) -> float:
    """Coerce tool/API parameters that may arrive as strings or null."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        n = float(value)
    except (TypeError, ValueError):
        return default
    return n if math.isfinite(n) else default


def to_bool_or_default(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"true", "1", "yes", "on"}:
            return True
        if v in {"false", "0", "no", "off"}:
            return False
    return default


def fmt_clock(seconds: float) -> str:
    """Format seconds as MM:SS for prompts and tables."""
    total = max(0.0, float(seconds))
    minutes = int(total // 60)
    secs = int(total % 60)
    return f"{minutes:02d}:{secs:02d}"

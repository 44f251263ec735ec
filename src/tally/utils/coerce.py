"""Lenient coercion of values decoded from runner output."""

from __future__ import annotations


def to_float(value: object) -> float | None:
    """Coerce *value* to ``float``, returning ``None`` when it is not numeric.

    Booleans are rejected even though ``float(True)`` works; a runner that
    writes ``"duration": true`` has not reported a duration.
    """
    if isinstance(value, bool) or value is None:
        return None
    try:
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if result != result:  # NaN
        return None
    return result


def to_int(value: object, default: int = 0) -> int:
    """Coerce *value* to ``int``, defaulting to *default*."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value)))
    except (TypeError, ValueError, OverflowError):
        return default

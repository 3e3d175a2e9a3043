from typing import Any, Optional


def coerce_count(value: Any) -> Optional[int]:
    """Non-negative whole number from a loosely typed JSON field.

    Ticket numbers and RED versions arrive as ints, integral floats or
    numeric strings ("0012", "3.0"). Booleans, fractions, negatives and
    anything else give None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = float(text) if "." in text else int(text)
        except ValueError:
            return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, int) and value >= 0:
        return value
    return None


def coerce_version(value: Any) -> int:
    """RED versions: missing or unusable values become 0."""
    parsed = coerce_count(value)
    return parsed if parsed is not None else 0

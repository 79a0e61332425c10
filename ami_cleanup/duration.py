"""
Relative duration expressions such as ``7d``, ``2.3h`` or ``1y``.

Units are case-sensitive: ``m`` is minutes and ``M`` is months. Months and
years are fixed at 30 and 365 days; nothing here is calendar-aware.
"""

import datetime
from typing import Dict, List, Tuple

from .errors import InvalidUnit, InvalidValue

UNIT_SECONDS: Dict[str, int] = {
    's': 1,
    'm': 60,
    'h': 3600,
    'd': 86400,
    'w': 604800,
    'M': 2592000,
    'y': 31536000,
}

# Largest first, used by format_age
_AGE_UNITS: List[Tuple[str, int]] = sorted(UNIT_SECONDS.items(), key=lambda item: item[1], reverse=True)


def parse_duration(expression: str) -> datetime.timedelta:
    """
    Parse a relative duration expression into a timedelta.

    Args:
        expression: signed decimal number followed by one unit letter,
            e.g. ``30s``, ``-30s``, ``2.3h``, ``1M``

    Returns:
        The equivalent timedelta

    Raises:
        InvalidUnit: no recognised unit at the end of the expression
        InvalidValue: the numeric prefix is not a decimal number, or is too
            large to represent
    """
    value = unit = None
    # Longest recognised suffix wins
    for i in range(len(expression)):
        if expression[i:] in UNIT_SECONDS:
            value, unit = expression[:i], expression[i:]
            break

    if unit is None:
        raise InvalidUnit(expression)

    # float() strips surrounding whitespace
    if value != value.strip():
        raise InvalidValue(value)

    try:
        number = float(value)
    except ValueError:
        raise InvalidValue(value) from None

    # float() also accepts things like "inf", "nan" and "1_0"
    if number != number or number in (float('inf'), float('-inf')) or '_' in value:
        raise InvalidValue(value)

    try:
        return datetime.timedelta(seconds=number * UNIT_SECONDS[unit])
    except OverflowError:
        raise InvalidValue(value) from None


def format_age(delta: datetime.timedelta) -> str:
    """Render a duration in the largest unit with a magnitude of at least one."""
    seconds = delta.total_seconds()
    for unit, size in _AGE_UNITS:
        if seconds >= size:
            return f"{int(seconds // size)}{unit}"
    return f"{int(seconds)}s"

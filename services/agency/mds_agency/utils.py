"""
Primitive value checks shared by the validators
"""

import math
import re
import time
from typing import Any, Iterable

# 2015-01-01T00:00:00-08:00 in milliseconds; anything earlier is assumed to be seconds
MIN_TIMESTAMP = 1420099200000
# Anything at or beyond this is assumed to be microseconds
MAX_TIMESTAMP = 20000000000000

UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)


def now() -> int:
    """Current time in milliseconds since the epoch"""
    return int(time.time() * 1000)


def is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid measurement
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and UUID_PATTERN.match(value) is not None


def is_float(value: Any) -> bool:
    if not is_number(value):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # JSON ints too large for a double
        return False


def is_pct(value: Any) -> bool:
    """Percentages are fractions in [0, 1]"""
    return is_float(value) and 0 <= value <= 1


def is_timestamp(value: Any) -> bool:
    """Millisecond epoch timestamps only"""
    return is_number(value) and MIN_TIMESTAMP <= value < MAX_TIMESTAMP


def are_there_common_elements(a: Iterable[Any], b: Iterable[Any]) -> bool:
    return not set(a).isdisjoint(b)


def lower(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower()
    return value

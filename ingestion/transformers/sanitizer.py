"""
Record sanitization applied before storage
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Tuple, Union
import math
import numbers

RawRecord = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


def sanitize_record(record: RawRecord) -> Dict[str, Any]:
    """
    Normalize a raw archive record.

    Rules, in field order:
    - a field name seen before is dropped (first occurrence wins)
    - a numeric NaN becomes 0
    - everything else, None and empty strings included, is kept as is

    Args:
        record: Mapping or sequence of (name, value) pairs; the pair form
            keeps duplicate field names coming from the archive header

    Returns:
        New dict; the input is not modified
    """
    items = record.items() if isinstance(record, Mapping) else record

    sanitized: Dict[str, Any] = {}
    for name, value in items:
        if name in sanitized:
            continue
        sanitized[name] = 0 if is_nan(value) else value

    return sanitized


def is_nan(value: Any) -> bool:
    """True for numeric not-a-number values (float, Decimal, complex)"""
    if isinstance(value, bool) or not isinstance(value, numbers.Number):
        return False
    if isinstance(value, Decimal):
        return value.is_nan()
    if isinstance(value, complex):
        return math.isnan(value.real) or math.isnan(value.imag)
    try:
        return math.isnan(value)
    except (TypeError, ValueError, OverflowError):
        return False

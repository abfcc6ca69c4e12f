# Mark validation shared by the average field and every subject row

import re
from decimal import Decimal
from typing import Optional

MARK_ERROR = "Mark must be a whole number between 0 and 100."
MISSING_NAME_ERROR = "Subject name is required when a mark is entered."
DUPLICATE_NAME_ERROR = "This subject has already been entered."

MIN_MARK = 0
MAX_MARK = 100

# Plain decimal numbers with an optional exponent: "75", "+5", "80.00", "5.", ".5e1", "1e2".
# ASCII digits only; hex, infinities and other notations are rejected.
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$", re.ASCII)


def is_blank(raw: Optional[str]) -> bool:
    return raw is None or not raw.strip()


def _parse_whole(value: str) -> Optional[int]:
    """Integer value of a numeric string that denotes a whole number in range, else None"""
    if not _NUMBER_RE.match(value):
        return None
    number = Decimal(value)
    if not MIN_MARK <= number <= MAX_MARK:
        return None
    if number != number.to_integral_value():
        return None
    return int(number)


def validate_mark(raw: str) -> Optional[str]:
    """
    Return the validation error for a raw mark, or None when it is acceptable.
    An empty value means "not provided" and is never an error. Any numeric
    notation is fine as long as the value is a whole number: "80.00" and "1e2"
    pass, "7.5" does not.
    """
    if raw == "":
        return None
    value = raw.strip()
    if not value:
        return None
    if _parse_whole(value) is None:
        return MARK_ERROR
    return None


def coerce_mark(raw: str) -> Optional[int]:
    """Integer value of a mark that already passed validate_mark; None when blank"""
    if is_blank(raw):
        return None
    value = _parse_whole(raw.strip())
    if value is None:
        raise ValueError(f"{raw!r}: {MARK_ERROR}")
    return value

from datetime import date
from typing import Optional

VALID_STATUSES = {"pending", "approved", "rejected", "cancelled", "returned"}


def blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if value == "":
        return None
    return value


def normalize_status(status: Optional[str]) -> Optional[str]:
    if status in VALID_STATUSES:
        return status
    return None


def normalize_limit(limit: int, *, min_value: int = 1, max_value: int = 500) -> int:
    if limit < min_value:
        return min_value
    if limit > max_value:
        return max_value
    return limit


def normalize_offset(offset: int) -> int:
    if offset < 0:
        return 0
    return offset


def normalize_date_range(
    date_from: Optional[date], date_to: Optional[date]
) -> tuple[Optional[date], Optional[date]]:
    # a reversed range is treated as the user swapping the fields
    if date_from and date_to and date_from > date_to:
        return date_to, date_from
    return date_from, date_to

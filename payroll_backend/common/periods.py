"""Pay period key validation and calendar helpers."""

from __future__ import annotations

import calendar
import re
from datetime import date

from payroll_backend.common.exceptions import ValidationException

_PERIOD_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


def parse_period_key(key: str) -> tuple[int, int]:
    """Validate a ``YYYY-MM`` key and return ``(year, month)``."""
    match = _PERIOD_KEY_RE.match((key or "").strip())
    if not match:
        raise ValidationException(
            {"period": ["Period must use the YYYY-MM format (e.g. 2026-01)."]},
            detail=f"Invalid period key '{key}'.",
        )
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationException(
            {"period": ["Month must be between 01 and 12."]},
            detail=f"Invalid period key '{key}'.",
        )
    return year, month


def period_bounds(key: str) -> tuple[date, date]:
    """First and last calendar day of the period."""
    year, month = parse_period_key(key)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def period_label(key: str) -> str:
    """e.g. ``2026-01`` → ``January 2026``."""
    year, month = parse_period_key(key)
    return f"{calendar.month_name[month]} {year}"


def validate_period_dates(start: date, end: date) -> None:
    if start > end:
        raise ValidationException(
            {"end_date": ["End date must not be before start date."]},
        )

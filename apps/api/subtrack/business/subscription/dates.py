from __future__ import annotations

import calendar
import re
from datetime import date, datetime

_MONTH_YEAR_RE = re.compile(r"^(\d{2})-(\d{4})$")


def month_start(value: date) -> date:
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def add_months(base_date: date, months: int) -> date:
    month_index = base_date.month - 1 + months
    year = base_date.year + (month_index // 12)
    month = month_index % 12 + 1
    day = min(base_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_month_year(raw: str) -> date:
    """Parse ``MM-YYYY`` into the first day of that month."""
    match = _MONTH_YEAR_RE.match(raw.strip())
    if match is None:
        raise ValueError(f"invalid date {raw!r} (want MM-YYYY)")
    month, year = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12 or year < 1:
        raise ValueError(f"invalid date {raw!r} (want MM-YYYY)")
    return date(year, month, 1)


def format_month_year(value: date) -> str:
    return f"{value.month:02d}-{value.year:04d}"


def coerce_month_year(value: object) -> object:
    if isinstance(value, str):
        return parse_month_year(value)
    if isinstance(value, date):
        return month_start(value)
    return value

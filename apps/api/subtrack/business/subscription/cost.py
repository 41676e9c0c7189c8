from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date
from typing import Protocol

from subtrack.business.subscription.dates import add_months


class Billable(Protocol):
    price: int
    start_date: date
    end_date: date | None


def billing_occurrences(
    start_date: date,
    end_date: date | None,
    window_end: date,
    window_start: date | None = None,
) -> Iterator[date]:
    """Yield monthly charge dates from ``start_date`` that fall inside the window.

    The walk never passes ``window_end`` or ``end_date``, whichever is earlier,
    and starts at the first occurrence on or after ``window_start``. Each step is
    computed from ``start_date`` so a day clamped in a short month does not
    drift.
    """
    last = window_end if end_date is None else min(end_date, window_end)
    step = 0
    if window_start is not None:
        step = max(0, _months_between(start_date, window_start) - 1)
    occurrence = add_months(start_date, step)
    while occurrence <= last:
        if window_start is None or occurrence >= window_start:
            yield occurrence
        if (occurrence.year, occurrence.month) == (last.year, last.month):
            return
        step += 1
        occurrence = add_months(start_date, step)


def _months_between(earlier: date, later: date) -> int:
    return (later.year - earlier.year) * 12 + later.month - earlier.month


def subscription_cost(subscription: Billable, window_start: date, window_end: date) -> int:
    charged = sum(
        1 for _ in billing_occurrences(subscription.start_date, subscription.end_date, window_end, window_start)
    )
    return charged * subscription.price


def total_cost(subscriptions: Iterable[Billable], window_start: date, window_end: date) -> int:
    if window_end < window_start:
        return 0
    return sum(subscription_cost(item, window_start, window_end) for item in subscriptions)

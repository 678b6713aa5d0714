from __future__ import annotations

from datetime import date
from typing import List, Optional


class SystemClock:
    def today(self) -> date:
        return date.today()


class FixedClock:
    def __init__(self, today: date):
        self._today = today

    def today(self) -> date:
        return self._today


def clock_for(anchor: Optional[date]):
    return FixedClock(anchor) if anchor else SystemClock()


def month_start(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, months: int) -> date:
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def months_between(start: date, end: date) -> int:
    """Inclusive count of calendar months from ``start`` to ``end``."""
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def month_range(start: date, count: int) -> List[str]:
    first = month_start(start)
    return [month_key(add_months(first, i)) for i in range(count)]


def is_projected(month: str, current_month: str) -> bool:
    # YYYY-MM keys order lexicographically
    return month >= current_month

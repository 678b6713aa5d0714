from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple, Union

from .clock import add_months, is_projected, month_key, month_range, month_start, months_between
from .parameters import CanonicalParameters

logger = logging.getLogger(__name__)

ALL_LOCATIONS = "all"
MAX_MONTHS = 60

TIME_RANGE_MONTHS = {
    "1M": 1,
    "3M": 3,
    "6M": 6,
    "1Y": 12,
    "2Y": 24,
    "5Y": 60,
}

RANGE_LABELS = {months: code for code, months in TIME_RANGE_MONTHS.items()}

# Period names used by the revenue-trend and financial endpoints
PERIOD_ALIASES = {
    "1MONTH": "1M",
    "3MONTHS": "3M",
    "6MONTHS": "6M",
    "1YR": "1Y",
    "1YEAR": "1Y",
    "2YR": "2Y",
    "5YR": "5Y",
}


@dataclass(frozen=True)
class FilterContext:
    location_id: Optional[str]
    location_weight: float
    is_all_locations: bool
    time_multiplier: int
    included_months: Tuple[str, ...]
    current_month: str
    today: date
    time_range: str

    @property
    def months(self) -> int:
        return self.time_multiplier

    @property
    def first_month(self) -> str:
        return self.included_months[0]

    def is_projected(self, month: str) -> bool:
        return is_projected(month, self.current_month)


def parse_time_range(code: Union[str, int, None]) -> Optional[int]:
    """Month count for a range code, or None when the code is not understood."""
    if code is None:
        return None
    if isinstance(code, bool):
        return None
    if isinstance(code, int):
        return code if code > 0 else None

    normalized = str(code).strip().upper()
    normalized = PERIOD_ALIASES.get(normalized, normalized)
    if normalized in TIME_RANGE_MONTHS:
        return TIME_RANGE_MONTHS[normalized]
    if normalized.isdigit():
        months = int(normalized)
        return months if months > 0 else None
    return None


def parse_count(value: Union[str, int, None], default: Optional[int], maximum: int, name: str = "count") -> Optional[int]:
    """Positive integer query input; malformed values fall back to `default`, large ones clamp."""
    if value is None or value == "":
        return default
    try:
        count = int(str(value).strip())
    except ValueError:
        logger.warning("Malformed %s %r, using %s", name, value, default)
        return default
    if count < 1:
        logger.warning("Non-positive %s %r, using %s", name, value, default)
        return default
    if count > maximum:
        logger.warning("%s %d exceeds %d, clamping", name, count, maximum)
        return maximum
    return count


def _parse_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def resolve(
    params: CanonicalParameters,
    location_id: Optional[str] = None,
    time_range: Union[str, int, None] = None,
    *,
    clock,
    start_date: Union[str, date, None] = None,
    end_date: Union[str, date, None] = None,
) -> FilterContext:
    today = clock.today()
    current = month_start(today)

    location_key = (location_id or "").strip()
    if not location_key or location_key.lower() == ALL_LOCATIONS:
        resolved_location = None
        weight = 1.0
        is_all = True
    else:
        resolved_location = location_key
        location = params.location(location_key)
        if location is None:
            logger.warning(
                "Unknown location %r, using fallback weight %s",
                location_key, params.fallback_location_weight,
            )
            weight = params.fallback_location_weight
        else:
            weight = location.weight
        is_all = False

    included: Optional[Tuple[str, ...]] = None
    label = None
    if start_date is not None or end_date is not None:
        start = _parse_date(start_date)
        end = _parse_date(end_date) or today
        if start is None or start > end:
            logger.warning("Ignoring malformed claim date window start=%r end=%r", start_date, end_date)
        else:
            months = months_between(start, end)
            if months > MAX_MONTHS:
                start = add_months(month_start(end), -(MAX_MONTHS - 1))
                months = MAX_MONTHS
            included = tuple(month_range(start, months))
            label = f"{included[0]}..{included[-1]}"

    if included is None:
        months = parse_time_range(time_range)
        if months is None:
            if time_range not in (None, ""):
                logger.warning(
                    "Unknown time range %r, defaulting to %d months",
                    time_range, params.default_time_range_months,
                )
            months = params.default_time_range_months
        if months > MAX_MONTHS:
            logger.warning("Time range %r exceeds %d months, clamping", time_range, MAX_MONTHS)
            months = MAX_MONTHS
        included = tuple(month_range(add_months(current, -(months - 1)), months))
        label = RANGE_LABELS.get(months, f"{months}M")

    ctx = FilterContext(
        location_id=resolved_location,
        location_weight=weight,
        is_all_locations=is_all,
        time_multiplier=len(included),
        included_months=included,
        current_month=month_key(current),
        today=today,
        time_range=label,
    )
    logger.debug(
        "Resolved filter location=%s weight=%s months=%d current=%s",
        ctx.location_id or ALL_LOCATIONS, ctx.location_weight, ctx.months, ctx.current_month,
    )
    return ctx

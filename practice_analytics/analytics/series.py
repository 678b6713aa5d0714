from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import date
from typing import List

from .allocation import round_half_up
from .clock import add_months, is_projected, month_key, month_start


@dataclass(frozen=True)
class MonthPoint:
    month: str
    is_projected: bool
    value: int
    baseline: int
    growth_factor: float
    seasonal_factor: float
    jitter: float


def growth_factor(offset: int, months_back: int, annual_growth_rate: float) -> float:
    return (1 + annual_growth_rate) ** (max(0, months_back - offset) / 12)


def seasonal_factor(month_index: int, amplitude: float) -> float:
    """Seasonal multiplier for a zero-based calendar month (0 = January)."""
    return 1 + amplitude * math.sin((month_index + 3) / 12 * 2 * math.pi)


def generate_series(
    base_monthly_value: float,
    months_back: int,
    months_forward: int,
    *,
    now: date,
    rng: random.Random,
    annual_growth_rate: float = 0.08,
    seasonal_amplitude: float = 0.15,
    historical_jitter: float = 0.20,
    projected_jitter: float = 0.10,
) -> List[MonthPoint]:
    """Month-indexed series from ``months_back`` before ``now`` to ``months_forward`` after.

    Points are ordered oldest first. A month at or after the month containing
    ``now`` is projected and draws a narrower jitter band.
    """
    current = month_start(now)
    current_key = month_key(current)
    points = []

    for offset in range(months_back, -months_forward - 1, -1):
        month_date = add_months(current, -offset)
        key = month_key(month_date)
        projected = is_projected(key, current_key)

        growth = growth_factor(offset, months_back, annual_growth_rate)
        seasonal = seasonal_factor(month_date.month - 1, seasonal_amplitude)
        bound = projected_jitter if projected else historical_jitter
        jitter = rng.uniform(-bound, bound)

        trend = base_monthly_value * growth * seasonal
        points.append(
            MonthPoint(
                month=key,
                is_projected=projected,
                value=round_half_up(trend * (1 + jitter)),
                baseline=round_half_up(trend),
                growth_factor=growth,
                seasonal_factor=seasonal,
                jitter=jitter,
            )
        )

    return points

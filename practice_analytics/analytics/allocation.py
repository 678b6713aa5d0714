"""Rounding and allocation helpers shared by every derivation.

Whenever a total is split into parts, the parts are produced here so the
accounting identities (funnel, aging, category breakdowns) hold exactly
after rounding to whole currency units.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Sequence

from .filters import FilterContext
from .parameters import CanonicalParameters


def round_half_up(value: float) -> int:
    return int(Decimal(repr(float(value))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_percent(value: float) -> float:
    return float(Decimal(repr(float(value))).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def allocate(total: int, weights: Sequence[float]) -> List[int]:
    """Split an integer total across weights using the largest-remainder method.

    The result always sums to ``total``. Zero or negative weight sets fall back
    to an even split.
    """
    if not weights:
        return []
    if total < 0:
        return [-part for part in allocate(-total, weights)]

    clean = [max(float(w), 0.0) for w in weights]
    weight_sum = sum(clean)
    if weight_sum <= 0:
        clean = [1.0] * len(weights)
        weight_sum = float(len(weights))

    exact = [total * w / weight_sum for w in clean]
    parts = [int(x) for x in exact]
    shortfall = total - sum(parts)

    by_remainder = sorted(range(len(exact)), key=lambda i: (exact[i] - parts[i], clean[i]), reverse=True)
    for i in by_remainder[:shortfall]:
        parts[i] += 1
    return parts


def monthly_base(total: float, weight: float) -> int:
    return round_half_up(total * weight)


def period_revenue(params: CanonicalParameters, ctx: FilterContext) -> int:
    """The single upstream revenue figure for a filter.

    Every widget describing total revenue for the same filter reads this value.
    """
    return monthly_base(params.total_monthly_revenue, ctx.location_weight) * ctx.time_multiplier


def period_claims_paid(params: CanonicalParameters, ctx: FilterContext) -> int:
    paid = params.claims_submitted_total * params.claims_paid_share
    return monthly_base(paid, ctx.location_weight) * ctx.time_multiplier


def scale_annual(amount: float, ctx: FilterContext) -> int:
    return monthly_base(amount / 12, ctx.location_weight) * ctx.time_multiplier


def split_claims_funnel(
    paid: int,
    collection_rate: float,
    pending_share: float,
    denied_share: float,
) -> Dict[str, int]:
    """Derive the funnel backward from the paid amount.

    Pending and Denied are rounded from Submitted; Paid absorbs the rounding
    remainder so Paid + Pending + Denied equals Submitted exactly.
    """
    if collection_rate <= 0:
        submitted = 0
    else:
        submitted = round_half_up(paid / collection_rate)
    pending = round_half_up(submitted * pending_share)
    denied = round_half_up(submitted * denied_share)
    return {
        "Submitted": submitted,
        "Paid": submitted - pending - denied,
        "Pending": pending,
        "Denied": denied,
    }

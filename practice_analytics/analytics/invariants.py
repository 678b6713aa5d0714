from __future__ import annotations

import random
from typing import List

from . import derivations
from .allocation import period_revenue
from .filters import FilterContext
from .parameters import PERCENT_TOLERANCE, SHARE_TOLERANCE, CanonicalParameters


def check_location_weights(params: CanonicalParameters) -> List[str]:
    total = sum(params.location_weights.values())
    if abs(total - 1.0) > SHARE_TOLERANCE:
        return [f"location weights total {total}"]
    return []


def check_funnel(funnel: dict) -> List[str]:
    amounts = {c["status"]: c["total_amount"] for c in funnel["claims"]}
    issues = []
    if amounts["Paid"] + amounts["Pending"] + amounts["Denied"] != amounts["Submitted"]:
        issues.append(
            f"claims funnel: paid {amounts['Paid']} + pending {amounts['Pending']} + "
            f"denied {amounts['Denied']} != submitted {amounts['Submitted']}"
        )
    for bucket in funnel["claims"]:
        provider_sum = sum(p["amount"] for p in bucket["providers"])
        if bucket["providers"] and provider_sum != bucket["total_amount"]:
            issues.append(f"claims funnel: {bucket['status']} providers total {provider_sum}")
    return issues


def check_aging(aging: dict, label: str = "ar aging") -> List[str]:
    bucket_sum = sum(b["amount"] for b in aging["buckets"])
    if bucket_sum != aging["total_outstanding"]:
        return [f"{label}: buckets total {bucket_sum} != outstanding {aging['total_outstanding']}"]
    return []


def check_payer_shares(breakdown: dict, ctx: FilterContext) -> List[str]:
    if not ctx.is_all_locations:
        return []
    total = sum(p["percentage"] for p in breakdown["payers"])
    if abs(total - 100.0) > PERCENT_TOLERANCE:
        return [f"payer breakdown: percentages total {total}"]
    return []


def check_profit_and_loss(pl: dict) -> List[str]:
    issues = []
    if pl["net_profit"] != pl["total_revenue"] - pl["total_expenses"]:
        issues.append("profit and loss: net profit != revenue - expenses")
    for section in ("revenue", "expenses"):
        item_sum = sum(item["amount"] for item in pl[section]["items"])
        if item_sum != pl[section]["total"]:
            issues.append(f"profit and loss: {section} items total {item_sum} != {pl[section]['total']}")
    return issues


def check_cash_flow(cf: dict) -> List[str]:
    expected = cf["operating"]["total"] + cf["investing"]["total"] + cf["financing"]["total"]
    if cf["net_cash_flow"] != expected:
        return [f"cash flow: net {cf['net_cash_flow']} != sections {expected}"]
    return []


def check_revenue_sources(params: CanonicalParameters, ctx: FilterContext, *results: dict) -> List[str]:
    """Every widget reporting total revenue for a filter must report the same figure."""
    expected = period_revenue(params, ctx)
    issues = []
    for result in results:
        for key in ("total_revenue", "period_revenue"):
            if key in result and result[key] != expected:
                issues.append(f"revenue source mismatch: {key}={result[key]} expected {expected}")
    return issues


def check_projection_boundary(ctx: FilterContext, *series: List[dict]) -> List[str]:
    issues = []
    for points in series:
        for point in points:
            if point["is_projected"] != ctx.is_projected(point["month"]):
                issues.append(f"projection boundary disagrees for {point['month']}")
    return issues


def run_consistency_checks(params: CanonicalParameters, ctx: FilterContext, rng: random.Random) -> List[str]:
    trend = derivations.revenue_trend(params, ctx, rng)
    projections = derivations.patient_volume_projections(params, ctx, rng)
    pl = derivations.profit_and_loss(params, ctx)
    billing = derivations.patient_billing(params, ctx)

    issues = []
    issues += check_location_weights(params)
    issues += check_funnel(derivations.claims_funnel(params, ctx))
    issues += check_aging(derivations.ar_aging(params, ctx))
    issues += check_aging(billing["aging"], "patient aging")
    issues += check_payer_shares(derivations.insurance_payer_breakdown(params, ctx, rng), ctx)
    issues += check_profit_and_loss(pl)
    issues += check_cash_flow(derivations.cash_flow(params, ctx))
    issues += check_revenue_sources(
        params,
        ctx,
        trend,
        pl,
        derivations.provider_collections(params, ctx),
        derivations.key_metrics(params, ctx),
    )
    issues += check_projection_boundary(ctx, trend["points"], projections)
    return issues

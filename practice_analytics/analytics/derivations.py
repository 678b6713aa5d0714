from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence

from .allocation import (
    allocate,
    monthly_base,
    period_claims_paid,
    period_revenue,
    round_half_up,
    round_percent,
    scale_annual,
    split_claims_funnel,
)
from .filters import ALL_LOCATIONS, FilterContext
from .parameters import (
    PERCENT_TOLERANCE,
    SERVICE_CATEGORIES,
    CanonicalParameters,
    LineItem,
    ProviderShare,
)
from .series import generate_series

logger = logging.getLogger(__name__)

FUNNEL_STATUSES = ("Submitted", "Paid", "Pending", "Denied")


def _series_options(params: CanonicalParameters) -> dict:
    return {
        "annual_growth_rate": params.annual_growth_rate,
        "seasonal_amplitude": params.seasonal_amplitude,
        "historical_jitter": params.historical_jitter,
        "projected_jitter": params.projected_jitter,
    }


def _normalize_category(category: Optional[str]) -> Optional[str]:
    if not category:
        return None
    normalized = category.strip().lower()
    if normalized in ("", ALL_LOCATIONS):
        return None
    if normalized not in SERVICE_CATEGORIES:
        logger.warning("Unknown category filter %r ignored", category)
        return None
    return normalized


def _line_rows(items: Sequence[LineItem], amounts: Sequence[int]) -> List[dict]:
    return [
        {
            "name": item.name,
            "category": item.category,
            "amount": amount,
            "change": item.change,
            "trend": item.trend,
        }
        for item, amount in zip(items, amounts)
    ]


def revenue_trend(params: CanonicalParameters, ctx: FilterContext, rng: random.Random) -> dict:
    base = monthly_base(params.total_monthly_revenue, ctx.location_weight)
    series = generate_series(
        base,
        params.trend_months_back,
        params.trend_months_forward,
        now=ctx.today,
        rng=rng,
        **_series_options(params),
    )
    ratio = params.expense_ratio
    included = set(ctx.included_months)

    points = []
    for point in series:
        ar_days = rng.randint(params.ar_days_min, params.ar_days_max)
        if point.month not in included and not point.is_projected:
            continue
        expenses = round_half_up(point.value * ratio)
        points.append({
            "month": point.month,
            "is_projected": point.is_projected,
            "revenue": point.value,
            "baseline": point.baseline,
            "expenses": expenses,
            "profit": point.value - expenses,
            "patient_count": round_half_up(point.value / params.revenue_per_patient),
            "ar_days": ar_days,
        })

    return {
        "location_id": ctx.location_id or ALL_LOCATIONS,
        "time_range": ctx.time_range,
        "current_month": ctx.current_month,
        "monthly_base": base,
        "period_revenue": period_revenue(params, ctx),
        "historical_total": sum(p["revenue"] for p in points if not p["is_projected"]),
        "projected_total": sum(p["revenue"] for p in points if p["is_projected"]),
        "points": points,
    }


def patient_volume_projections(
    params: CanonicalParameters,
    ctx: FilterContext,
    rng: random.Random,
    months: Optional[int] = None,
) -> List[dict]:
    months = months if months and months > 0 else params.projection_months
    base = monthly_base(params.total_monthly_revenue, ctx.location_weight)
    series = generate_series(base, 0, months - 1, now=ctx.today, rng=rng, **_series_options(params))

    projections = []
    for i, point in enumerate(series):
        confidence = max(
            params.projection_confidence_floor,
            params.projection_confidence_start - params.projection_confidence_step * i,
        )
        projections.append({
            "month": point.month,
            "is_projected": point.is_projected,
            "projected_revenue": point.value,
            "projected_patients": round_half_up(point.value / params.revenue_per_patient),
            "growth_rate": round_percent((params.annual_growth_rate + params.projection_growth_step * i) * 100),
            "confidence": round(confidence, 2),
        })
    return projections


def insurance_payer_breakdown(params: CanonicalParameters, ctx: FilterContext, rng: random.Random) -> dict:
    total = period_revenue(params, ctx)

    if ctx.is_all_locations:
        percentages = [p.percentage for p in params.payers]
        amounts = allocate(total, percentages)
        ar_days = [p.ar_days for p in params.payers]
    else:
        bound = params.location_payer_jitter
        percentages = [round_percent(p.percentage * (1 + rng.uniform(-bound, bound))) for p in params.payers]
        amounts = [round_half_up(total * pct / 100) for pct in percentages]
        ar_days = [round_percent(p.ar_days * (1 + rng.uniform(-bound, bound))) for p in params.payers]

    payers = [
        {"name": payer.name, "percentage": pct, "amount": amount, "ar_days": days}
        for payer, pct, amount, days in zip(params.payers, percentages, amounts, ar_days)
    ]
    return {
        "location_id": ctx.location_id or ALL_LOCATIONS,
        "time_range": ctx.time_range,
        "payers": payers,
        "total_amount": sum(amounts),
        "total_percentage": round_percent(sum(percentages)),
    }


def claims_funnel(
    params: CanonicalParameters,
    ctx: FilterContext,
    providers: Optional[Sequence[ProviderShare]] = None,
) -> dict:
    providers = params.providers if providers is None else providers
    funnel = split_claims_funnel(
        period_claims_paid(params, ctx),
        params.collection_rate,
        params.claims_pending_share,
        params.claims_denied_share,
    )

    submitted_claims = round_half_up(funnel["Submitted"] / params.average_claim_value)
    paid_claims, pending_claims, denied_claims = allocate(
        submitted_claims, [funnel["Paid"], funnel["Pending"], funnel["Denied"]]
    )
    claim_counts = {
        "Submitted": submitted_claims,
        "Paid": paid_claims,
        "Pending": pending_claims,
        "Denied": denied_claims,
    }

    weights = [p.percentage for p in providers]
    claims = []
    for status in FUNNEL_STATUSES:
        amounts = allocate(funnel[status], weights)
        counts = allocate(claim_counts[status], weights)
        claims.append({
            "status": status,
            "total_claims": claim_counts[status],
            "total_amount": funnel[status],
            "providers": [
                {"name": p.name, "claim_count": count, "amount": amount}
                for p, count, amount in zip(providers, counts, amounts)
            ],
        })

    return {
        "location_id": ctx.location_id or ALL_LOCATIONS,
        "period": {
            "start": ctx.first_month,
            "end": ctx.included_months[-1],
            "months": ctx.months,
        },
        "collection_rate": round_percent(params.collection_rate * 100),
        "claims": claims,
    }


def aging_buckets(total: int, shares, divisor: float) -> dict:
    amounts = allocate(total, [share for _, share in shares])
    buckets = [
        {
            "age_range": label,
            "amount": amount,
            "claim_count": round_half_up(amount / divisor) if divisor else 0,
            "percentage": round_percent(share * 100),
        }
        for (label, share), amount in zip(shares, amounts)
    ]
    return {"buckets": buckets, "total_outstanding": total}


def ar_aging(params: CanonicalParameters, ctx: FilterContext) -> dict:
    pending_total = round_half_up(params.claims_submitted_total * params.claims_pending_share)
    outstanding = round_half_up(
        (params.outstanding_share * params.claims_submitted_total + pending_total) * ctx.location_weight
    )
    result = aging_buckets(outstanding, params.ar_aging_shares, params.average_claim_value)
    result["location_id"] = ctx.location_id or ALL_LOCATIONS
    return result


def patient_billing(params: CanonicalParameters, ctx: FilterContext) -> dict:
    billed = round_half_up(period_revenue(params, ctx) * params.patient_revenue_share)
    collected = round_half_up(billed * params.patient_collection_rate)
    outstanding = billed - collected
    return {
        "location_id": ctx.location_id or ALL_LOCATIONS,
        "time_range": ctx.time_range,
        "total_billed": billed,
        "collected": collected,
        "outstanding": outstanding,
        "collection_rate": round_percent(params.patient_collection_rate * 100),
        "avg_days_to_payment": params.patient_avg_days_to_payment,
        "aging": aging_buckets(outstanding, params.patient_aging_shares, params.revenue_per_patient),
    }


def revenue_breakdown(
    params: CanonicalParameters,
    ctx: FilterContext,
    category: Optional[str] = None,
) -> dict:
    category = _normalize_category(category)
    items = params.revenue_items
    amounts = allocate(period_revenue(params, ctx), [item.annual_amount for item in items])
    rows = _line_rows(items, amounts)
    if category:
        rows = [row for row in rows if row["category"] == category]
    return {
        "category": category,
        "items": rows,
        "total": sum(row["amount"] for row in rows),
    }


def expense_breakdown(params: CanonicalParameters, ctx: FilterContext) -> dict:
    total = round_half_up(period_revenue(params, ctx) * params.expense_ratio)
    items = params.expense_items
    amounts = allocate(total, [item.annual_amount for item in items])
    return {"items": _line_rows(items, amounts), "total": total}


def profit_and_loss(params: CanonicalParameters, ctx: FilterContext) -> dict:
    revenue = revenue_breakdown(params, ctx)
    expenses = expense_breakdown(params, ctx)
    net_profit = revenue["total"] - expenses["total"]
    margin = round_percent(net_profit / revenue["total"] * 100) if revenue["total"] else 0.0
    return {
        "location_id": ctx.location_id or ALL_LOCATIONS,
        "time_range": ctx.time_range,
        "revenue": revenue,
        "expenses": expenses,
        "total_revenue": revenue["total"],
        "total_expenses": expenses["total"],
        "net_profit": net_profit,
        "profit_margin": margin,
    }


def cash_in(params: CanonicalParameters, ctx: FilterContext) -> dict:
    insurance, patient = allocate(
        period_revenue(params, ctx),
        [params.insurance_revenue_share, params.patient_revenue_share],
    )
    items = [
        {"name": "Insurance Reimbursements", "amount": insurance},
        {"name": "Patient Payments", "amount": patient},
    ]
    return {"items": items, "total": insurance + patient}


def cash_out(params: CanonicalParameters, ctx: FilterContext) -> dict:
    expenses = expense_breakdown(params, ctx)
    rows = [row for row, item in zip(expenses["items"], params.expense_items) if item.cash]
    return {"items": rows, "total": sum(row["amount"] for row in rows)}


def _scaled_section(items: Sequence[LineItem], ctx: FilterContext) -> dict:
    rows = [
        {
            "name": item.name,
            "amount": scale_annual(item.annual_amount, ctx),
            "change": item.change,
            "trend": item.trend,
        }
        for item in items
    ]
    return {"items": rows, "total": sum(row["amount"] for row in rows)}


def cash_flow(params: CanonicalParameters, ctx: FilterContext) -> dict:
    inflow = cash_in(params, ctx)
    outflow = cash_out(params, ctx)

    operating_items = [dict(row) for row in inflow["items"]]
    operating_items += [{**row, "amount": -row["amount"]} for row in outflow["items"]]
    operating = {"items": operating_items, "total": inflow["total"] - outflow["total"]}
    investing = _scaled_section(params.investing_items, ctx)
    financing = _scaled_section(params.financing_items, ctx)

    return {
        "location_id": ctx.location_id or ALL_LOCATIONS,
        "time_range": ctx.time_range,
        "operating": operating,
        "investing": investing,
        "financing": financing,
        "net_cash_flow": operating["total"] + investing["total"] + financing["total"],
    }


def provider_collections(
    params: CanonicalParameters,
    ctx: FilterContext,
    providers: Optional[Sequence[ProviderShare]] = None,
) -> dict:
    providers = params.providers if providers is None else providers
    total = period_revenue(params, ctx)
    given = sum(p.percentage for p in providers)
    if providers and abs(given - 100) > PERCENT_TOLERANCE:
        logger.warning("Provider percentages total %s, allocating proportionally", given)

    amounts = allocate(total, [p.percentage for p in providers])
    rows = [
        {
            "name": p.name,
            "percentage": p.percentage,
            "share": round_percent(amount / total * 100) if total else 0.0,
            "amount": amount,
        }
        for p, amount in zip(providers, amounts)
    ]
    return {
        "location_id": ctx.location_id or ALL_LOCATIONS,
        "time_range": ctx.time_range,
        "total_revenue": total,
        "percentage_total": round_percent(given),
        "providers": rows,
    }


def procedure_catalogue(params: CanonicalParameters, category: Optional[str] = None) -> List[dict]:
    category = _normalize_category(category)
    return [
        {
            "code": proc.code,
            "name": proc.name,
            "description": proc.description,
            "category": proc.category,
            "base_price": proc.base_price,
            "monthly_volume": proc.monthly_volume,
        }
        for proc in params.procedures
        if not category or proc.category == category
    ]


def top_procedures(
    params: CanonicalParameters,
    ctx: FilterContext,
    rng: random.Random,
    category: Optional[str] = None,
    limit: int = 10,
) -> List[dict]:
    category = _normalize_category(category)
    low, high = params.procedure_growth_range

    rows = []
    for proc in params.procedures:
        growth = rng.uniform(low, high)
        if ctx.is_all_locations:
            growth *= params.aggregate_growth_damping
        if category and proc.category != category:
            continue
        monthly_volume = round_half_up(proc.monthly_volume * ctx.location_weight)
        rows.append({
            "code": proc.code,
            "name": proc.name,
            "description": proc.description,
            "category": proc.category,
            "base_price": proc.base_price,
            "volume": monthly_volume * ctx.months,
            "revenue": round_half_up(proc.base_price * monthly_volume) * ctx.months,
            "growth": round_percent(growth),
        })

    rows.sort(key=lambda row: row["revenue"], reverse=True)
    return rows[:limit]


def key_metrics(params: CanonicalParameters, ctx: FilterContext) -> dict:
    revenue = period_revenue(params, ctx)
    payer_weight = sum(p.percentage for p in params.payers)
    weighted_ar_days = sum(p.percentage * p.ar_days for p in params.payers) / payer_weight if payer_weight else 0.0
    return {
        "location_id": ctx.location_id or ALL_LOCATIONS,
        "time_range": ctx.time_range,
        "period_revenue": revenue,
        "patient_count": round_half_up(revenue / params.revenue_per_patient),
        "average_revenue_per_patient": params.revenue_per_patient,
        "ar_days": round_percent(weighted_ar_days),
        "clean_claim_rate": round_percent((1 - params.claims_denied_share) * 100),
        "collection_rate": round_percent(params.collection_rate * 100),
        "denial_rate": round_percent(params.claims_denied_share * 100),
        "revenue_growth": round_percent(params.annual_growth_rate * 100),
    }

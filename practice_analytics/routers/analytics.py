from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..analytics import derivations
from ..analytics.filters import FilterContext, parse_count, resolve
from ..analytics.parameters import CanonicalParameters, ProviderShare
from ..schemas.analytics import ProviderCollectionsRequest
from .deps import get_canonical_parameters, get_clock, get_effective_parameters, get_filter, get_rng

router = APIRouter(prefix="/api", tags=["analytics"])

MAX_PROJECTION_MONTHS = 24
MAX_PROCEDURE_LIMIT = 50


@router.get("/locations")
def list_locations(params: CanonicalParameters = Depends(get_canonical_parameters)):
    return [
        {"id": loc.id, "name": loc.name, "city": loc.city, "state": loc.state, "weight": loc.weight}
        for loc in params.locations
    ]


@router.get("/key-metrics")
def get_key_metrics(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_canonical_parameters),
):
    return derivations.key_metrics(params, ctx)


@router.get("/revenue-trends")
def get_revenue_trends(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_effective_parameters),
    rng=Depends(get_rng),
):
    return derivations.revenue_trend(params, ctx, rng)


@router.get("/projections")
def get_patient_volume_projections(
    months: Optional[str] = Query(None),
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_canonical_parameters),
    rng=Depends(get_rng),
):
    count = parse_count(months, None, MAX_PROJECTION_MONTHS, "months")
    return derivations.patient_volume_projections(params, ctx, rng, months=count)


@router.get("/insurance-breakdown")
def get_insurance_breakdown(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_canonical_parameters),
    rng=Depends(get_rng),
):
    return derivations.insurance_payer_breakdown(params, ctx, rng)


@router.get("/insurance-claims")
def get_insurance_claims(
    location_id: Optional[str] = Query(None),
    time_range: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    params: CanonicalParameters = Depends(get_canonical_parameters),
    clock=Depends(get_clock),
):
    ctx = resolve(params, location_id, time_range, clock=clock, start_date=start_date, end_date=end_date)
    return derivations.claims_funnel(params, ctx)


@router.get("/ar-buckets")
def get_ar_buckets(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_canonical_parameters),
):
    return derivations.ar_aging(params, ctx)


@router.get("/patient-billing")
def get_patient_billing(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_canonical_parameters),
):
    return derivations.patient_billing(params, ctx)


@router.get("/procedures")
def list_procedures(
    category: Optional[str] = Query(None),
    params: CanonicalParameters = Depends(get_canonical_parameters),
):
    return derivations.procedure_catalogue(params, category=category)


@router.get("/top-procedures")
def get_top_procedures(
    category: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_canonical_parameters),
    rng=Depends(get_rng),
):
    count = parse_count(limit, 10, MAX_PROCEDURE_LIMIT, "limit")
    return derivations.top_procedures(params, ctx, rng, category=category, limit=count)


@router.get("/provider-collections")
def get_provider_collections(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_canonical_parameters),
):
    return derivations.provider_collections(params, ctx)


@router.post("/provider-collections")
def post_provider_collections(
    req: ProviderCollectionsRequest,
    params: CanonicalParameters = Depends(get_canonical_parameters),
    clock=Depends(get_clock),
):
    ctx = resolve(params, req.location_id, req.time_range, clock=clock)
    providers = [ProviderShare(p.name, p.percentage) for p in req.providers]
    return derivations.provider_collections(params, ctx, providers)

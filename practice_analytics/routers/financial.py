from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..analytics import derivations
from ..analytics.filters import FilterContext
from ..analytics.parameters import CanonicalParameters
from .deps import get_effective_parameters, get_filter

router = APIRouter(prefix="/api/financial", tags=["financial"])


@router.get("/revenue")
def get_revenue_breakdown(
    category: Optional[str] = Query(None),
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_effective_parameters),
):
    return derivations.revenue_breakdown(params, ctx, category=category)


@router.get("/expenses")
def get_expense_breakdown(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_effective_parameters),
):
    return derivations.expense_breakdown(params, ctx)


@router.get("/profit-loss")
def get_profit_and_loss(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_effective_parameters),
):
    return derivations.profit_and_loss(params, ctx)


@router.get("/cash-in")
def get_cash_in(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_effective_parameters),
):
    return derivations.cash_in(params, ctx)


@router.get("/cash-out")
def get_cash_out(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_effective_parameters),
):
    return derivations.cash_out(params, ctx)


@router.get("/cash-flow")
def get_cash_flow(
    ctx: FilterContext = Depends(get_filter),
    params: CanonicalParameters = Depends(get_effective_parameters),
):
    return derivations.cash_flow(params, ctx)

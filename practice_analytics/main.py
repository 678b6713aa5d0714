import logging
from typing import Optional

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware

from .analytics.filters import ALL_LOCATIONS, resolve
from .analytics.invariants import run_consistency_checks
from .analytics.parameters import CanonicalParameters
from .config import get_settings
from .database import init_db
from .routers import analytics, assistant, financial, ledger
from .routers.deps import get_canonical_parameters, get_clock, get_rng

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Practice Analytics API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analytics.router)
app.include_router(financial.router)
app.include_router(ledger.router)
app.include_router(assistant.router)


@app.on_event("startup")
def _startup() -> None:
    # A bad parameter source raises here and the process refuses to start
    params = get_canonical_parameters()
    logger.info(
        "Canonical parameters loaded: monthly revenue=%s locations=%d",
        params.total_monthly_revenue, len(params.locations),
    )
    init_db()


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/health/analytics")
def analytics_health(
    location_id: Optional[str] = Query(None),
    time_range: Optional[str] = Query(None),
    params: CanonicalParameters = Depends(get_canonical_parameters),
    clock=Depends(get_clock),
    rng=Depends(get_rng),
):
    ctx = resolve(params, location_id, time_range, clock=clock)
    issues = run_consistency_checks(params, ctx, rng)
    if issues:
        logger.warning("Analytics consistency issues: %s", issues)
    return {
        "status": "healthy" if not issues else "unhealthy",
        "invariants_ok": not issues,
        "location_id": ctx.location_id or ALL_LOCATIONS,
        "time_range": ctx.time_range,
        "current_month": ctx.current_month,
        "issues": issues,
    }

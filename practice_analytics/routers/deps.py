import random
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from ..analytics.clock import clock_for
from ..analytics.filters import FilterContext, resolve
from ..analytics.parameters import CanonicalParameters, load_parameters
from ..config import get_settings
from ..database import get_db
from ..services.ledger_import import LedgerImportService


@lru_cache()
def get_canonical_parameters() -> CanonicalParameters:
    return load_parameters(get_settings().canonical_parameters_path)


def get_clock():
    return clock_for(get_settings().analytics_anchor_date)


def get_rng() -> random.Random:
    return random.Random(get_settings().analytics_random_seed)


def get_effective_parameters(
    location_id: Optional[str] = Query(None),
    params: CanonicalParameters = Depends(get_canonical_parameters),
    db: Session = Depends(get_db),
) -> CanonicalParameters:
    snapshot = LedgerImportService.build_snapshot(db, location_id)
    return snapshot.apply(params) if snapshot else params


def get_filter(
    location_id: Optional[str] = Query(None),
    time_range: Optional[str] = Query(None),
    params: CanonicalParameters = Depends(get_canonical_parameters),
    clock=Depends(get_clock),
) -> FilterContext:
    return resolve(params, location_id, time_range, clock=clock)

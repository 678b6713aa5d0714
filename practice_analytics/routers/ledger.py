from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..analytics.filters import ALL_LOCATIONS
from ..database import get_db
from ..schemas.analytics import LedgerImportRequest
from ..services.ledger_import import LedgerImportError, LedgerImportService, parse_ledger_csv

router = APIRouter(prefix="/api/ledger", tags=["ledger"])


@router.post("/import")
def import_ledger(req: LedgerImportRequest, db: Session = Depends(get_db)):
    try:
        rows = parse_ledger_csv(req.content, default_location=req.location_id or ALL_LOCATIONS)
    except LedgerImportError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = LedgerImportService.import_rows(db, rows, replace=req.replace)
    db.commit()
    return {"status": "imported", **result}


@router.get("/months")
def list_ledger_months(
    location_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return {"months": LedgerImportService.available_months(db, location_id)}

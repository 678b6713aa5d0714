import csv
import io
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..analytics.allocation import round_percent
from ..analytics.filters import ALL_LOCATIONS
from ..analytics.parameters import CanonicalParameters, LineItem
from ..models.ledger import LedgerCategory, LedgerLine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"Line Item", "Month", "Amount"}

MONTH_FORMATS = ("%b %Y", "%B %Y", "%Y-%m", "%m/%Y")

REVENUE_KEYWORDS = ("revenue", "income", "gross", "sales", "collections")
PROFIT_KEYWORDS = ("net", "profit", "loss", "ebitda")
NON_CASH_KEYWORDS = ("bad debt", "depreciation", "amortization")
COSMETIC_KEYWORDS = ("cosmetic", "botox", "filler", "oculoplast", "aesthetic")
REFRACTIVE_KEYWORDS = ("refractive", "lasik", "optical", "contact lens")


class LedgerImportError(ValueError):
    pass


@dataclass(frozen=True)
class LedgerSnapshot:
    months: Tuple[str, ...]
    revenue_items: Tuple[LineItem, ...]
    expense_items: Tuple[LineItem, ...]

    def apply(self, params: CanonicalParameters) -> CanonicalParameters:
        return params.with_line_items(self.revenue_items, self.expense_items)


def parse_currency(value) -> Optional[float]:
    """Parse "$1,234.50", "(1,200)" or "-450" into a float; None when unparseable."""
    if value is None:
        return None
    text = str(value).strip()
    if text in ("", "-"):
        return 0.0
    negative = text.startswith("(") and text.endswith(")")
    text = text.strip("()").replace("$", "").replace(",", "").strip()
    try:
        amount = float(text)
    except ValueError:
        return None
    return -amount if negative else amount


def normalize_month(value) -> Optional[str]:
    text = str(value or "").strip()
    for fmt in MONTH_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return f"{parsed.year:04d}-{parsed.month:02d}"
    return None


def infer_ledger_category(line_item: str) -> LedgerCategory:
    words = set(re.findall(r"[a-z]+", line_item.lower()))
    if words & set(REVENUE_KEYWORDS):
        return LedgerCategory.REVENUE
    if words & set(PROFIT_KEYWORDS):
        return LedgerCategory.PROFIT
    return LedgerCategory.EXPENSES


def infer_service_category(line_item: str) -> str:
    lowered = line_item.lower()
    if any(kw in lowered for kw in COSMETIC_KEYWORDS):
        return "cosmetic"
    if any(kw in lowered for kw in REFRACTIVE_KEYWORDS):
        return "refractive"
    return "medical"


def parse_ledger_csv(content: str, default_location: str = ALL_LOCATIONS) -> List[Dict]:
    reader = csv.DictReader(io.StringIO(content))
    fieldnames = {name.strip() for name in (reader.fieldnames or [])}
    missing = REQUIRED_COLUMNS - fieldnames
    if missing:
        raise LedgerImportError(f"Ledger CSV missing required columns: {', '.join(sorted(missing))}")

    rows = []
    skipped = 0
    for raw in reader:
        row = {(k or "").strip(): (v or "").strip() for k, v in raw.items()}
        name = row.get("Line Item", "")
        month = normalize_month(row.get("Month"))
        amount = parse_currency(row.get("Amount"))
        if not name or month is None or amount is None:
            skipped += 1
            continue

        category = row.get("Category", "").lower()
        if category not in {c.value for c in LedgerCategory}:
            category = infer_ledger_category(name).value

        rows.append({
            "location_id": row.get("Location") or default_location,
            "category": category,
            "line_item": name,
            "service_category": infer_service_category(name) if category == LedgerCategory.REVENUE.value else None,
            "month": month,
            "amount": amount,
        })

    if skipped:
        logger.warning("Skipped %d unparseable ledger rows", skipped)
    if not rows:
        raise LedgerImportError("Ledger CSV contains no usable rows")
    return rows


def _trend(change: float) -> str:
    if change > 0:
        return "up"
    if change < 0:
        return "down"
    return "stable"


def _line_items(lines: List[LedgerLine], months: List[str], revenue: bool) -> Tuple[LineItem, ...]:
    by_name: Dict[str, Dict[str, float]] = {}
    service: Dict[str, Optional[str]] = {}
    for line in lines:
        amounts = by_name.setdefault(line.line_item, {})
        amounts[line.month] = amounts.get(line.month, 0.0) + line.amount
        service[line.line_item] = line.service_category

    kind = "revenue" if revenue else "expense"
    totals = {name: sum(amounts.values()) for name, amounts in by_name.items()}
    gross = sum(total for total in totals.values() if total > 0)
    net = sum(totals.values())
    if net <= 0:
        logger.warning("Ledger %s lines net to %s, ignoring them", kind, net)
        return ()

    # Contra lines (refunds, credits) reduce the positive lines pro rata
    scale = 1.0
    if net != gross:
        scale = net / gross
        logger.info("Netting %s of contra %s lines against gross %s", gross - net, kind, gross)

    items = []
    for name, amounts in by_name.items():
        total = totals[name]
        if total <= 0:
            continue
        change = 0.0
        if len(months) >= 2:
            latest, previous = amounts.get(months[-1], 0.0), amounts.get(months[-2], 0.0)
            if previous:
                change = round_percent((latest - previous) / previous * 100)
        lowered = name.lower()
        items.append(LineItem(
            name=name,
            annual_amount=total * scale,
            change=change,
            trend=_trend(change),
            category=(service.get(name) or "medical") if revenue else "medical",
            cash=revenue or not any(kw in lowered for kw in NON_CASH_KEYWORDS),
        ))
    return tuple(items)


class LedgerImportService:
    @staticmethod
    def import_rows(db: Session, rows: List[Dict], replace: bool = True) -> Dict:
        batch = uuid.uuid4().hex
        locations = sorted({row["location_id"] for row in rows})
        months = sorted({row["month"] for row in rows})

        if replace:
            deleted = (
                db.query(LedgerLine)
                .filter(LedgerLine.location_id.in_(locations), LedgerLine.month.in_(months))
                .delete(synchronize_session=False)
            )
            if deleted:
                logger.info("Replacing %d existing ledger rows", deleted)

        for row in rows:
            db.add(LedgerLine(import_batch=batch, **row))
        db.flush()

        logger.info(
            "[ledger_import] batch=%s rows=%d locations=%s months=%s..%s",
            batch, len(rows), ",".join(locations), months[0], months[-1],
        )
        return {
            "batch": batch,
            "rows": len(rows),
            "locations": locations,
            "months": months,
        }

    @staticmethod
    def available_months(db: Session, location_id: Optional[str] = None) -> List[str]:
        query = db.query(LedgerLine.month).distinct()
        if location_id and location_id != ALL_LOCATIONS:
            query = query.filter(LedgerLine.location_id == location_id)
        return sorted(month for (month,) in query.all())

    @staticmethod
    def build_snapshot(db: Session, location_id: Optional[str] = None) -> Optional[LedgerSnapshot]:
        query = db.query(LedgerLine).order_by(LedgerLine.id)
        lines = []
        if location_id and location_id != ALL_LOCATIONS:
            lines = query.filter(LedgerLine.location_id == location_id).all()
        if not lines:
            lines = query.all()
        if not lines:
            return None

        months = sorted({line.month for line in lines})
        revenue = [line for line in lines if line.category == LedgerCategory.REVENUE.value]
        expenses = [line for line in lines if line.category == LedgerCategory.EXPENSES.value]
        snapshot = LedgerSnapshot(
            months=tuple(months),
            revenue_items=_line_items(revenue, months, revenue=True),
            expense_items=_line_items(expenses, months, revenue=False),
        )
        if not snapshot.revenue_items or not snapshot.expense_items:
            logger.warning("Ledger snapshot lacks revenue or expense lines, using built-in line items")
            return None
        return snapshot

"""Canonical business parameters every derived metric is computed from.

A single ``CanonicalParameters`` value is built at process start (optionally
overridden from a JSON file) and passed explicitly into every derivation.
It is frozen: an imported ledger snapshot produces a *new* value through
``with_line_items`` rather than mutating the shared one.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

SHARE_TOLERANCE = 1e-6
PERCENT_TOLERANCE = 0.05


class ParameterError(ValueError):
    pass


@dataclass(frozen=True)
class Location:
    id: str
    name: str
    city: str
    state: str
    weight: float


@dataclass(frozen=True)
class PayerShare:
    name: str
    percentage: float
    ar_days: float


@dataclass(frozen=True)
class Procedure:
    code: str
    name: str
    description: str
    category: str
    base_price: float
    monthly_volume: int
    growth: float


@dataclass(frozen=True)
class ProviderShare:
    name: str
    percentage: float


@dataclass(frozen=True)
class LineItem:
    name: str
    annual_amount: float
    change: float = 0.0
    trend: str = "stable"
    category: str = "medical"
    cash: bool = True


SERVICE_CATEGORIES = ("medical", "cosmetic", "refractive")

DEFAULT_LOCATIONS: Tuple[Location, ...] = (
    Location("manhattan-ny", "Manhattan, NY", "New York", "NY", 0.30),
    Location("atlantic-highlands-nj", "Atlantic Highlands, NJ", "Atlantic Highlands", "NJ", 0.21),
    Location("woodbridge-nj", "Woodbridge, NJ", "Woodbridge", "NJ", 0.22),
    Location("fresno-ca", "Fresno, CA", "Fresno", "CA", 0.15),
    Location("hanford-ca", "Hanford, CA", "Hanford", "CA", 0.12),
)

DEFAULT_PAYERS: Tuple[PayerShare, ...] = (
    PayerShare("Blue Cross Blue Shield", 32.4, 24.2),
    PayerShare("Aetna", 18.7, 31.5),
    PayerShare("Self-Pay", 15.2, 0.0),
    PayerShare("Medicare", 12.8, 45.3),
    PayerShare("Cigna", 8.9, 28.7),
    PayerShare("United Healthcare", 7.3, 33.1),
    PayerShare("Other", 4.7, 35.8),
)

DEFAULT_PROCEDURES: Tuple[Procedure, ...] = (
    Procedure("17311", "Mohs Surgery (17311)", "First stage, head/neck", "medical", 2500.0, 51, 12.5),
    Procedure("11603", "Excision Malignant (11603)", "Trunk, arms, legs", "medical", 850.0, 105, 8.3),
    Procedure("11104", "Punch Biopsy (11104)", "Single lesion", "medical", 320.0, 212, 15.7),
    Procedure("BOTOX", "Botox Injections", "Cosmetic treatment", "cosmetic", 550.0, 82, 22.1),
    Procedure("17000", "Destruction Lesions (17000)", "Premalignant lesions", "medical", 250.0, 155, 5.9),
    Procedure("FILLER", "Dermal Fillers", "Cosmetic enhancement", "cosmetic", 750.0, 34, 18.3),
    Procedure("99214", "Established Visit (99214)", "Moderate complexity", "medical", 275.0, 156, 7.2),
    Procedure("99204", "New Patient (99204)", "45-59 minutes", "medical", 420.0, 67, 11.4),
    Procedure("LASIK", "Refractive Surgery (LASIK)", "Cash-pay refractive", "refractive", 2100.0, 9, 6.4),
)

DEFAULT_PROVIDERS: Tuple[ProviderShare, ...] = (
    ProviderShare("Dr. John Josephson", 19),
    ProviderShare("Dr. Meghan G. Moroux", 14),
    ProviderShare("Dr. Hubert H. Pham", 13),
    ProviderShare("Dr. Sabita Ittoop", 10),
    ProviderShare("Dr. Kristen E. Dunbar", 9),
    ProviderShare("Dr. Erin Ong", 9),
    ProviderShare("Dr. Prema Modak", 8),
    ProviderShare("Dr. Julia Pierce", 7),
    ProviderShare("Dr. Heloi Stark", 6),
    ProviderShare("Dr. Noushin Sahraei", 5),
)

DEFAULT_REVENUE_ITEMS: Tuple[LineItem, ...] = (
    LineItem("Office Visits", 1671668, 2.4, "up", "medical"),
    LineItem("Diagnostics & Minor Procedures", 990618, 1.8, "up", "medical"),
    LineItem("Cataract Surgeries", 756000, 3.2, "up", "medical"),
    LineItem("Intravitreal Injections", 3497582, 4.1, "up", "medical"),
    LineItem("Refractive Cash", 226800, -1.2, "down", "refractive"),
    LineItem("Corneal Procedures", 189000, 0.6, "up", "medical"),
    LineItem("Oculoplastics", 189000, 5.3, "up", "cosmetic"),
    LineItem("Optical / Contact Lens Sales", 138600, -0.8, "down", "refractive"),
)

DEFAULT_EXPENSE_ITEMS: Tuple[LineItem, ...] = (
    LineItem("Drug Acquisition (injections)", 2268000, -1.8, "down"),
    LineItem("Surgical Supplies & IOLs", 378000, 0.5, "down"),
    LineItem("Optical Cost of Goods", 75600, -2.3, "down"),
    LineItem("Bad Debt Expense", 1340371, 0.9, "up", cash=False),
    LineItem("Staff Wages & Benefits", 1449000, -1.2, "down"),
    LineItem("Billing & Coding Vendors", 302400, 3.1, "down"),
    LineItem("Rent & Utilities", 252000, 0.8, "down"),
    LineItem("Technology", 189000, -3.2, "down"),
    LineItem("Insurance", 151200, 1.9, "down"),
    LineItem("Equipment Service & Leases", 126000, -2.1, "down"),
    LineItem("Marketing & Outreach", 100800, -1.5, "down"),
    LineItem("Office & Miscellaneous", 126000, 1.2, "down"),
)

DEFAULT_INVESTING_ITEMS: Tuple[LineItem, ...] = (
    LineItem("Purchase of Equipment", -75000, -1.8, "down"),
    LineItem("Other Investing", 0, 0.0, "stable"),
)

DEFAULT_FINANCING_ITEMS: Tuple[LineItem, ...] = (
    LineItem("Owner Distributions", 0, 0.0, "stable"),
    LineItem("Loan Repayment", -40000, -2.1, "down"),
)

DEFAULT_AR_AGING_SHARES: Tuple[Tuple[str, float], ...] = (
    ("0-30", 0.55),
    ("31-60", 0.25),
    ("61-90", 0.12),
    ("90+", 0.08),
)

DEFAULT_PATIENT_AGING_SHARES: Tuple[Tuple[str, float], ...] = (
    ("0-30", 0.452),
    ("31-60", 0.288),
    ("61-90", 0.164),
    ("90+", 0.096),
)


@dataclass(frozen=True)
class CanonicalParameters:
    total_monthly_revenue: int = 2_450_000
    insurance_revenue_share: float = 0.70
    patient_revenue_share: float = 0.30

    claims_submitted_total: int = 2_450_000
    claims_paid_share: float = 0.80
    claims_pending_share: float = 0.14
    claims_denied_share: float = 0.06

    locations: Tuple[Location, ...] = DEFAULT_LOCATIONS
    fallback_location_weight: float = 0.1
    default_time_range_months: int = 6

    annual_growth_rate: float = 0.08
    seasonal_amplitude: float = 0.15
    historical_jitter: float = 0.20
    projected_jitter: float = 0.10
    location_payer_jitter: float = 0.10
    trend_months_back: int = 59
    trend_months_forward: int = 3

    revenue_per_patient: int = 340
    ar_days_min: int = 25
    ar_days_max: int = 40

    projection_months: int = 6
    projection_growth_step: float = 0.02
    projection_confidence_start: float = 0.95
    projection_confidence_step: float = 0.05
    projection_confidence_floor: float = 0.70

    outstanding_share: float = 0.15
    average_claim_value: int = 285
    ar_aging_shares: Tuple[Tuple[str, float], ...] = DEFAULT_AR_AGING_SHARES

    patient_collection_rate: float = 0.938
    patient_avg_days_to_payment: float = 28.4
    patient_aging_shares: Tuple[Tuple[str, float], ...] = DEFAULT_PATIENT_AGING_SHARES

    procedure_growth_range: Tuple[float, float] = (-5.0, 25.0)
    aggregate_growth_damping: float = 0.8

    payers: Tuple[PayerShare, ...] = DEFAULT_PAYERS
    procedures: Tuple[Procedure, ...] = DEFAULT_PROCEDURES
    providers: Tuple[ProviderShare, ...] = DEFAULT_PROVIDERS
    revenue_items: Tuple[LineItem, ...] = DEFAULT_REVENUE_ITEMS
    expense_items: Tuple[LineItem, ...] = DEFAULT_EXPENSE_ITEMS
    investing_items: Tuple[LineItem, ...] = DEFAULT_INVESTING_ITEMS
    financing_items: Tuple[LineItem, ...] = DEFAULT_FINANCING_ITEMS

    @property
    def location_weights(self) -> Dict[str, float]:
        return {loc.id: loc.weight for loc in self.locations}

    @property
    def collection_rate(self) -> float:
        return self.claims_paid_share

    @property
    def expense_ratio(self) -> float:
        revenue = sum(item.annual_amount for item in self.revenue_items)
        if revenue <= 0:
            return 0.0
        return sum(item.annual_amount for item in self.expense_items) / revenue

    def location(self, location_id: Optional[str]) -> Optional[Location]:
        for loc in self.locations:
            if loc.id == location_id:
                return loc
        return None

    def with_line_items(
        self,
        revenue_items: Tuple[LineItem, ...],
        expense_items: Tuple[LineItem, ...],
    ) -> "CanonicalParameters":
        """Return a copy whose P&L line-item mix comes from an imported ledger."""
        return replace(
            self,
            revenue_items=revenue_items or self.revenue_items,
            expense_items=expense_items or self.expense_items,
        )


def validate_parameters(params: CanonicalParameters) -> CanonicalParameters:
    problems = []

    if params.total_monthly_revenue < 0 or params.claims_submitted_total < 0:
        problems.append("revenue and claims totals must be non-negative")

    revenue_shares = params.insurance_revenue_share + params.patient_revenue_share
    if abs(revenue_shares - 1.0) > SHARE_TOLERANCE:
        problems.append(f"insurance + patient revenue shares total {revenue_shares}, expected 1")

    claim_shares = params.claims_paid_share + params.claims_pending_share + params.claims_denied_share
    if abs(claim_shares - 1.0) > SHARE_TOLERANCE:
        problems.append(f"paid + pending + denied claim shares total {claim_shares}, expected 1")
    if params.claims_paid_share <= 0:
        problems.append("claims paid share must be positive")

    if not params.locations:
        problems.append("at least one location is required")
    elif any(loc.weight < 0 for loc in params.locations):
        problems.append("location weights must be non-negative")
    else:
        weight_total = sum(params.location_weights.values())
        if abs(weight_total - 1.0) > SHARE_TOLERANCE:
            problems.append(f"location weights total {weight_total}, expected 1")
    if len(params.location_weights) != len(params.locations):
        problems.append("location ids must be unique")

    for label, shares in (("AR aging", params.ar_aging_shares), ("patient aging", params.patient_aging_shares)):
        total = sum(share for _, share in shares)
        if not shares or abs(total - 1.0) > SHARE_TOLERANCE:
            problems.append(f"{label} shares total {total}, expected 1")

    payer_total = sum(p.percentage for p in params.payers)
    if not params.payers or abs(payer_total - 100.0) > PERCENT_TOLERANCE:
        problems.append(f"payer percentages total {payer_total}, expected 100")

    if not params.revenue_items or not params.expense_items:
        problems.append("revenue and expense line items are required")
    elif sum(item.annual_amount for item in params.revenue_items) <= 0:
        problems.append("revenue line items must total a positive amount")

    if not params.procedures:
        problems.append("procedure table is empty")

    if params.revenue_per_patient <= 0 or params.average_claim_value <= 0:
        problems.append("revenue per patient and average claim value must be positive")
    if params.ar_days_min > params.ar_days_max:
        problems.append("ar_days_min exceeds ar_days_max")
    if params.default_time_range_months < 1:
        problems.append("default time range must be at least one month")

    if problems:
        for problem in problems:
            logger.error("Invalid canonical parameters: %s", problem)
        raise ParameterError("; ".join(problems))

    return params


_NESTED_TYPES = {
    "locations": Location,
    "payers": PayerShare,
    "procedures": Procedure,
    "providers": ProviderShare,
    "revenue_items": LineItem,
    "expense_items": LineItem,
    "investing_items": LineItem,
    "financing_items": LineItem,
}

_PAIR_FIELDS = {"ar_aging_shares", "patient_aging_shares", "procedure_growth_range"}


def parameters_from_dict(overrides: dict) -> CanonicalParameters:
    known = {f.name for f in fields(CanonicalParameters)}
    unknown = set(overrides) - known
    if unknown:
        raise ParameterError(f"Unknown canonical parameters: {', '.join(sorted(unknown))}")

    values = {}
    for key, value in overrides.items():
        try:
            if key in _NESTED_TYPES:
                values[key] = tuple(_NESTED_TYPES[key](**entry) for entry in value)
            elif key in _PAIR_FIELDS:
                if key == "procedure_growth_range":
                    low, high = value
                    values[key] = (float(low), float(high))
                else:
                    values[key] = tuple((str(label), float(share)) for label, share in value)
            else:
                values[key] = value
        except (TypeError, ValueError) as e:
            raise ParameterError(f"Malformed canonical parameter {key!r}: {e}") from e

    return validate_parameters(CanonicalParameters(**values))


def load_parameters(path: Optional[str] = None) -> CanonicalParameters:
    if not path:
        return validate_parameters(CanonicalParameters())

    try:
        with open(path, encoding="utf-8") as fh:
            overrides = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Cannot read canonical parameters from %s: %s", path, e)
        raise ParameterError(f"Cannot read canonical parameters from {path}: {e}") from e

    if not isinstance(overrides, dict):
        raise ParameterError(f"Canonical parameters in {path} must be a JSON object")

    params = parameters_from_dict(overrides)
    logger.info("Loaded canonical parameter overrides from %s (%d keys)", path, len(overrides))
    return params

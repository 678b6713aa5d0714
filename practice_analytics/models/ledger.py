from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, Float, Index, Integer, String

from ..database import Base


class LedgerCategory(str, Enum):
    REVENUE = "revenue"
    EXPENSES = "expenses"
    PROFIT = "profit"


class LedgerLine(Base):
    """One imported P&L line item amount for a location and calendar month."""

    __tablename__ = "pl_monthly_data"

    id = Column(Integer, primary_key=True, index=True)
    location_id = Column(String(100), nullable=False, default="all")
    category = Column(String(20), nullable=False)
    line_item = Column(String(255), nullable=False)
    service_category = Column(String(20), nullable=True)
    month = Column(String(7), nullable=False)
    amount = Column(Float, nullable=False, default=0.0)
    import_batch = Column(String(64), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_pl_monthly_location_month", "location_id", "month"),
    )

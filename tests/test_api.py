import random
from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from practice_analytics import models  # noqa: F401
from practice_analytics.analytics.clock import FixedClock
from practice_analytics.config import Settings
from practice_analytics.database import Base, get_db
from practice_analytics.main import app
from practice_analytics.routers.deps import get_clock, get_rng

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_clock] = lambda: FixedClock(date(2025, 8, 3))
app.dependency_overrides[get_rng] = lambda: random.Random(42)

LEDGER_CSV = """Line Item,Category,Month,Amount
Clinic Revenue,revenue,Jul 2025,"$300,000"
Payroll,expenses,Jul 2025,"$180,000"
"""


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_analytics_health(self, client):
        response = client.get("/health/analytics", params={"location_id": "fresno-ca", "time_range": "3M"})
        assert response.status_code == 200
        body = response.json()
        assert body["invariants_ok"] is True
        assert body["issues"] == []
        assert body["current_month"] == "2025-08"


class TestSettings:
    def test_cors_origins_are_cleaned(self):
        settings = Settings(cors_allowed_origins=" https://dash.example.com/, https://dash.example.com,,")
        assert settings.get_cors_origins() == ["http://localhost:5000", "https://dash.example.com"]

    def test_default_origin_only(self):
        assert Settings(cors_allowed_origins=None).get_cors_origins() == ["http://localhost:5000"]


class TestAnalyticsEndpoints:
    def test_locations(self, client):
        locations = client.get("/api/locations").json()
        assert [loc["id"] for loc in locations][:2] == ["manhattan-ny", "atlantic-highlands-nj"]

    def test_key_metrics(self, client):
        body = client.get("/api/key-metrics", params={"time_range": "3M"}).json()
        assert body["period_revenue"] == 7_350_000

    def test_revenue_trends_unknown_location(self, client):
        response = client.get("/api/revenue-trends", params={"location_id": "zzz", "time_range": "1Y"})
        assert response.status_code == 200
        assert response.json()["monthly_base"] == 245_000

    def test_revenue_trends_are_reproducible(self, client):
        first = client.get("/api/revenue-trends", params={"time_range": "6M"}).json()
        second = client.get("/api/revenue-trends", params={"time_range": "6M"}).json()
        assert first == second

    def test_insurance_claims(self, client):
        body = client.get("/api/insurance-claims", params={"time_range": "1M"}).json()
        amounts = {c["status"]: c["total_amount"] for c in body["claims"]}
        assert amounts["Paid"] + amounts["Pending"] + amounts["Denied"] == amounts["Submitted"] == 2_450_000

    def test_insurance_claims_date_window(self, client):
        body = client.get(
            "/api/insurance-claims",
            params={"start_date": "2025-06-01", "end_date": "2025-07-31"},
        ).json()
        assert body["period"]["months"] == 2

    def test_ar_buckets(self, client):
        body = client.get("/api/ar-buckets").json()
        assert sum(b["amount"] for b in body["buckets"]) == body["total_outstanding"] == 710_500

    def test_patient_billing(self, client):
        body = client.get("/api/patient-billing", params={"time_range": "1M"}).json()
        assert body["total_billed"] == 735_000

    def test_insurance_breakdown(self, client):
        body = client.get("/api/insurance-breakdown").json()
        assert body["total_percentage"] == 100.0

    def test_projections(self, client):
        body = client.get("/api/projections", params={"months": 3}).json()
        assert [p["month"] for p in body] == ["2025-08", "2025-09", "2025-10"]

    def test_projections_malformed_months_use_default(self, client):
        response = client.get("/api/projections", params={"months": "abc"})
        assert response.status_code == 200
        assert len(response.json()) == 6

    def test_projections_months_are_clamped(self, client):
        response = client.get("/api/projections", params={"months": 999})
        assert response.status_code == 200
        assert len(response.json()) == 24

    def test_top_procedures(self, client):
        body = client.get("/api/top-procedures", params={"category": "cosmetic"}).json()
        assert {p["code"] for p in body} == {"BOTOX", "FILLER"}

    def test_procedure_catalogue(self, client):
        body = client.get("/api/procedures").json()
        assert len(body) == 9
        assert body[0] == {
            "code": "17311",
            "name": "Mohs Surgery (17311)",
            "description": "First stage, head/neck",
            "category": "medical",
            "base_price": 2500.0,
            "monthly_volume": 51,
        }
        refractive = client.get("/api/procedures", params={"category": "refractive"}).json()
        assert [p["code"] for p in refractive] == ["LASIK"]

    def test_top_procedures_limit_is_tolerant(self, client):
        response = client.get("/api/top-procedures", params={"limit": 999})
        assert response.status_code == 200
        assert len(response.json()) == 9

        assert len(client.get("/api/top-procedures", params={"limit": "abc"}).json()) == 9
        assert len(client.get("/api/top-procedures", params={"limit": 2}).json()) == 2

    def test_provider_collections(self, client):
        body = client.get("/api/provider-collections", params={"time_range": "1M"}).json()
        assert body["total_revenue"] == 2_450_000
        assert sum(p["amount"] for p in body["providers"]) == 2_450_000

    def test_custom_provider_collections(self, client):
        response = client.post("/api/provider-collections", json={
            "time_range": "1M",
            "providers": [{"name": "Dr. A", "percentage": 70}, {"name": "Dr. B", "percentage": 20}],
        })
        assert response.status_code == 200
        assert [p["amount"] for p in response.json()["providers"]] == [1_905_556, 544_444]

    def test_negative_provider_percentage_rejected(self, client):
        response = client.post("/api/provider-collections", json={
            "providers": [{"name": "Dr. A", "percentage": -5}],
        })
        assert response.status_code == 422


class TestFinancialEndpoints:
    def test_profit_loss(self, client):
        body = client.get("/api/financial/profit-loss", params={"time_range": "3M"}).json()
        assert body["net_profit"] == body["total_revenue"] - body["total_expenses"]
        assert body["total_revenue"] == 7_350_000

    def test_cash_flow(self, client):
        body = client.get("/api/financial/cash-flow", params={"location_id": "woodbridge-nj"}).json()
        assert body["net_cash_flow"] == (
            body["operating"]["total"] + body["investing"]["total"] + body["financing"]["total"]
        )

    def test_revenue_category(self, client):
        body = client.get("/api/financial/revenue", params={"category": "cosmetic"}).json()
        assert [i["name"] for i in body["items"]] == ["Oculoplastics"]

    def test_cash_in_and_out(self, client):
        cash_in = client.get("/api/financial/cash-in", params={"time_range": "1M"}).json()
        cash_out = client.get("/api/financial/cash-out", params={"time_range": "1M"}).json()
        expenses = client.get("/api/financial/expenses", params={"time_range": "1M"}).json()
        assert cash_in["total"] == 2_450_000
        assert cash_out["total"] < expenses["total"]


class TestLedgerEndpoints:
    def test_import_drives_line_items(self, client):
        response = client.post("/api/ledger/import", json={"content": LEDGER_CSV})
        assert response.status_code == 200
        assert response.json()["rows"] == 2

        months = client.get("/api/ledger/months").json()
        assert months == {"months": ["2025-07"]}

        body = client.get("/api/financial/profit-loss", params={"time_range": "1M"}).json()
        assert [i["name"] for i in body["revenue"]["items"]] == ["Clinic Revenue"]
        assert body["total_revenue"] == 2_450_000
        assert body["total_expenses"] == 1_470_000

    def test_trend_and_profit_loss_share_ledger_expense_ratio(self, client):
        client.post("/api/ledger/import", json={"content": LEDGER_CSV})

        pl = client.get("/api/financial/profit-loss", params={"time_range": "1M"}).json()
        trend = client.get("/api/revenue-trends", params={"time_range": "1M"}).json()

        pl_ratio = pl["total_expenses"] / pl["total_revenue"]
        assert pl_ratio == 0.6
        for point in trend["points"]:
            assert abs(point["expenses"] / point["revenue"] - pl_ratio) < 0.001

    def test_bad_csv(self, client):
        response = client.post("/api/ledger/import", json={"content": "foo,bar\n1,2\n"})
        assert response.status_code == 400
        assert "missing required columns" in response.json()["detail"]


class TestAssistantEndpoints:
    def test_query_uses_extracted_context(self, client):
        with patch("practice_analytics.services.assistant.get_settings", return_value=Settings(openai_api_key="")):
            response = client.post("/api/ai/query", json={"query": "Top procedures in Hanford last quarter"})

        assert response.status_code == 200
        body = response.json()
        assert body["location_context"] == "hanford-ca"
        assert body["time_context"] == "3M"
        assert body["source"] == "template"

    def test_empty_query_rejected(self, client):
        assert client.post("/api/ai/query", json={"query": "  "}).status_code == 422

    def test_popular_questions(self, client):
        assert len(client.get("/api/ai/popular-questions").json()) == 6

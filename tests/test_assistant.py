import json
import random
from datetime import date
from unittest.mock import MagicMock, patch

import httpx

from practice_analytics.analytics.clock import FixedClock
from practice_analytics.analytics.filters import resolve
from practice_analytics.analytics.parameters import CanonicalParameters
from practice_analytics.config import Settings
from practice_analytics.services.assistant import (
    answer_query,
    classify_query,
    extract_query_context,
    gather_analytics,
)

PARAMS = CanonicalParameters()
CLOCK = FixedClock(date(2025, 8, 3))


def _analytics(location_id="all", time_range="1M"):
    ctx = resolve(PARAMS, location_id, time_range, clock=CLOCK)
    return gather_analytics(PARAMS, ctx, random.Random(5))


class TestQueryContext:
    def test_location_and_quarter(self):
        assert extract_query_context("Revenue in Fresno last quarter", PARAMS) == ("fresno-ca", "3M")

    def test_location_name_and_year(self):
        assert extract_query_context("How did Manhattan do this year?", PARAMS) == ("manhattan-ny", "1Y")

    def test_defaults(self):
        assert extract_query_context("Show me everything", PARAMS, "hanford-ca", "6M") == ("hanford-ca", "6M")
        assert extract_query_context("Show me everything", PARAMS, None, None) == ("all", "1M")

    def test_all_locations_overrides_default(self):
        location_id, _ = extract_query_context("Compare all locations", PARAMS, "fresno-ca")
        assert location_id == "all"


class TestClassifyQuery:
    def test_types(self):
        assert classify_query("Patient forecast for next month") == "forecasting"
        assert classify_query("Top revenue procedures this quarter") == "procedures"
        assert classify_query("AR days by insurance payer") == "payers"
        assert classify_query("How many claims were denied?") == "claims"
        assert classify_query("Best performing location") == "locations"
        assert classify_query("What was our profit?") == "revenue"
        assert classify_query("Hello") == "general"


class TestGatherAnalytics:
    def test_context_uses_engine_numbers(self):
        analytics = _analytics()
        assert analytics["key_metrics"]["period_revenue"] == 2_450_000
        assert analytics["claims"]["Submitted"]["amount"] == 2_450_000
        assert len(analytics["top_procedures"]) == 5
        assert len(analytics["projections"]) == 3
        assert len(analytics["locations"]) == 5


class TestAnswerQuery:
    def test_template_without_api_key(self):
        with patch("practice_analytics.services.assistant.get_settings", return_value=Settings(openai_api_key="")):
            answer = answer_query("How many claims were denied this month?", _analytics())

        assert answer["source"] == "template"
        assert answer["query_type"] == "claims"
        assert "denied" in answer["response"]
        assert "Review top denial reasons with the billing team" in answer["recommendations"]

    def test_template_answers_every_type(self):
        analytics = _analytics("fresno-ca", "3M")
        with patch("practice_analytics.services.assistant.get_settings", return_value=Settings(openai_api_key="")):
            for question in (
                "Patient forecast for next month",
                "Top revenue procedures",
                "AR days by insurance payer",
                "Best performing location",
                "Hello there",
            ):
                answer = answer_query(question, analytics)
                assert answer["response"]
                assert answer["key_points"]

    def test_llm_failure_falls_back_to_template(self):
        settings = Settings(openai_api_key="sk-test")
        with patch("practice_analytics.services.assistant.get_settings", return_value=settings), \
                patch("httpx.post", side_effect=httpx.ConnectError("offline")):
            answer = answer_query("Best performing location", _analytics())

        assert answer["source"] == "template"
        assert "Manhattan, NY" in answer["response"]

    def test_llm_answer(self):
        payload = {
            "response": "Revenue is steady.",
            "query_type": "revenue",
            "key_points": ["Revenue $2,450,000"],
            "recommendations": [],
        }
        resp = MagicMock()
        resp.json.return_value = {"choices": [{"message": {"content": json.dumps(payload)}}]}
        settings = Settings(openai_api_key="sk-test")

        with patch("practice_analytics.services.assistant.get_settings", return_value=settings), \
                patch("httpx.post", return_value=resp) as post:
            answer = answer_query("What was revenue?", _analytics())

        assert answer["source"] == "llm"
        assert answer["response"] == "Revenue is steady."
        assert post.call_args.kwargs["json"]["model"] == "gpt-4o-mini"

    def test_invalid_llm_answer_retries_then_falls_back(self):
        resp = MagicMock()
        resp.json.return_value = {"choices": [{"message": {"content": "{\"response\": \"partial\"}"}}]}
        settings = Settings(openai_api_key="sk-test")

        with patch("practice_analytics.services.assistant.get_settings", return_value=settings), \
                patch("httpx.post", return_value=resp) as post:
            answer = answer_query("What was revenue?", _analytics())

        assert post.call_count == 2
        assert answer["source"] == "template"

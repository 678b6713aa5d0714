import json
import logging
import random
import re
from typing import Dict, List, Optional, Tuple

from ..analytics import derivations
from ..analytics.filters import ALL_LOCATIONS, FilterContext
from ..analytics.parameters import CanonicalParameters
from ..config import get_settings

logger = logging.getLogger(__name__)

RESPONSE_KEYS = {"response", "query_type", "key_points", "recommendations"}

SYSTEM_PROMPT = """You are an analytics assistant for a multi-location medical practice.
You receive the user's question and a JSON snapshot of the practice's metrics for the
location and time window the question refers to. Answer with ONLY the data provided.
Never invent numbers.

Output must be valid JSON with this exact schema:
{
  "response": "2-4 sentence answer to the question",
  "query_type": "revenue | procedures | payers | claims | forecasting | locations | general",
  "key_points": ["point1", "point2", ...],
  "recommendations": ["recommendation1", ...]
}

Only output valid JSON. No markdown, no explanation outside the JSON."""

POPULAR_QUESTIONS = [
    {"id": "patient-forecast", "question": "Patient forecast for next month", "category": "forecasting", "usage": 245},
    {"id": "top-revenue", "question": "Top revenue procedures this quarter", "category": "revenue", "usage": 198},
    {"id": "ar-days", "question": "AR days by insurance payer", "category": "operations", "usage": 167},
    {"id": "claims-status", "question": "How many claims were denied this month?", "category": "claims", "usage": 141},
    {"id": "cosmetic-vs-medical", "question": "Cosmetic vs Medical revenue", "category": "revenue", "usage": 122},
    {"id": "best-location", "question": "Best performing location", "category": "locations", "usage": 98},
]

TIME_PHRASES = (
    (r"\b(this|last|past|previous) month\b|\bmonthly\b|\bnext month\b", "1M"),
    (r"\b(this|last|past|previous) quarter\b|\bquarterly\b|\b3 months\b|\bthree months\b", "3M"),
    (r"\b6 months\b|\bsix months\b|\bhalf[- ]year\b", "6M"),
    (r"\b(this|last|past|previous) year\b|\b12 months\b|\bannual\b|\byearly\b", "1Y"),
)

QUERY_TYPES = (
    ("forecasting", ("forecast", "projection", "predict", "next month")),
    ("procedures", ("procedure", "surgery", "botox", "filler", "biopsy", "cosmetic", "medical")),
    ("payers", ("payer", "insurance", "ar days", "medicare", "aetna", "cigna")),
    ("claims", ("claim", "denied", "denial", "pending")),
    ("locations", ("location", "best performing", "office")),
    ("revenue", ("revenue", "profit", "expense", "cash")),
)


def extract_query_context(
    query: str,
    params: CanonicalParameters,
    default_location: Optional[str] = ALL_LOCATIONS,
    default_time_range: Optional[str] = "1M",
) -> Tuple[str, str]:
    """Pick the location and time window a question refers to, by keyword."""
    lowered = query.lower()

    location_id = default_location or ALL_LOCATIONS
    for loc in params.locations:
        candidates = {loc.id.lower(), loc.name.split(",")[0].lower(), loc.city.lower()}
        if any(candidate and candidate in lowered for candidate in candidates):
            location_id = loc.id
            break
    if re.search(r"\ball locations\b|\bacross locations\b|\bevery location\b", lowered):
        location_id = ALL_LOCATIONS

    time_range = default_time_range or "1M"
    for pattern, code in TIME_PHRASES:
        if re.search(pattern, lowered):
            time_range = code
            break

    return location_id, time_range


def classify_query(query: str) -> str:
    lowered = query.lower()
    for query_type, keywords in QUERY_TYPES:
        if any(kw in lowered for kw in keywords):
            return query_type
    return "general"


def gather_analytics(params: CanonicalParameters, ctx: FilterContext, rng: random.Random) -> Dict:
    funnel = derivations.claims_funnel(params, ctx)
    return {
        "location_id": ctx.location_id or ALL_LOCATIONS,
        "time_range": ctx.time_range,
        "key_metrics": derivations.key_metrics(params, ctx),
        "top_procedures": derivations.top_procedures(params, ctx, rng, limit=5),
        "payers": derivations.insurance_payer_breakdown(params, ctx, rng)["payers"],
        "claims": {c["status"]: {"count": c["total_claims"], "amount": c["total_amount"]} for c in funnel["claims"]},
        "projections": derivations.patient_volume_projections(params, ctx, rng, months=3),
        "locations": [
            {"id": loc.id, "name": loc.name, "weight": loc.weight} for loc in params.locations
        ],
    }


def answer_query(query: str, analytics: Dict) -> Dict:
    settings = get_settings()
    query_type = classify_query(query)

    if settings.openai_api_key:
        try:
            answer = _llm_answer(settings.openai_api_key, settings.openai_model, query, analytics)
            answer["source"] = "llm"
            return answer
        except Exception as e:
            logger.warning("LLM answer failed, falling back to template: %s", e)

    answer = _template_answer(query_type, analytics)
    answer["source"] = "template"
    return answer


def _llm_answer(api_key: str, model: str, query: str, analytics: Dict) -> Dict:
    import httpx

    user_message = json.dumps({"question": query, "metrics": analytics}, default=str)

    for attempt in range(2):
        resp = httpx.post(
            "https://api.openai.com/v1/chat/completions",
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json={
                "model": model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_message},
                ],
                "temperature": 0.3,
                "max_tokens": 800,
                "response_format": {"type": "json_object"},
            },
            timeout=30.0,
        )
        resp.raise_for_status()
        content = resp.json()["choices"][0]["message"]["content"].strip()

        if content.startswith("```"):
            content = content.split("\n", 1)[1] if "\n" in content else content[3:]
            if content.endswith("```"):
                content = content[:-3]
            content = content.strip()

        answer = json.loads(content)
        if isinstance(answer, dict) and RESPONSE_KEYS.issubset(answer.keys()):
            return answer
        logger.info("LLM answer missing keys on attempt %d", attempt + 1)

    raise ValueError("LLM produced invalid answer after retries")


def _money(amount: float) -> str:
    return f"${amount:,.0f}"


def _template_answer(query_type: str, analytics: Dict) -> Dict:
    metrics = analytics["key_metrics"]
    scope = "all locations" if analytics["location_id"] == ALL_LOCATIONS else analytics["location_id"]
    window = analytics["time_range"]

    key_points: List[str] = [
        f"Revenue {_money(metrics['period_revenue'])} across {scope} ({window})",
        f"Collection rate {metrics['collection_rate']}%, denial rate {metrics['denial_rate']}%",
    ]
    recommendations: List[str] = []

    if query_type == "forecasting" and analytics["projections"]:
        nxt = analytics["projections"][0]
        response = (
            f"Projected volume for {nxt['month']} is about {nxt['projected_patients']:,} patients "
            f"and {_money(nxt['projected_revenue'])} in revenue at {int(nxt['confidence'] * 100)}% confidence."
        )
        key_points += [f"{p['month']}: {p['projected_patients']:,} patients" for p in analytics["projections"]]
    elif query_type == "procedures" and analytics["top_procedures"]:
        top = analytics["top_procedures"][0]
        response = (
            f"{top['name']} leads procedure revenue for {scope} with {_money(top['revenue'])} "
            f"over {window} ({top['growth']:+.1f}% growth)."
        )
        key_points += [f"{p['name']}: {_money(p['revenue'])}" for p in analytics["top_procedures"]]
    elif query_type == "payers":
        slowest = max(analytics["payers"], key=lambda p: p["ar_days"])
        response = (
            f"Weighted AR days are {metrics['ar_days']} for {scope}. "
            f"{slowest['name']} is the slowest payer at {slowest['ar_days']} days."
        )
        key_points += [f"{p['name']}: {p['percentage']}% of revenue, {p['ar_days']} AR days" for p in analytics["payers"]]
        if slowest["ar_days"] > 40:
            recommendations.append(f"Review follow-up cadence for {slowest['name']} claims")
    elif query_type == "claims":
        claims = analytics["claims"]
        response = (
            f"{claims['Submitted']['count']:,} claims worth {_money(claims['Submitted']['amount'])} were submitted for {scope}: "
            f"{claims['Paid']['count']:,} paid, {claims['Pending']['count']:,} pending and {claims['Denied']['count']:,} denied."
        )
        if metrics["denial_rate"] > 5:
            recommendations.append("Review top denial reasons with the billing team")
    elif query_type == "locations":
        best = max(analytics["locations"], key=lambda loc: loc["weight"])
        response = f"{best['name']} is the best performing location with {best['weight'] * 100:.0f}% of practice revenue."
        key_points += [f"{loc['name']}: {loc['weight'] * 100:.0f}%" for loc in analytics["locations"]]
    else:
        response = (
            f"{scope.capitalize()} generated {_money(metrics['period_revenue'])} over {window} "
            f"from roughly {metrics['patient_count']:,} patients."
        )

    return {
        "response": response,
        "query_type": query_type,
        "key_points": key_points,
        "recommendations": recommendations,
    }

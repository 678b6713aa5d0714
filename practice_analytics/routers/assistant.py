import logging

from fastapi import APIRouter, Depends

from ..analytics.filters import resolve
from ..analytics.parameters import CanonicalParameters
from ..schemas.analytics import AIQueryRequest
from ..services.assistant import POPULAR_QUESTIONS, answer_query, extract_query_context, gather_analytics
from .deps import get_canonical_parameters, get_clock, get_rng

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["assistant"])


@router.post("/query")
def query_assistant(
    req: AIQueryRequest,
    params: CanonicalParameters = Depends(get_canonical_parameters),
    clock=Depends(get_clock),
    rng=Depends(get_rng),
):
    location_id, time_range = extract_query_context(req.query, params, req.location_id, req.time_range)
    ctx = resolve(params, location_id, time_range, clock=clock)
    logger.info("[ai_query] location=%s time_range=%s", location_id, ctx.time_range)

    answer = answer_query(req.query, gather_analytics(params, ctx, rng))
    answer["location_context"] = location_id
    answer["time_context"] = ctx.time_range
    return answer


@router.get("/popular-questions")
def popular_questions():
    return POPULAR_QUESTIONS

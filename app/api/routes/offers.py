from __future__ import annotations

from fastapi import APIRouter, HTTPException

from app.agents.analyzer_agent import AnalyzerAgent
from app.llm_client import UpstreamError
from app.models.schemas import AnalyzeRequest, AnalyzeResponse
from app.services import logger as log_service

router = APIRouter(prefix="/api/offers", tags=["offers"])


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_offers(request: AnalyzeRequest):
    """Ask the model which newly discovered offers beat the current ones."""
    if not request.new_offers:
        return AnalyzeResponse(analysis=[])
    try:
        analysis = await AnalyzerAgent().analyze(
            request.casino_name,
            request.current_offers,
            request.new_offers,
        )
    except UpstreamError as e:
        log_service.log_event(
            event_type="analysis_error",
            message="Offer analysis failed",
            casino=request.casino_name,
            error=str(e),
        )
        raise HTTPException(status_code=502, detail="Offer analysis failed")
    return AnalyzeResponse(analysis=analysis)

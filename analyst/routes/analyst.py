"""Analyst routes: answer, predict, learned insights."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from analyst.config import get_settings
from analyst.match_context import MatchContext, MatchMode
from analyst.ml.prediction import PredictionInputs
from analyst.security import limiter, verify_api_key
from analyst.service import AnalystService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyst", tags=["analyst"], dependencies=[Depends(verify_api_key)])
RATE_LIMIT = get_settings().RATE_LIMIT_PER_MINUTE


# ── Schemas ──────────────────────────────────────────────────────────────────


class MatchContextIn(BaseModel):
    home_team: str = Field(..., min_length=1, max_length=100)
    away_team: str = Field(..., min_length=1, max_length=100)
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    fixture_id: Optional[int] = None
    league_id: Optional[int] = None
    league_name: Optional[str] = None
    mode: MatchMode = MatchMode.PRE_MATCH
    home_score: Optional[int] = Field(None, ge=0)
    away_score: Optional[int] = Field(None, ge=0)
    venue: Optional[str] = None
    kickoff: Optional[datetime] = None

    def to_context(self) -> MatchContext:
        return MatchContext(**self.model_dump())


class AnswerRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=2000)
    match: MatchContextIn
    room_id: Optional[str] = None
    conversation_key: Optional[str] = None
    ai_enabled: bool = True


class AnswerResponse(BaseModel):
    answer: Optional[str]
    skipped: bool


class PredictionInputsIn(BaseModel):
    home_form: Optional[float] = Field(None, ge=0, le=100)
    away_form: Optional[float] = Field(None, ge=0, le=100)
    home_win_streak: int = Field(0, ge=0)
    away_win_streak: int = Field(0, ge=0)
    home_unbeaten: int = Field(0, ge=0)
    away_unbeaten: int = Field(0, ge=0)
    home_rank: Optional[int] = Field(None, ge=1)
    away_rank: Optional[int] = Field(None, ge=1)
    home_goals_scored: Optional[int] = Field(None, ge=0)
    home_goals_conceded: Optional[int] = Field(None, ge=0)
    away_goals_scored: Optional[int] = Field(None, ge=0)
    away_goals_conceded: Optional[int] = Field(None, ge=0)
    home_recent_games: int = Field(0, ge=0)
    away_recent_games: int = Field(0, ge=0)


class PredictRequest(BaseModel):
    match: MatchContextIn
    inputs: Optional[PredictionInputsIn] = None


class PredictionFactorOut(BaseModel):
    type: str
    description: str
    impact: str


class PredictionResponse(BaseModel):
    home_win: int
    draw: int
    away_win: int
    predicted_score: dict[str, int]
    confidence: int
    factors: list[PredictionFactorOut]


class InsightOut(BaseModel):
    category: str
    subject: str
    text: str
    source: str
    confidence: float
    match_key: Optional[str] = None
    created_at: datetime


def get_service(request: Request) -> AnalystService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Analyst service not initialized")
    return service


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/answer", response_model=AnswerResponse)
@limiter.limit(RATE_LIMIT)
async def answer_question(
    request: Request,
    body: AnswerRequest,
    service: AnalystService = Depends(get_service),
):
    """Answer a fan question about one fixture. `answer` is null when AI is disabled for the room."""
    answer = await service.answer(
        body.question,
        body.match.to_context(),
        conversation_key=body.conversation_key,
        room_id=body.room_id,
        ai_enabled=body.ai_enabled,
    )
    return AnswerResponse(answer=answer, skipped=answer is None)


@router.post("/predict", response_model=PredictionResponse)
@limiter.limit(RATE_LIMIT)
async def predict_match(
    request: Request,
    body: PredictRequest,
    service: AnalystService = Depends(get_service),
):
    inputs = PredictionInputs(**body.inputs.model_dump()) if body.inputs is not None else None
    prediction = await service.predict(body.match.to_context(), inputs)
    return prediction.as_dict()


@router.get("/insights", response_model=list[InsightOut])
@limiter.limit(RATE_LIMIT)
async def list_insights(
    request: Request,
    home: str = Query(..., min_length=1),
    away: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
    service: AnalystService = Depends(get_service),
):
    """Learned insights for a team pair, newest first."""
    insights = await service.learned_insights(home, away, limit)
    return [
        InsightOut(
            category=i.category.value,
            subject=i.subject,
            text=i.text,
            source=i.source.value,
            confidence=i.confidence,
            match_key=i.match_key,
            created_at=i.created_at,
        )
        for i in insights
    ]

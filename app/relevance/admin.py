"""
Relevance Scoring Endpoints

GET  /api/v1/relevance/health                  - Health check
POST /api/v1/relevance/score                   - Score one supplement
POST /api/v1/relevance/rank                    - Score and rank catalog entries
POST /api/v1/relevance/context                 - Project raw records into a context
GET  /api/v1/relevance/users/{user_id}/context - Load records and project context

Version: relevance_scoring_v1
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from app.catalog.models import CatalogSupplement
from app.shared.hashing import canonicalize_and_hash

from .context import bloodwork_max_age_days, build_user_context, summarize_context
from .models import (
    DEFAULT_SCORING_CONFIG,
    RelevanceMatrix,
    RelevanceScoreResult,
    ScoringConfig,
    UserRelevanceContext,
)
from .repository import get_db, load_user_records
from .score import calculate_relevance_score, rank_supplements

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/api/v1/relevance",
    tags=["relevance"],
)


# Request / response models

class ScoreRequest(BaseModel):
    """Score one supplement for one user context."""
    base_score: Optional[float] = Field(
        default=None,
        description="Static impact score (0-10, clamped); default used when absent"
    )
    matrix: Optional[RelevanceMatrix] = None
    context: Optional[UserRelevanceContext] = None
    config: Optional[ScoringConfig] = Field(
        default=None,
        description="Override thresholds / category order"
    )


class ScoreResponse(BaseModel):
    success: bool = True
    result: RelevanceScoreResult
    generated_at: datetime = Field(default_factory=datetime.utcnow)


class RankRequest(BaseModel):
    items: List[CatalogSupplement]
    context: Optional[UserRelevanceContext] = None
    config: Optional[ScoringConfig] = None


class RankedItem(BaseModel):
    name: str
    category: str
    result: RelevanceScoreResult


class RankResponse(BaseModel):
    success: bool = True
    count: int
    personalized_count: int
    items: List[RankedItem]
    ranking_hash: str = Field(description="Hash of (name, final_score, tier) in rank order")


class ContextRequest(BaseModel):
    """Raw record-store rows; every part optional."""
    profile: Optional[Dict[str, Any]] = None
    bloodwork: Optional[Dict[str, Any]] = None
    peptide_protocols: List[Dict[str, Any]] = Field(default_factory=list)
    protocol_status: Optional[Dict[str, Any]] = None
    daily_goals: Optional[Dict[str, Any]] = None
    today: Optional[date] = Field(
        default=None,
        description="Reference date for bloodwork staleness (defaults to today)"
    )


class ContextResponse(BaseModel):
    success: bool = True
    context: UserRelevanceContext
    summary: str


# Endpoints

@router.get("/health")
async def relevance_health():
    """Health check for relevance scoring. Does not require authentication."""
    return {
        "status": "ok",
        "module": "relevance_scoring",
        "version": "relevance_scoring_v1",
        "thresholds": {
            "essential": DEFAULT_SCORING_CONFIG.essential_threshold,
            "optimizer": DEFAULT_SCORING_CONFIG.optimizer_threshold,
        },
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.post("/score", response_model=ScoreResponse)
async def score_endpoint(request: ScoreRequest):
    """
    Compute the personalized relevance score for one supplement.

    Missing matrix or context yields the unpersonalized base score.
    """
    try:
        result = calculate_relevance_score(
            request.base_score,
            request.matrix,
            request.context,
            request.config or DEFAULT_SCORING_CONFIG,
        )
        return ScoreResponse(result=result)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Relevance scoring failed")
        raise HTTPException(status_code=500, detail=f"Scoring error: {str(e)}")


@router.post("/rank", response_model=RankResponse)
async def rank_endpoint(request: RankRequest):
    """Score catalog entries for the context and return them best-first."""
    try:
        ranked = rank_supplements(
            request.items,
            request.context,
            request.config or DEFAULT_SCORING_CONFIG,
        )
        items = [
            RankedItem(name=item.name, category=item.category, result=result)
            for item, result in ranked
        ]
        return RankResponse(
            count=len(items),
            personalized_count=sum(1 for i in items if i.result.is_personalized),
            items=items,
            ranking_hash=canonicalize_and_hash(
                [[i.name, i.result.final_score, i.result.tier.value] for i in items]
            ),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Relevance ranking failed")
        raise HTTPException(status_code=500, detail=f"Ranking error: {str(e)}")


@router.post("/context", response_model=ContextResponse)
async def context_endpoint(request: ContextRequest):
    """Build a UserRelevanceContext from raw profile / lab / protocol rows."""
    context = build_user_context(
        profile=request.profile,
        bloodwork=request.bloodwork,
        peptide_protocols=request.peptide_protocols,
        protocol_status=request.protocol_status,
        daily_goals=request.daily_goals,
        today=request.today,
    )
    return ContextResponse(context=context, summary=summarize_context(context))


@router.get("/users/{user_id}/context", response_model=ContextResponse)
async def user_context_endpoint(user_id: str):
    """
    Load the user's records from the database and project the context.

    Returns 503 when the database is unavailable.
    """
    conn = get_db()
    if not conn:
        raise HTTPException(status_code=503, detail="Database unavailable")

    try:
        records = load_user_records(conn, user_id, bloodwork_days=bloodwork_max_age_days())
    except Exception as e:
        logger.error(f"Failed to load relevance records for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load user records")
    finally:
        conn.close()

    context = build_user_context(**records)
    return ContextResponse(context=context, summary=summarize_context(context))

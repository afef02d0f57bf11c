"""
Catalog Admin Endpoints

Admin tooling for relevance-matrix authoring.

POST /api/v1/admin/catalog/matrix/parse      - Parse a matrix CSV
POST /api/v1/admin/catalog/matrix/export     - Flatten entries to CSV
POST /api/v1/admin/catalog/ingredients/match - Match imported ingredients to catalog names
POST /api/v1/admin/catalog/groups            - Score and group entries by base substance

Security: Requires ADMIN_API_KEY header for all endpoints.

Version: catalog_matrix_v1
"""

import logging
import os
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from app.relevance.models import DEFAULT_SCORING_CONFIG, ScoringConfig, UserRelevanceContext

from .grouping import build_supplement_groups
from .ingredient_match import match_all_ingredients, match_stats
from .matrix_csv import export_matrix_csv, parse_matrix_csv
from .models import (
    CatalogName,
    CatalogSupplement,
    ImportedIngredient,
    IngredientMatch,
    IngredientMatchStats,
    MatrixCSVParseResult,
    SupplementGroup,
)

logger = logging.getLogger(__name__)


# Router
router = APIRouter(
    prefix="/api/v1/admin/catalog",
    tags=["admin", "catalog"],
)


# Security
def verify_admin_key(x_admin_api_key: str = Header(None, alias="X-Admin-API-Key")) -> str:
    """
    Verify admin API key from header.

    Raises 401 if missing or invalid.
    """
    expected_key = os.environ.get("ADMIN_API_KEY")

    if not expected_key:
        # Fail open in dev if ADMIN_API_KEY not set
        logger.warning("ADMIN_API_KEY not set, admin catalog endpoints are open")
        return "dev_mode"

    if not x_admin_api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing X-Admin-API-Key header"
        )

    if x_admin_api_key != expected_key:
        raise HTTPException(
            status_code=401,
            detail="Invalid admin API key"
        )

    return x_admin_api_key


# Request / response models

class ParseMatrixRequest(BaseModel):
    csv_text: str = Field(description="Matrix CSV content")


class ParseMatrixResponse(BaseModel):
    success: bool
    result: MatrixCSVParseResult
    generated_at: datetime = Field(default_factory=datetime.utcnow)


class ExportMatrixRequest(BaseModel):
    entries: List[CatalogSupplement]


class ExportMatrixResponse(BaseModel):
    success: bool = True
    count: int
    csv_text: str


class MatchIngredientsRequest(BaseModel):
    ingredients: List[ImportedIngredient]
    catalog: List[CatalogName]


class MatchIngredientsResponse(BaseModel):
    success: bool = True
    stats: IngredientMatchStats
    results: List[IngredientMatch]


class GroupsRequest(BaseModel):
    items: List[CatalogSupplement]
    context: Optional[UserRelevanceContext] = None
    config: Optional[ScoringConfig] = None


class GroupsResponse(BaseModel):
    success: bool = True
    group_count: int
    groups: List[SupplementGroup]


# Endpoints

@router.post("/matrix/parse", response_model=ParseMatrixResponse)
async def parse_matrix_endpoint(
    request: ParseMatrixRequest,
    _: str = Depends(verify_admin_key),
):
    """
    Parse a matrix CSV into catalog entries.

    Row errors do not fail the request; success is False only when no
    entry could be parsed.
    """
    result = parse_matrix_csv(request.csv_text)
    if result.errors:
        logger.warning(f"Matrix import: {len(result.errors)} row errors, {result.stats.total} entries")
    return ParseMatrixResponse(success=result.stats.total > 0, result=result)


@router.post("/matrix/export", response_model=ExportMatrixResponse)
async def export_matrix_endpoint(
    request: ExportMatrixRequest,
    _: str = Depends(verify_admin_key),
):
    """Flatten catalog entries into matrix CSV text."""
    return ExportMatrixResponse(
        count=len(request.entries),
        csv_text=export_matrix_csv(request.entries),
    )


@router.post("/ingredients/match", response_model=MatchIngredientsResponse)
async def match_ingredients_endpoint(
    request: MatchIngredientsRequest,
    _: str = Depends(verify_admin_key),
):
    """Resolve imported ingredient ids/names against catalog rows."""
    results = match_all_ingredients(request.ingredients, request.catalog)
    return MatchIngredientsResponse(stats=match_stats(results), results=results)


@router.post("/groups", response_model=GroupsResponse)
async def groups_endpoint(
    request: GroupsRequest,
    _: str = Depends(verify_admin_key),
):
    """Score entries for the context and group them by base substance."""
    try:
        groups = build_supplement_groups(
            request.items,
            request.context,
            request.config or DEFAULT_SCORING_CONFIG,
        )
    except Exception as e:
        logger.exception("Supplement grouping failed")
        raise HTTPException(status_code=500, detail=f"Grouping error: {str(e)}")
    return GroupsResponse(group_count=len(groups), groups=groups)

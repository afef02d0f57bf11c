"""
Supplement Catalog Models

Pydantic models for catalog entries carrying a relevance matrix,
matrix CSV import results, ingredient matching and base-name groups.

Version: catalog_matrix_v1
"""

from typing import List, Optional, Literal
from pydantic import BaseModel, Field

from app.relevance.models import RelevanceMatrix, Tier


NecessityTier = Literal["essential", "optimizer", "specialist"]
EvidenceLevel = Literal["stark", "moderat", "anekdotisch"]


class CatalogSupplement(BaseModel):
    """
    One supplement / intervention in the reference catalog.

    impact_score is the static base score; the scorer clamps it, so
    out-of-range authoring mistakes are kept as-is here.
    """
    name: str = Field(min_length=1)
    category: str = "Sonstige"
    impact_score: Optional[float] = Field(
        default=5.0,
        description="Static base score, 0-10"
    )
    necessity_tier: NecessityTier = "optimizer"
    evidence_level: EvidenceLevel = "moderat"
    protocol_phase: int = 0
    relevance_matrix: Optional[RelevanceMatrix] = None

    class Config:
        extra = "ignore"


class MatrixImportStats(BaseModel):
    total: int = 0
    essential: int = 0
    optimizer: int = 0
    specialist: int = 0
    strong_evidence: int = 0
    moderate_evidence: int = 0
    modifiers: int = Field(default=0, description="Modifiers across all entries")


class MatrixCSVParseResult(BaseModel):
    """Result of parsing a matrix CSV. Row errors are collected, not raised."""
    entries: List[CatalogSupplement] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    stats: MatrixImportStats = Field(default_factory=MatrixImportStats)
    import_hash: Optional[str] = Field(
        default=None,
        description="Canonical hash of the parsed entries"
    )


class CatalogName(BaseModel):
    """Minimal catalog row used for ingredient matching."""
    id: str
    name: str = Field(min_length=1)


class ImportedIngredient(BaseModel):
    ingredient_id: str
    ingredient_name: str


class IngredientMatch(BaseModel):
    ingredient_id: str
    ingredient_name: str
    matched_id: Optional[str] = None
    matched_name: Optional[str] = None
    match_score: float = Field(ge=0.0, le=1.0)
    match_type: Literal["exact", "manual", "fuzzy", "none"]


class IngredientMatchStats(BaseModel):
    total: int
    matched: int
    exact: int
    manual: int
    fuzzy: int
    unmatched: int


class GroupVariant(BaseModel):
    name: str
    variant: str
    final_score: float
    tier: Tier
    is_personalized: bool
    is_limited_by_missing_data: bool = False


class SupplementGroup(BaseModel):
    """All variants of one base substance, best-scored first."""
    base_name: str
    top_score: float
    top_variant: str
    variant_count: int
    dynamic_tier: Tier = Field(
        description="Tier of the top variant's personalized score"
    )
    variants: List[GroupVariant]

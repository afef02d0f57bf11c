"""
Relevance Scoring Module

Personalized supplement relevance: static impact score + per-supplement
relevance matrix + user context -> 0-10 score, tier, reasons, warnings.

This module does NOT:
- Fetch catalog data (callers pass it in)
- Render badges or breakdowns
- Persist results

This module ONLY:
- Scores (pure, deterministic, never raises on partial input)
- Projects raw user records into a relevance context
- Exposes both over HTTP

Version: relevance_scoring_v1
"""

from .models import (
    Goal,
    Sex,
    Tier,
    Polarity,
    ModifierCategory,
    UserRelevanceContext,
    GoalMatch,
    DemographicMatch,
    ProtocolModeMatch,
    BloodworkTrigger,
    Synergy,
    RelevanceMatrix,
    ScoreReason,
    RelevanceScoreResult,
    ScoringConfig,
    DEFAULT_SCORING_CONFIG,
)
from .score import calculate_relevance_score, tier_for, rank_supplements
from .context import build_user_context, summarize_context

__version__ = "relevance_scoring_v1"

__all__ = [
    "Goal",
    "Sex",
    "Tier",
    "Polarity",
    "ModifierCategory",
    "UserRelevanceContext",
    "GoalMatch",
    "DemographicMatch",
    "ProtocolModeMatch",
    "BloodworkTrigger",
    "Synergy",
    "RelevanceMatrix",
    "ScoreReason",
    "RelevanceScoreResult",
    "ScoringConfig",
    "DEFAULT_SCORING_CONFIG",
    "calculate_relevance_score",
    "tier_for",
    "rank_supplements",
    "build_user_context",
    "summarize_context",
    "__version__",
]

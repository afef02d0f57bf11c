"""
Relevance Scoring Core Logic

Computes a personalized 0-10 relevance score for a supplement:

1. Clamp the static base score into range
2. Walk modifier categories in the configured order
3. Apply every matching modifier (cumulative, no first-match-wins)
4. Emit warnings for flagged bloodwork triggers
5. Clamp once at the end and derive the tier

Pure function: no I/O, no hidden state. Same input -> same output.
Malformed or absent input is defaulted or clamped, never raised.

Version: relevance_scoring_v1
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

from .models import (
    BloodworkTrigger,
    DEFAULT_SCORING_CONFIG,
    Polarity,
    RelevanceMatrix,
    RelevanceScoreResult,
    ScoreReason,
    ScoringConfig,
    Tier,
    UserRelevanceContext,
)

logger = logging.getLogger(__name__)

# Strips float accumulation noise (0.1 + 0.2) from the summed delta; the base is never rounded
SCORE_PRECISION = 6


def clamp_score(value: float, config: ScoringConfig = DEFAULT_SCORING_CONFIG) -> float:
    return max(config.min_score, min(config.max_score, value))


def normalize_base_score(
    base_score: Optional[float],
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> float:
    """
    Coerce a catalog impact score into the valid range.

    None, non-numeric and NaN values fall back to the configured default.
    """
    try:
        value = float(base_score)
    except (TypeError, ValueError):
        if base_score is not None:
            logger.debug(f"Non-numeric base score {base_score!r}, using default")
        return config.default_base_score
    if math.isnan(value):
        logger.debug("NaN base score, using default")
        return config.default_base_score
    return clamp_score(value, config)


def tier_for(score: float, config: ScoringConfig = DEFAULT_SCORING_CONFIG) -> Tier:
    """Inclusive lower bounds: a score on a threshold gets the higher tier."""
    if score >= config.essential_threshold:
        return Tier.ESSENTIAL
    if score >= config.optimizer_threshold:
        return Tier.OPTIMIZER
    return Tier.NICHE


def polarity_of(delta: float) -> Polarity:
    if delta > 0:
        return Polarity.POSITIVE
    if delta < 0:
        return Polarity.NEGATIVE
    return Polarity.NEUTRAL


def format_reason(label: str, delta: float) -> str:
    """'Ziel: Fettverlust', 2.0 -> 'Ziel: Fettverlust: +2.0'"""
    if delta == 0:
        delta = 0.0  # avoid '-0.0'
    return f"{label}: {delta:+.1f}"


def collect_matches(
    matrix: RelevanceMatrix,
    context: UserRelevanceContext,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> Tuple[List[ScoreReason], List[str], float]:
    """
    Evaluate all modifiers against the context.

    Returns:
        (reasons, warnings, summed delta). Reasons are ordered by category
        order first, then by authored order inside the category.
    """
    reasons: List[ScoreReason] = []
    warnings: List[str] = []
    total_delta = 0.0

    for category in config.category_order:
        for modifier in matrix.of_category(category):
            if not modifier.matches(context):
                continue

            label = modifier.display_label()
            total_delta += modifier.delta
            reasons.append(ScoreReason(
                category=category,
                label=label,
                delta=modifier.delta,
                polarity=polarity_of(modifier.delta),
                text=format_reason(label, modifier.delta),
            ))

            if isinstance(modifier, BloodworkTrigger) and modifier.warning:
                warnings.append(modifier.warning_message())

    return reasons, warnings, total_delta


def is_limited_by_missing_data(
    matrix: RelevanceMatrix,
    context: Optional[UserRelevanceContext],
) -> bool:
    """
    True when missing user data may have kept modifiers from matching:
    no context, a minimal profile, or bloodwork triggers without any
    bloodwork flags to test them against.
    """
    if context is None or context.profile_completeness == "minimal":
        return True
    has_triggers = any(isinstance(m, BloodworkTrigger) for m in matrix.modifiers)
    return has_triggers and not context.bloodwork_flags


def calculate_relevance_score(
    base_score: Optional[float],
    matrix: Optional[RelevanceMatrix],
    context: Optional[UserRelevanceContext],
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> RelevanceScoreResult:
    """
    Main scoring function.

    Args:
        base_score: Static impact score from the catalog (0-10, clamped)
        matrix: Per-supplement modifiers, or None when none are authored
        context: User relevance context, or None when unavailable
        config: Thresholds and category evaluation order

    Returns:
        RelevanceScoreResult with final score, tier, reasons and warnings
    """
    base = normalize_base_score(base_score, config)

    if matrix is None or matrix.is_empty():
        return RelevanceScoreResult(
            base_score=base,
            final_score=base,
            reasons=[],
            warnings=[],
            is_personalized=False,
            tier=tier_for(base, config),
        )

    reasons, warnings, total_delta = collect_matches(
        matrix,
        context or UserRelevanceContext(),
        config,
    )

    final = clamp_score(base + round(total_delta, SCORE_PRECISION), config)

    return RelevanceScoreResult(
        base_score=base,
        final_score=final,
        reasons=reasons,
        warnings=warnings,
        is_personalized=len(reasons) + len(warnings) > 0,
        is_limited_by_missing_data=is_limited_by_missing_data(matrix, context),
        tier=tier_for(final, config),
    )


def rank_supplements(
    items: Sequence,
    context: Optional[UserRelevanceContext],
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> List[Tuple[object, RelevanceScoreResult]]:
    """
    Score catalog entries and sort them best-first.

    Each item needs `name`, `impact_score` and `relevance_matrix`
    attributes (see app.catalog.models.CatalogSupplement).

    Returns:
        List of (item, result), sorted by final score desc, then name
    """
    scored = [
        (item, calculate_relevance_score(item.impact_score, item.relevance_matrix, context, config))
        for item in items
    ]
    scored.sort(key=lambda pair: (-pair[1].final_score, pair[0].name.lower()))
    return scored

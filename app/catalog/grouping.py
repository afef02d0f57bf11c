"""
Supplement Grouping by Base Substance

Groups catalog variants ("Magnesium Glycinat", "Magnesium Citrat") under
one base name and assigns each group a dynamic tier from the personalized
score of its best variant.

Version: catalog_matrix_v1
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

from app.relevance.models import (
    DEFAULT_SCORING_CONFIG,
    RelevanceScoreResult,
    ScoringConfig,
    UserRelevanceContext,
)
from app.relevance.score import rank_supplements

from .models import CatalogSupplement, GroupVariant, SupplementGroup


# Order matters: multivitamin before single vitamins, NR before NAD+
BASE_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(p, re.IGNORECASE), base) for p, base in [
        # Minerals
        (r"^magnesium", "Magnesium"),
        (r"^zink|^zinc", "Zink"),
        (r"^eisen", "Eisen"),
        (r"^selen", "Selen"),
        (r"^jod", "Jod"),
        (r"^kalium", "Kalium"),
        (r"^boron|^bor$", "Bor"),
        (r"^elektrolyt", "Elektrolyte"),
        # Vitamins
        (r"^(multi-?vitamin|a-z\s*(komplex)?|multivit)", "Multivitamin"),
        (r"^vitamin\s*d|^d3\b", "Vitamin D"),
        (r"^vitamin\s*k", "Vitamin K"),
        (r"^vitamin\s*b", "Vitamin B"),
        (r"^vitamin\s*c", "Vitamin C"),
        # Omega-3
        (r"^omega[- ]?3|fisch[öo]l|fish[- ]?oil", "Omega-3"),
        # Amino acids
        (r"^eaa|^essential[- ]?amino", "EAA"),
        (r"^bcaa", "BCAA"),
        (r"^l[- ]?glutamin", "L-Glutamin"),
        (r"^l[- ]?carnitin", "L-Carnitin"),
        (r"^l[- ]?theanin", "L-Theanin"),
        (r"^glycin", "Glycin"),
        (r"^taurin", "Taurin"),
        # Performance
        (r"^creatin|^kreatin", "Creatin"),
        (r"^hmb", "HMB"),
        (r"^citrullin", "Citrullin"),
        (r"^beta[- ]?alanin", "Beta-Alanin"),
        # Adaptogens
        (r"^ashwagandha|^ksm[- ]?66|^withania", "Ashwagandha"),
        (r"^rhodiola", "Rhodiola"),
        (r"^tongkat", "Tongkat Ali"),
        (r"^shilajit", "Shilajit"),
        # Longevity
        (r"^gly[- ]?nac", "GlyNAC"),
        (r"^ca[- ]?akg|^calcium[- ]?alpha[- ]?ketoglutarat", "Ca-AKG"),
        (r"^nmn", "NMN"),
        (r"^nr\b|^niagen|^nicotinamid[- ]?ribosid", "NR (Niagen)"),
        (r"^nad\+?|^nicotinamid", "NAD+"),
        (r"^resveratrol", "Resveratrol"),
        (r"^spermid", "Spermidin"),
        (r"^coq10|^ubiquinol|^ubiquinon", "CoQ10"),
        # Other
        (r"^curcumin|^kurkuma", "Curcumin"),
        (r"^berber", "Berberin"),
        (r"^melatonin", "Melatonin"),
        (r"^kollagen|^collagen", "Kollagen"),
        (r"^probiotik", "Probiotika"),
        (r"^tmg|^betain", "TMG/Betain"),
    ]
]

VARIANT_SEPARATOR = re.compile(
    r"[\s-]+(glycinat|citrat|bisglycinat|l-threonat|komplex|monohydrat|oxide?|malat"
    r"|taurate?|orotat|\d+|plus|\+|hcl|extended|depot)",
    re.IGNORECASE,
)


def extract_base_name(name: str) -> str:
    """
    "Magnesium Glycinat" -> "Magnesium"
    "Vitamin D3 + K2"    -> "Vitamin D"
    """
    trimmed = (name or "").strip()
    for pattern, base in BASE_PATTERNS:
        if pattern.search(trimmed):
            return base
    head = VARIANT_SEPARATOR.split(trimmed)[0].strip()
    return head or trimmed


def variant_name(full_name: str, base_name: str) -> str:
    """
    "Magnesium Glycinat", "Magnesium" -> "Glycinat"
    "Magnesium", "Magnesium"          -> "Standard"
    """
    full = full_name.strip()
    base = base_name.strip()
    if full.lower() == base.lower():
        return "Standard"

    variant = re.sub(rf"^{re.escape(base)}\s*-?\s*", "", full, flags=re.IGNORECASE).strip()
    variant = variant.strip("()").strip()
    if not variant or variant.lower() == base.lower():
        return "Standard"
    return variant


def group_scored_supplements(
    scored: Sequence[Tuple[CatalogSupplement, RelevanceScoreResult]],
) -> List[SupplementGroup]:
    """
    Group (item, result) pairs by base name.

    Variants are sorted by final score desc, then name; groups by top
    score desc, then base name.
    """
    buckets: Dict[str, List[Tuple[CatalogSupplement, RelevanceScoreResult]]] = {}
    for item, result in scored:
        buckets.setdefault(extract_base_name(item.name), []).append((item, result))

    groups: List[SupplementGroup] = []
    for base, members in buckets.items():
        members.sort(key=lambda pair: (-pair[1].final_score, pair[0].name.lower()))
        top_item, top_result = members[0]
        groups.append(SupplementGroup(
            base_name=base,
            top_score=top_result.final_score,
            top_variant=top_item.name,
            variant_count=len(members),
            dynamic_tier=top_result.tier,
            variants=[
                GroupVariant(
                    name=item.name,
                    variant=variant_name(item.name, base),
                    final_score=result.final_score,
                    tier=result.tier,
                    is_personalized=result.is_personalized,
                    is_limited_by_missing_data=result.is_limited_by_missing_data,
                )
                for item, result in members
            ],
        ))

    groups.sort(key=lambda g: (-g.top_score, g.base_name.lower()))
    return groups


def build_supplement_groups(
    items: Sequence[CatalogSupplement],
    context: Optional[UserRelevanceContext],
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> List[SupplementGroup]:
    """Score every item for the user, then group by base substance."""
    return group_scored_supplements(rank_supplements(items, context, config))

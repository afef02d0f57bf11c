"""
Imported Ingredient -> Catalog Name Matching

Resolves ingredient ids/names from a matrix import against catalog rows:
1. exact normalized name        (score 1.0)
2. manual alias table           (score 0.95, exact or contains)
3. fuzzy SequenceMatcher ratio  (accepted at >= 0.6)

Version: catalog_matrix_v1
"""

import re
import unicodedata
from difflib import SequenceMatcher
from typing import List, Optional, Tuple

from .models import CatalogName, ImportedIngredient, IngredientMatch, IngredientMatchStats


FUZZY_THRESHOLD = 0.6
MANUAL_SCORE = 0.95

# Import ingredient_id -> catalog name patterns (German catalog names included)
MANUAL_ALIASES = {
    # Vitamins
    "vit_d3": ["vitamin d3", "vitamin d", "cholecalciferol"],
    "vit_k2": ["vitamin k2", "k2 mk-7", "k2"],
    "vit_b12": ["vitamin b12", "b12", "methylcobalamin", "cobalamin"],
    "vit_b_complex": ["b-komplex", "b komplex", "vitamin b-komplex", "b-vitamine"],
    "vit_c": ["vitamin c", "ascorbinsaure"],
    # Minerals
    "magnesium": ["magnesium"],
    "zinc": ["zink"],
    "iron": ["eisen"],
    "potassium": ["kalium"],
    "selenium": ["selen"],
    "iodine": ["jod"],
    "boron": ["bor"],
    # Amino acids
    "creatine": ["kreatin", "creatine", "creatin monohydrat"],
    "carnitine": ["carnitin", "l-carnitin", "acetyl-l-carnitin", "alcar"],
    "glutamine": ["glutamin", "l-glutamin"],
    "citrulline": ["citrullin", "l-citrullin"],
    "taurine": ["taurin"],
    "glycine": ["glycin"],
    "theanine": ["theanin", "l-theanin"],
    "beta_alanine": ["beta-alanin", "beta alanin"],
    "hmb": ["hmb"],
    "eaa": ["eaa", "essential amino acids"],
    "nac": ["nac", "n-acetyl-cystein"],
    "betaine": ["betain", "tmg", "trimethylglycin"],
    # Fatty acids
    "omega3_epa": ["omega-3", "omega 3", "epa", "fischol"],
    "omega3_dha": ["dha", "omega-3 dha"],
    # Adaptogens / botanicals
    "ashwagandha": ["ashwagandha", "ksm-66", "withania"],
    "rhodiola": ["rhodiola", "rosenwurz"],
    "curcumin": ["curcumin", "kurkuma"],
    "berberine": ["berberin"],
    "tongkat_ali": ["tongkat ali", "tongkat", "eurycoma"],
    # Longevity
    "coq10": ["coq10", "ubiquinol", "coenzym q10"],
    "ala": ["alpha-liponsaure", "r-ala"],
    "nmn": ["nmn", "nicotinamid mononukleotid"],
    "nr": ["nicotinamid ribosid", "niagen"],
    "spermidine": ["spermidin"],
    "glutathione": ["glutathion"],
    # Gut / joints / other
    "probiotics_lacto": ["probiotika", "lactobacillus"],
    "psyllium": ["flohsamenschalen", "flohsamen", "psyllium"],
    "collagen": ["kollagen", "collagen"],
    "caffeine": ["koffein", "caffeine"],
    "melatonin": ["melatonin"],
    "bergamot": ["citrus bergamot", "bergamotte"],
}


def normalize_name(name: str) -> str:
    """Lowercase, fold umlauts/accents, drop parentheses, collapse whitespace."""
    folded = unicodedata.normalize("NFKD", name or "")
    folded = "".join(c for c in folded if not unicodedata.combining(c))
    folded = folded.lower().replace("(", "").replace(")", "")
    return re.sub(r"\s+", " ", folded).strip()


def find_exact_match(name: str, catalog: List[CatalogName]) -> Optional[CatalogName]:
    target = normalize_name(name)
    for row in catalog:
        if normalize_name(row.name) == target:
            return row
    return None


def find_manual_match(ingredient_id: str, catalog: List[CatalogName]) -> Optional[CatalogName]:
    for pattern in MANUAL_ALIASES.get(ingredient_id, []):
        target = normalize_name(pattern)
        for row in catalog:
            candidate = normalize_name(row.name)
            if not candidate:
                continue
            if candidate == target or target in candidate or candidate in target:
                return row
    return None


def find_fuzzy_match(name: str, catalog: List[CatalogName]) -> Tuple[Optional[CatalogName], float]:
    """Best SequenceMatcher ratio; first row wins ties."""
    target = normalize_name(name)
    best: Optional[CatalogName] = None
    best_score = 0.0
    for row in catalog:
        score = SequenceMatcher(None, target, normalize_name(row.name)).ratio()
        if score > best_score:
            best, best_score = row, score
    return best, round(best_score, 4)


def match_ingredient(
    ingredient_id: str,
    ingredient_name: str,
    catalog: List[CatalogName],
) -> IngredientMatch:
    exact = find_exact_match(ingredient_name, catalog)
    if exact:
        return IngredientMatch(
            ingredient_id=ingredient_id,
            ingredient_name=ingredient_name,
            matched_id=exact.id,
            matched_name=exact.name,
            match_score=1.0,
            match_type="exact",
        )

    manual = find_manual_match(ingredient_id, catalog)
    if manual:
        return IngredientMatch(
            ingredient_id=ingredient_id,
            ingredient_name=ingredient_name,
            matched_id=manual.id,
            matched_name=manual.name,
            match_score=MANUAL_SCORE,
            match_type="manual",
        )

    fuzzy, score = find_fuzzy_match(ingredient_name, catalog)
    if fuzzy and score >= FUZZY_THRESHOLD:
        return IngredientMatch(
            ingredient_id=ingredient_id,
            ingredient_name=ingredient_name,
            matched_id=fuzzy.id,
            matched_name=fuzzy.name,
            match_score=score,
            match_type="fuzzy",
        )

    return IngredientMatch(
        ingredient_id=ingredient_id,
        ingredient_name=ingredient_name,
        match_score=score,
        match_type="none",
    )


def match_all_ingredients(
    ingredients: List[ImportedIngredient],
    catalog: List[CatalogName],
) -> List[IngredientMatch]:
    return [match_ingredient(i.ingredient_id, i.ingredient_name, catalog) for i in ingredients]


def match_stats(results: List[IngredientMatch]) -> IngredientMatchStats:
    types = [r.match_type for r in results]
    return IngredientMatchStats(
        total=len(results),
        matched=sum(1 for t in types if t != "none"),
        exact=types.count("exact"),
        manual=types.count("manual"),
        fuzzy=types.count("fuzzy"),
        unmatched=types.count("none"),
    )

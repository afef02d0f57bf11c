"""
Supplement Catalog Matrix Tooling

Purpose: Keep the reference catalog's relevance matrices editable and
consistent.

This module does NOT:
- Score supplements (see app.relevance)
- Write to the catalog database

This module ONLY:
- Parses / exports relevance-matrix CSVs
- Matches imported ingredient names to catalog rows
- Groups variants by base substance with dynamic tiers

Version: catalog_matrix_v1
"""

from .models import (
    CatalogSupplement,
    MatrixCSVParseResult,
    IngredientMatch,
    SupplementGroup,
)
from .matrix_csv import parse_matrix_csv, export_matrix_csv
from .ingredient_match import match_ingredient, match_all_ingredients, match_stats
from .grouping import extract_base_name, variant_name, build_supplement_groups

__version__ = "catalog_matrix_v1"

__all__ = [
    "CatalogSupplement",
    "MatrixCSVParseResult",
    "IngredientMatch",
    "SupplementGroup",
    "parse_matrix_csv",
    "export_matrix_csv",
    "match_ingredient",
    "match_all_ingredients",
    "match_stats",
    "extract_base_name",
    "variant_name",
    "build_supplement_groups",
    "__version__",
]

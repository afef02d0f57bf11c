"""
Relevance Matrix CSV Import / Export

Flat CSV layout (one row per supplement) used to fine-tune matrices in a
spreadsheet:

    name, category, impact_score, necessity_tier, evidence_level, protocol_phase,
    phase_0..phase_3, ctx_*, goal_*, cal_*, demo_*, pep_*, bw_*, syn_*, warnings

Cells hold signed deltas. Empty, zero and non-numeric cells produce no
modifier. `warnings` lists bloodwork markers (';'-separated) whose trigger
emits a warning. Lines starting with '#' are comments.

Version: catalog_matrix_v1
"""

import csv
import io
import logging
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from app.relevance.models import (
    BloodworkTrigger,
    DemographicAttribute,
    DemographicMatch,
    Goal,
    GoalMatch,
    ProtocolMode,
    ProtocolModeMatch,
    RelevanceMatrix,
    Synergy,
)
from app.shared.hashing import canonicalize_and_hash

from .models import CatalogSupplement, MatrixCSVParseResult

logger = logging.getLogger(__name__)


BASE_COLUMNS = ["name", "category", "impact_score", "necessity_tier", "evidence_level", "protocol_phase"]

PHASE_COLUMNS = {f"phase_{n}": ProtocolMode(f"phase_{n}") for n in range(4)}

CONTEXT_COLUMNS = {
    "ctx_true_natural": ProtocolMode.TRUE_NATURAL,
    "ctx_enhanced_no_trt": ProtocolMode.ENHANCED_NO_TRT,
    "ctx_on_trt": ProtocolMode.ON_TRT,
    "ctx_on_glp1": ProtocolMode.ON_GLP1,
}

GOAL_KEYS = [
    "fat_loss", "muscle_gain", "recomposition", "maintenance", "longevity",
    "performance", "cognitive", "sleep", "gut_health",
]

CALORIE_COLUMNS = {
    "cal_in_deficit": ProtocolMode.IN_DEFICIT,
    "cal_in_surplus": ProtocolMode.IN_SURPLUS,
}

DEMOGRAPHIC_KEYS = ["age_over_40", "age_over_50", "age_over_60", "is_male", "is_female"]

PEPTIDE_CLASS_KEYS = [
    "gh_secretagogue", "healing", "longevity", "nootropic",
    "metabolic", "immune", "testo", "skin",
]

BLOODWORK_KEYS = [
    "cortisol_high", "testosterone_low", "vitamin_d_low", "magnesium_low",
    "triglycerides_high", "inflammation_high", "glucose_high", "insulin_resistant",
    "hdl_low", "ldl_high", "apob_high", "ferritin_high", "homocysteine_high",
    "nad_low", "b12_low", "iron_low", "thyroid_slow",
]

SYNERGY_KEYS = [
    "retatrutide", "tirzepatide", "semaglutide", "epitalon", "mots_c",
    "bpc_157", "tb_500", "cjc_1295", "ipamorelin",
]

WARNINGS_COLUMN = "warnings"


def _column_specs() -> List[Tuple[str, Callable[[float, set], object]]]:
    """Ordered (column, modifier factory) pairs for all known modifier columns."""
    specs: List[Tuple[str, Callable]] = []
    for col, mode in PHASE_COLUMNS.items():
        specs.append((col, lambda d, w, mode=mode: ProtocolModeMatch(mode=mode, delta=d)))
    for col, mode in CONTEXT_COLUMNS.items():
        specs.append((col, lambda d, w, mode=mode: ProtocolModeMatch(mode=mode, delta=d)))
    for key in GOAL_KEYS:
        specs.append((f"goal_{key}", lambda d, w, key=key: GoalMatch(goal=Goal(key), delta=d)))
    for col, mode in CALORIE_COLUMNS.items():
        specs.append((col, lambda d, w, mode=mode: ProtocolModeMatch(mode=mode, delta=d)))
    for key in DEMOGRAPHIC_KEYS:
        specs.append((
            f"demo_{key}",
            lambda d, w, key=key: DemographicMatch(attribute=DemographicAttribute(key), delta=d),
        ))
    for key in PEPTIDE_CLASS_KEYS:
        specs.append((f"pep_{key}", lambda d, w, key=key: Synergy(peptide_class=key, delta=d)))
    for key in BLOODWORK_KEYS:
        specs.append((
            f"bw_{key}",
            lambda d, w, key=key: BloodworkTrigger(marker=key, delta=d, warning=key in w),
        ))
    for key in SYNERGY_KEYS:
        specs.append((f"syn_{key}", lambda d, w, key=key: Synergy(compound=key, delta=d)))
    return specs


COLUMN_SPECS = _column_specs()
CSV_HEADERS = BASE_COLUMNS + [col for col, _ in COLUMN_SPECS] + [WARNINGS_COLUMN]


# ============================================================
# PARSING
# ============================================================

def parse_numeric(value: Optional[str]) -> Optional[float]:
    """Float or None for empty / NaN / non-numeric cells."""
    if value is None or not value.strip():
        return None
    try:
        number = float(value.strip())
    except ValueError:
        return None
    return None if number != number else number


def parse_tier(value: str) -> str:
    normalized = (value or "").strip().lower()
    if normalized in ("essential", "specialist"):
        return normalized
    return "optimizer"


def parse_evidence(value: str) -> str:
    normalized = (value or "").strip().lower()
    if normalized in ("strong", "stark"):
        return "stark"
    if normalized in ("anecdotal", "anekdotisch"):
        return "anekdotisch"
    return "moderat"


def parse_warning_markers(value: Optional[str]) -> set:
    if not value:
        return set()
    return {m.strip().lower() for m in value.split(";") if m.strip()}


def row_to_matrix(row: Dict[str, str]) -> RelevanceMatrix:
    """
    Build a RelevanceMatrix from one CSV row.

    Known columns come first in header order; unknown `bw_*`, `syn_*`
    and `pep_*` columns are accepted as extra markers / compounds / classes.
    """
    warning_markers = parse_warning_markers(row.get(WARNINGS_COLUMN))
    modifiers = []
    known = set()

    for column, factory in COLUMN_SPECS:
        known.add(column)
        delta = parse_numeric(row.get(column))
        if delta:
            modifiers.append(factory(delta, warning_markers))

    for column, value in row.items():
        if column in known or column is None:
            continue
        delta = parse_numeric(value)
        if not delta:
            continue
        if column.startswith("bw_"):
            marker = column[3:]
            modifiers.append(BloodworkTrigger(marker=marker, delta=delta, warning=marker in warning_markers))
        elif column.startswith("syn_"):
            modifiers.append(Synergy(compound=column[4:], delta=delta))
        elif column.startswith("pep_"):
            modifiers.append(Synergy(peptide_class=column[4:], delta=delta))

    return RelevanceMatrix(modifiers=modifiers)


def read_csv_rows(content: str) -> List[Dict[str, str]]:
    """Rows as dicts, comment and blank lines removed, rows without a name dropped."""
    lines = [
        line for line in content.splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    ]
    if len(lines) < 2:
        return []

    reader = csv.DictReader(io.StringIO("\n".join(lines)), skipinitialspace=True)
    reader.fieldnames = [h.strip() for h in reader.fieldnames or []]

    rows = []
    for raw in reader:
        row = {
            (k.strip() if k else k): (v.strip() if isinstance(v, str) else "")
            for k, v in raw.items()
        }
        if row.get("name"):
            rows.append(row)
    return rows


def parse_matrix_csv(content: str) -> MatrixCSVParseResult:
    """
    Parse a matrix CSV into catalog entries.

    Never raises: per-row failures are collected in `errors`.
    """
    result = MatrixCSVParseResult()

    try:
        rows = read_csv_rows(content or "")
    except csv.Error as e:
        result.errors.append(f"CSV parse error: {e}")
        return result

    for row in rows:
        try:
            impact = parse_numeric(row.get("impact_score"))
            phase = parse_numeric(row.get("protocol_phase"))
            entry = CatalogSupplement(
                name=row["name"],
                category=row.get("category") or "Sonstige",
                impact_score=5.0 if impact is None else impact,
                necessity_tier=parse_tier(row.get("necessity_tier", "")),
                evidence_level=parse_evidence(row.get("evidence_level", "")),
                protocol_phase=0 if phase is None else int(phase),
                relevance_matrix=row_to_matrix(row),
            )
        except (ValidationError, ValueError, OverflowError) as e:
            logger.warning(f"Skipping matrix row '{row.get('name')}': {e}")
            result.errors.append(f"Row \"{row.get('name')}\": {e}")
            continue

        result.entries.append(entry)
        stats = result.stats
        stats.total += 1
        stats.modifiers += len(entry.relevance_matrix.modifiers)
        if entry.necessity_tier == "essential":
            stats.essential += 1
        elif entry.necessity_tier == "specialist":
            stats.specialist += 1
        else:
            stats.optimizer += 1
        if entry.evidence_level == "stark":
            stats.strong_evidence += 1
        else:
            stats.moderate_evidence += 1

    result.import_hash = canonicalize_and_hash(
        [e.model_dump(mode="json") for e in result.entries]
    )
    return result


# ============================================================
# EXPORT
# ============================================================

def modifier_column(modifier) -> str:
    """CSV column a modifier flattens into."""
    kind = modifier.kind
    if kind == "goal":
        return f"goal_{modifier.goal.value}"
    if kind == "demographic":
        return f"demo_{modifier.attribute.value}"
    if kind == "protocol_mode":
        mode = modifier.mode
        if mode.value.startswith("phase_"):
            return mode.value
        if mode in (ProtocolMode.IN_DEFICIT, ProtocolMode.IN_SURPLUS):
            return f"cal_{mode.value}"
        return f"ctx_{mode.value}"
    if kind == "bloodwork":
        return f"bw_{modifier.marker}"
    if modifier.peptide_class is not None:
        return f"pep_{modifier.peptide_class}"
    return f"syn_{modifier.compound}"


def _format_number(value) -> str:
    if value is None:
        return ""
    return f"{value:g}"


def flatten_entry(entry: CatalogSupplement) -> Dict[str, str]:
    """One CSV row; deltas for the same column are summed."""
    row: Dict[str, str] = {
        "name": entry.name,
        "category": entry.category or "",
        "impact_score": _format_number(entry.impact_score),
        "necessity_tier": entry.necessity_tier,
        "evidence_level": entry.evidence_level,
        "protocol_phase": str(entry.protocol_phase),
    }
    sums: Dict[str, float] = {}
    warning_markers: List[str] = []
    matrix = entry.relevance_matrix or RelevanceMatrix()
    for modifier in matrix.modifiers:
        column = modifier_column(modifier)
        sums[column] = sums.get(column, 0.0) + modifier.delta
        if modifier.kind == "bloodwork" and modifier.warning and modifier.marker not in warning_markers:
            warning_markers.append(modifier.marker)

    for column, total in sums.items():
        row[column] = _format_number(total)
    row[WARNINGS_COLUMN] = ";".join(warning_markers)
    return row


def export_matrix_csv(entries: List[CatalogSupplement]) -> str:
    """
    Flatten entries into CSV text.

    Column order is fixed; modifier columns outside the fixed layout
    go before `warnings` in first-seen order. Labels do not round-trip.
    """
    rows = [flatten_entry(e) for e in entries]

    headers = list(CSV_HEADERS)
    for row in rows:
        for column in row:
            if column not in headers:
                headers.insert(len(headers) - 1, column)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=headers, restval="", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()

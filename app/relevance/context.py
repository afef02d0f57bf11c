"""
User Relevance Context Projection

Derives a UserRelevanceContext from raw record-store rows:
- profiles            (protocol_mode, goal_type, age, gender, weight, target_weight)
- user_protocol_status (current_phase)
- peptide_protocols   (peptides[], is_active)
- user_bloodwork      (latest panel, marker columns)
- daily_goals         (calorie_deficit, goal_type)

The context is a read-time projection. Nothing here is persisted and
nothing raises on partial or malformed rows.

Version: relevance_scoring_v1
"""

import logging
import os
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import Goal, UserRelevanceContext

logger = logging.getLogger(__name__)


GLP1_AGENTS = ("semaglutide", "tirzepatide", "retatrutide", "liraglutide", "dulaglutide", "cagrilintide")

TRT_AGENTS = ("testosterone", "testosteron", "enanthate", "cypionate", "propionate", "undecanoate", "sustanon")

# Compound name fragment -> peptide class
PEPTIDE_CLASSES: Dict[str, str] = {
    "cjc": "gh_secretagogue",
    "ipamorelin": "gh_secretagogue",
    "tesamorelin": "gh_secretagogue",
    "sermorelin": "gh_secretagogue",
    "ghrp": "gh_secretagogue",
    "mk-677": "gh_secretagogue",
    "bpc": "healing",
    "tb-500": "healing",
    "tb500": "healing",
    "ghk": "skin",
    "epitalon": "longevity",
    "mots-c": "longevity",
    "ss-31": "longevity",
    "semax": "nootropic",
    "selank": "nootropic",
    "dihexa": "nootropic",
    "thymosin alpha": "immune",
    "kpv": "immune",
    "ll-37": "immune",
    "aod": "metabolic",
    "5-amino-1mq": "metabolic",
    "semaglutide": "metabolic",
    "tirzepatide": "metabolic",
    "retatrutide": "metabolic",
    "kisspeptin": "testo",
    "gonadorelin": "testo",
    "hcg": "testo",
    "melanotan": "skin",
}

# (column, comparison, threshold, flag). Missing, zero and non-numeric never flag.
BLOODWORK_RULES: List[Tuple[str, str, float, str]] = [
    # Hormones
    ("cortisol", ">", 25, "cortisol_high"),
    ("total_testosterone", "<", 300, "testosterone_low"),
    ("dhea_s", "<", 100, "dhea_low"),
    # Lipids
    ("hdl", "<", 40, "hdl_low"),
    ("ldl", ">", 130, "ldl_high"),
    ("triglycerides", ">", 150, "triglycerides_high"),
    ("apob", ">", 100, "apob_high"),
    # Vitamins / minerals
    ("vitamin_d", "<", 30, "vitamin_d_low"),
    ("vitamin_b12", "<", 400, "b12_low"),
    ("magnesium", "<", 0.85, "magnesium_low"),
    ("ferritin", ">", 300, "ferritin_high"),
    ("ferritin", "<", 30, "low_ferritin"),
    ("iron", "<", 60, "iron_low"),
    # Metabolic
    ("fasting_glucose", ">", 100, "glucose_high"),
    ("hba1c", ">", 5.7, "hba1c_elevated"),
    ("insulin", ">", 10, "insulin_high"),
    ("homa_ir", ">", 2.5, "insulin_resistant"),
    # Inflammation
    ("hs_crp", ">", 1, "inflammation_high"),
    ("homocysteine", ">", 10, "homocysteine_high"),
    # Thyroid
    ("tsh", ">", 4, "thyroid_slow"),
    ("tsh", "<", 0.5, "thyroid_overactive"),
]

CALORIE_DEFICIT_THRESHOLD = 200  # kcal/day
WEIGHT_DIFF_THRESHOLD = 2  # kg


def bloodwork_max_age_days() -> int:
    try:
        return int(os.getenv("BLOODWORK_MAX_AGE_DAYS", "90"))
    except ValueError:
        logger.warning("Invalid BLOODWORK_MAX_AGE_DAYS, using 90")
        return 90


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def generate_bloodwork_flags(bloodwork: Optional[Dict[str, Any]]) -> List[str]:
    """
    Derive marker flags from a single bloodwork panel row.

    Returns:
        Flags in rule order, without duplicates
    """
    if not bloodwork:
        return []

    flags: List[str] = []
    for column, op, threshold, flag in BLOODWORK_RULES:
        value = _as_number(bloodwork.get(column))
        if not value:
            continue
        hit = value > threshold if op == ">" else value < threshold
        if hit and flag not in flags:
            flags.append(flag)
    return flags


def is_bloodwork_recent(
    bloodwork: Optional[Dict[str, Any]],
    today: Optional[date] = None,
    max_age_days: Optional[int] = None,
) -> bool:
    """Panels without a parseable test_date are treated as current."""
    if not bloodwork:
        return False
    test_date = _as_date(bloodwork.get("test_date"))
    if test_date is None:
        return True
    today = today or date.today()
    limit = bloodwork_max_age_days() if max_age_days is None else max_age_days
    return (today - test_date).days <= limit


def determine_calorie_status(
    current_weight: Any,
    target_weight: Any,
    calorie_deficit: Any,
) -> str:
    """
    'deficit', 'surplus' or 'maintenance'.

    The explicit daily-goal deficit wins; weight vs target is the fallback.
    """
    deficit = _as_number(calorie_deficit)
    if deficit is not None:
        if deficit > CALORIE_DEFICIT_THRESHOLD:
            return "deficit"
        if deficit < -CALORIE_DEFICIT_THRESHOLD:
            return "surplus"
        return "maintenance"

    current = _as_number(current_weight)
    target = _as_number(target_weight)
    if current and target:
        diff = current - target
        if diff > WEIGHT_DIFF_THRESHOLD:
            return "deficit"
        if diff < -WEIGHT_DIFF_THRESHOLD:
            return "surplus"

    return "maintenance"


def extract_active_peptides(peptide_protocols: Optional[Iterable[Dict[str, Any]]]) -> List[str]:
    names: List[str] = []
    for protocol in peptide_protocols or []:
        if not isinstance(protocol, dict) or protocol.get("is_active") is False:
            continue
        peptides = protocol.get("peptides")
        if not isinstance(peptides, list):
            continue
        for pep in peptides:
            name = pep.get("name") if isinstance(pep, dict) else None
            if name:
                names.append(str(name).strip().lower())
    return names


def get_peptide_classes(peptide_names: Iterable[str]) -> List[str]:
    classes: List[str] = []
    for name in peptide_names:
        for fragment, peptide_class in PEPTIDE_CLASSES.items():
            if fragment in name and peptide_class not in classes:
                classes.append(peptide_class)
    return classes


def parse_protocol_modes(raw: Any) -> List[str]:
    """'natural, Enhanced' -> ['natural', 'enhanced']; default ['natural']"""
    if not raw or not isinstance(raw, str):
        return ["natural"]
    modes = [m.strip().lower() for m in raw.split(",") if m.strip()]
    return modes or ["natural"]


def _resolve_goal(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if candidate:
            normalized = str(candidate).strip().lower()
            return normalized if normalized in Goal._value2member_map_ else None
    return Goal.MAINTENANCE.value


def build_user_context(
    profile: Optional[Dict[str, Any]] = None,
    bloodwork: Optional[Dict[str, Any]] = None,
    peptide_protocols: Optional[List[Dict[str, Any]]] = None,
    protocol_status: Optional[Dict[str, Any]] = None,
    daily_goals: Optional[Dict[str, Any]] = None,
    today: Optional[date] = None,
) -> UserRelevanceContext:
    """
    Project raw records into a UserRelevanceContext.

    Args:
        profile: profiles row
        bloodwork: latest user_bloodwork row (stale panels are ignored)
        peptide_protocols: peptide_protocols rows
        protocol_status: user_protocol_status row
        daily_goals: daily_goals row
        today: reference date for bloodwork staleness

    Returns:
        UserRelevanceContext
    """
    profile = profile or {}
    protocol_status = protocol_status or {}
    daily_goals = daily_goals or {}

    modes = parse_protocol_modes(profile.get("protocol_mode"))
    active_peptides = extract_active_peptides(peptide_protocols)

    is_on_trt = "clinical" in modes or any(
        agent in p for p in active_peptides for agent in TRT_AGENTS
    )
    is_on_glp1 = any(agent in p for p in active_peptides for agent in GLP1_AGENTS)
    has_active_peptides = len(active_peptides) > 0

    if bloodwork and not is_bloodwork_recent(bloodwork, today):
        logger.debug("Ignoring stale bloodwork panel from %s", bloodwork.get("test_date"))
        bloodwork = None
    bloodwork_flags = generate_bloodwork_flags(bloodwork)

    phase = _as_number(protocol_status.get("current_phase"))
    phase = int(phase) if phase is not None and 0 <= phase <= 3 else 0

    calorie_status = determine_calorie_status(
        profile.get("weight"),
        profile.get("target_weight"),
        daily_goals.get("calorie_deficit"),
    )

    age = _as_number(profile.get("age"))
    age = int(age) if age is not None and 0 < age <= 120 else None
    gender = profile.get("gender")
    goal = _resolve_goal(profile.get("goal_type"), daily_goals.get("goal_type"))

    missing: List[str] = []
    if age is None:
        missing.append("age")
    if not gender:
        missing.append("gender")
    if not profile.get("weight"):
        missing.append("weight")
    if not profile.get("goal_type") and not daily_goals.get("goal_type"):
        missing.append("goal")

    has_basic_profile = bool(
        age is not None
        and (profile.get("goal_type") or daily_goals.get("goal_type"))
        and profile.get("weight")
    )
    if bloodwork_flags:
        completeness = "full"
    elif has_basic_profile:
        completeness = "basic"
    else:
        completeness = "minimal"

    return UserRelevanceContext(
        goal=goal,
        age=age,
        sex=gender,
        is_on_trt=is_on_trt,
        is_true_natural="natural" in modes and not has_active_peptides and not is_on_trt,
        is_enhanced_no_trt=has_active_peptides and not is_on_trt,
        is_on_glp1=is_on_glp1,
        is_in_deficit=calorie_status == "deficit",
        is_in_surplus=calorie_status == "surplus",
        phase=phase,
        bloodwork_flags=bloodwork_flags,
        active_peptides=active_peptides,
        active_peptide_classes=get_peptide_classes(active_peptides),
        profile_completeness=completeness,
        missing_profile_fields=missing,
    )


def summarize_context(context: Optional[UserRelevanceContext]) -> str:
    """Short label for UI headers, e.g. 'TRT + GLP-1 · Phase 2 · Defizit'."""
    if context is None:
        return "Kein Kontext"

    parts: List[str] = []
    if context.is_true_natural:
        parts.append("Natural")
    elif context.is_on_trt:
        parts.append("TRT + GLP-1" if context.is_on_glp1 else "TRT")
    elif context.is_enhanced_no_trt:
        parts.append("Peptide (GLP-1)" if context.is_on_glp1 else "Peptide")

    if context.phase is not None:
        parts.append(f"Phase {context.phase}")

    if context.is_in_deficit:
        parts.append("Defizit")
    elif context.is_in_surplus:
        parts.append("Aufbau")

    if context.active_peptide_classes:
        parts.append(f"{len(context.active_peptide_classes)} Peptid-Klassen")
    if context.bloodwork_flags:
        parts.append(f"{len(context.bloodwork_flags)} Blutwert-Trigger")

    return " · ".join(parts)

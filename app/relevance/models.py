"""
Relevance Scoring Models

Pydantic models for personalized supplement relevance scoring:
- UserRelevanceContext: read-time projection of the user's state
- RelevanceMatrix: per-supplement modifiers, one tagged variant per category
- ScoreReason / RelevanceScoreResult: scorer output
- ScoringConfig: thresholds and category order, passed into the scorer

Version: relevance_scoring_v1
"""

import logging
import math
import re
from enum import Enum
from typing import Annotated, List, Optional, Literal, Union, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


# ============================================================
# ENUMS
# ============================================================

class Goal(str, Enum):
    """Primary user goal."""
    MUSCLE_GAIN = "muscle_gain"
    FAT_LOSS = "fat_loss"
    LONGEVITY = "longevity"
    PERFORMANCE = "performance"
    GENERAL_HEALTH = "general_health"
    RECOMPOSITION = "recomposition"
    MAINTENANCE = "maintenance"
    COGNITIVE = "cognitive"
    SLEEP = "sleep"
    GUT_HEALTH = "gut_health"


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"


class DemographicAttribute(str, Enum):
    AGE_OVER_40 = "age_over_40"
    AGE_OVER_50 = "age_over_50"
    AGE_OVER_60 = "age_over_60"
    IS_MALE = "is_male"
    IS_FEMALE = "is_female"


class ProtocolMode(str, Enum):
    """Protocol-mode conditions, including calorie status and protocol phase."""
    TRUE_NATURAL = "true_natural"
    ENHANCED_NO_TRT = "enhanced_no_trt"
    ON_TRT = "on_trt"
    ON_GLP1 = "on_glp1"
    IN_DEFICIT = "in_deficit"
    IN_SURPLUS = "in_surplus"
    PHASE_0 = "phase_0"
    PHASE_1 = "phase_1"
    PHASE_2 = "phase_2"
    PHASE_3 = "phase_3"


class ModifierCategory(str, Enum):
    GOAL = "goal"
    DEMOGRAPHIC = "demographic"
    PROTOCOL_MODE = "protocol_mode"
    BLOODWORK = "bloodwork"
    SYNERGY = "synergy"


class Polarity(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class Tier(str, Enum):
    """Coarse bucket derived from the final score."""
    ESSENTIAL = "essential"
    OPTIMIZER = "optimizer"
    NICHE = "niche"


DEFAULT_CATEGORY_ORDER: Tuple[ModifierCategory, ...] = (
    ModifierCategory.GOAL,
    ModifierCategory.DEMOGRAPHIC,
    ModifierCategory.PROTOCOL_MODE,
    ModifierCategory.BLOODWORK,
    ModifierCategory.SYNERGY,
)


# ============================================================
# DEFAULT LABELS (user-facing copy)
# ============================================================

GOAL_LABELS = {
    Goal.FAT_LOSS: "Ziel: Fettverlust",
    Goal.MUSCLE_GAIN: "Ziel: Muskelaufbau",
    Goal.RECOMPOSITION: "Ziel: Rekomposition",
    Goal.MAINTENANCE: "Ziel: Erhalt",
    Goal.LONGEVITY: "Ziel: Longevity",
    Goal.PERFORMANCE: "Ziel: Performance",
    Goal.COGNITIVE: "Ziel: Kognition",
    Goal.SLEEP: "Ziel: Schlaf",
    Goal.GUT_HEALTH: "Ziel: Darmgesundheit",
    Goal.GENERAL_HEALTH: "Ziel: Allgemeine Gesundheit",
}

DEMOGRAPHIC_LABELS = {
    DemographicAttribute.AGE_OVER_40: "Alter 40+",
    DemographicAttribute.AGE_OVER_50: "Alter 50+",
    DemographicAttribute.AGE_OVER_60: "Alter 60+",
    DemographicAttribute.IS_MALE: "Männlich",
    DemographicAttribute.IS_FEMALE: "Weiblich",
}

PROTOCOL_MODE_LABELS = {
    ProtocolMode.TRUE_NATURAL: "Natural",
    ProtocolMode.ENHANCED_NO_TRT: "Peptide ohne TRT",
    ProtocolMode.ON_TRT: "TRT",
    ProtocolMode.ON_GLP1: "GLP-1",
    ProtocolMode.IN_DEFICIT: "Kaloriendefizit",
    ProtocolMode.IN_SURPLUS: "Kalorienüberschuss",
    ProtocolMode.PHASE_0: "Phase 0",
    ProtocolMode.PHASE_1: "Phase 1",
    ProtocolMode.PHASE_2: "Phase 2",
    ProtocolMode.PHASE_3: "Phase 3",
}


def normalize_compound(name: str) -> str:
    """'BPC-157' -> 'bpc_157'"""
    return re.sub(r"[\s\-]+", "_", name.strip().lower())


# ============================================================
# USER CONTEXT
# ============================================================

class UserRelevanceContext(BaseModel):
    """
    Snapshot of the user's state used to personalize scoring.

    Every field is optional. An absent field simply means no modifier
    keyed on it can match. Derived fresh per request, never persisted.
    """
    goal: Optional[Goal] = None
    age: Optional[int] = Field(default=None, ge=0, le=120)
    sex: Optional[Sex] = None

    is_on_trt: Optional[bool] = None
    is_true_natural: Optional[bool] = None
    is_enhanced_no_trt: Optional[bool] = None
    is_on_glp1: Optional[bool] = None
    is_in_deficit: Optional[bool] = None
    is_in_surplus: Optional[bool] = None
    phase: Optional[int] = Field(default=None, ge=0, le=3)

    bloodwork_flags: List[str] = Field(
        default_factory=list,
        description="Marker flags out of range e.g. ['vitamin_d_low', 'low_ferritin']"
    )
    active_peptides: List[str] = Field(
        default_factory=list,
        description="Lower-cased active compound names e.g. ['bpc-157']"
    )
    active_peptide_classes: List[str] = Field(default_factory=list)

    profile_completeness: Optional[Literal["full", "basic", "minimal"]] = None
    missing_profile_fields: List[str] = Field(default_factory=list)

    class Config:
        extra = "ignore"

    @field_validator("goal", mode="before")
    @classmethod
    def _coerce_goal(cls, value):
        if value is None or isinstance(value, Goal):
            return value
        normalized = str(value).strip().lower()
        if normalized not in Goal._value2member_map_:
            logger.debug(f"Dropping unknown goal '{value}' from relevance context")
            return None
        return normalized

    @field_validator("sex", mode="before")
    @classmethod
    def _coerce_sex(cls, value):
        if value is None or isinstance(value, Sex):
            return value
        normalized = str(value).strip().lower()
        return normalized if normalized in Sex._value2member_map_ else None

    @field_validator("bloodwork_flags", "active_peptides", "active_peptide_classes", mode="before")
    @classmethod
    def _lowercase_names(cls, value):
        if value is None:
            return []
        return [str(v).strip().lower() for v in value if v]


# ============================================================
# RELEVANCE MATRIX (tagged modifier variants)
# ============================================================

class _Modifier(BaseModel):
    delta: float = Field(allow_inf_nan=False, description="Signed score delta")
    label: Optional[str] = Field(
        default=None,
        description="Explanatory label; a default label is used when absent"
    )

    class Config:
        extra = "forbid"
        frozen = True

    @property
    def category(self) -> ModifierCategory:
        return ModifierCategory(self.kind)

    def display_label(self) -> str:
        return self.label or self.default_label()


class GoalMatch(_Modifier):
    kind: Literal["goal"] = "goal"
    goal: Goal

    def matches(self, context: UserRelevanceContext) -> bool:
        return context.goal == self.goal

    def default_label(self) -> str:
        return GOAL_LABELS[self.goal]


class DemographicMatch(_Modifier):
    kind: Literal["demographic"] = "demographic"
    attribute: DemographicAttribute

    def matches(self, context: UserRelevanceContext) -> bool:
        attr = self.attribute
        if attr == DemographicAttribute.IS_MALE:
            return context.sex == Sex.MALE
        if attr == DemographicAttribute.IS_FEMALE:
            return context.sex == Sex.FEMALE
        if context.age is None:
            return False
        min_age = {
            DemographicAttribute.AGE_OVER_40: 40,
            DemographicAttribute.AGE_OVER_50: 50,
            DemographicAttribute.AGE_OVER_60: 60,
        }[attr]
        return context.age >= min_age

    def default_label(self) -> str:
        return DEMOGRAPHIC_LABELS[self.attribute]


class ProtocolModeMatch(_Modifier):
    kind: Literal["protocol_mode"] = "protocol_mode"
    mode: ProtocolMode

    def matches(self, context: UserRelevanceContext) -> bool:
        mode = self.mode
        if mode.value.startswith("phase_"):
            return context.phase is not None and context.phase == int(mode.value[-1])
        flag = {
            ProtocolMode.TRUE_NATURAL: context.is_true_natural,
            ProtocolMode.ENHANCED_NO_TRT: context.is_enhanced_no_trt,
            ProtocolMode.ON_TRT: context.is_on_trt,
            ProtocolMode.ON_GLP1: context.is_on_glp1,
            ProtocolMode.IN_DEFICIT: context.is_in_deficit,
            ProtocolMode.IN_SURPLUS: context.is_in_surplus,
        }[mode]
        return flag is True

    def default_label(self) -> str:
        return PROTOCOL_MODE_LABELS[self.mode]


class BloodworkTrigger(_Modifier):
    kind: Literal["bloodwork"] = "bloodwork"
    marker: str = Field(description="Bloodwork flag e.g. 'low_ferritin'")
    warning: bool = Field(
        default=False,
        description="Emit a warning when this trigger matches"
    )
    warning_text: Optional[str] = None

    @field_validator("marker")
    @classmethod
    def _normalize_marker(cls, value: str) -> str:
        return value.strip().lower()

    def matches(self, context: UserRelevanceContext) -> bool:
        return self.marker in context.bloodwork_flags

    def default_label(self) -> str:
        return f"Blutwert: {self.marker}"

    def warning_message(self) -> str:
        return self.warning_text or f"Warnung: {self.display_label()}"


class Synergy(_Modifier):
    """Synergy with a named compound or with a peptide class."""
    kind: Literal["synergy"] = "synergy"
    compound: Optional[str] = None
    peptide_class: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_target(self):
        if (self.compound is None) == (self.peptide_class is None):
            raise ValueError("Synergy needs exactly one of 'compound' or 'peptide_class'")
        return self

    def matches(self, context: UserRelevanceContext) -> bool:
        if self.peptide_class is not None:
            return self.peptide_class.strip().lower() in context.active_peptide_classes
        target = normalize_compound(self.compound)
        return any(target in normalize_compound(p) for p in context.active_peptides)

    def default_label(self) -> str:
        if self.peptide_class is not None:
            return f"Peptid-Klasse: {self.peptide_class}"
        return f"Synergie: {self.compound}"


Modifier = Annotated[
    Union[GoalMatch, DemographicMatch, ProtocolModeMatch, BloodworkTrigger, Synergy],
    Field(discriminator="kind"),
]


class RelevanceMatrix(BaseModel):
    """
    Per-supplement conditional score modifiers.

    Authored once in reference data; immutable at scoring time.
    """
    modifiers: List[Modifier] = Field(default_factory=list)

    class Config:
        extra = "forbid"
        frozen = True

    def of_category(self, category: ModifierCategory) -> List[_Modifier]:
        """Modifiers of one category, in authored order."""
        return [m for m in self.modifiers if m.kind == category.value]

    def is_empty(self) -> bool:
        return not self.modifiers


# ============================================================
# SCORER OUTPUT
# ============================================================

class ScoreReason(BaseModel):
    """One applied modifier, with explicit polarity."""
    category: ModifierCategory
    label: str
    delta: float
    polarity: Polarity
    text: str = Field(description="'<label>: +X.X' or '<label>: -X.X'")

    class Config:
        extra = "forbid"
        frozen = True


class RelevanceScoreResult(BaseModel):
    """Personalized score for one supplement. Never mutated after construction."""
    base_score: float = Field(ge=0.0, le=10.0)
    final_score: float = Field(ge=0.0, le=10.0)
    reasons: List[ScoreReason] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    is_personalized: bool = False
    is_limited_by_missing_data: bool = Field(
        default=False,
        description="Missing profile or bloodwork data may have kept modifiers from matching"
    )
    tier: Tier

    class Config:
        extra = "forbid"
        frozen = True

    @property
    def reason_texts(self) -> List[str]:
        return [r.text for r in self.reasons]


# ============================================================
# CONFIGURATION
# ============================================================

class ScoringConfig(BaseModel):
    """
    Thresholds and evaluation order for the scorer.

    Tier lower bounds are inclusive: a score equal to a threshold
    resolves to the higher tier.
    """
    essential_threshold: float = 7.5
    optimizer_threshold: float = 5.0
    min_score: float = 0.0
    max_score: float = 10.0
    default_base_score: float = 5.0
    category_order: Tuple[ModifierCategory, ...] = DEFAULT_CATEGORY_ORDER

    class Config:
        extra = "forbid"
        frozen = True

    @model_validator(mode="after")
    def _validate_ranges(self):
        values = (
            self.essential_threshold,
            self.optimizer_threshold,
            self.min_score,
            self.max_score,
            self.default_base_score,
        )
        if not all(math.isfinite(v) for v in values):
            raise ValueError("Scoring config values must be finite")
        if not self.min_score < self.max_score:
            raise ValueError("min_score must be below max_score")
        if not self.min_score <= self.optimizer_threshold <= self.essential_threshold <= self.max_score:
            raise ValueError(
                "Thresholds must satisfy min_score <= optimizer <= essential <= max_score"
            )
        if not self.min_score <= self.default_base_score <= self.max_score:
            raise ValueError("default_base_score must lie inside the score range")
        if sorted(c.value for c in self.category_order) != sorted(c.value for c in ModifierCategory):
            raise ValueError("category_order must list every category exactly once")
        return self


DEFAULT_SCORING_CONFIG = ScoringConfig()

"""
Relevance Context Projection Tests

Tests for deriving UserRelevanceContext from raw records.

Tests validate:
- Bloodwork flag thresholds and staleness
- Calorie status derivation
- TRT / GLP-1 / natural detection
- Goal fallback and profile completeness
- Record loader query flow (fake cursor)
- Context -> score end-to-end

Version: relevance_scoring_v1
"""

from datetime import date

import pytest

from app.relevance.context import (
    build_user_context,
    determine_calorie_status,
    generate_bloodwork_flags,
    get_peptide_classes,
    is_bloodwork_recent,
    parse_protocol_modes,
    summarize_context,
)
from app.relevance.models import (
    BloodworkTrigger,
    Goal,
    GoalMatch,
    ProtocolModeMatch,
    RelevanceMatrix,
    Sex,
    Tier,
    UserRelevanceContext,
)
from app.relevance.repository import load_user_records
from app.relevance.score import calculate_relevance_score


TODAY = date(2025, 6, 1)


# ============================================================================
# Bloodwork Flags
# ============================================================================

class TestBloodworkFlags:

    def test_flags_in_rule_order(self):
        panel = {"vitamin_d": 22, "ferritin": 20, "tsh": 0.3}
        assert generate_bloodwork_flags(panel) == [
            "vitamin_d_low",
            "low_ferritin",
            "thyroid_overactive",
        ]

    def test_high_markers(self):
        panel = {"cortisol": 30, "ldl": 160, "hs_crp": 2.4, "homa_ir": 3.1, "ferritin": 420}
        flags = generate_bloodwork_flags(panel)

        assert "cortisol_high" in flags
        assert "ldl_high" in flags
        assert "inflammation_high" in flags
        assert "insulin_resistant" in flags
        assert "ferritin_high" in flags
        assert "low_ferritin" not in flags

    def test_missing_zero_and_garbage_never_flag(self):
        panel = {"vitamin_d": 0, "ferritin": None, "hdl": "n/a", "magnesium": True}
        assert generate_bloodwork_flags(panel) == []

    def test_numeric_strings_accepted(self):
        assert generate_bloodwork_flags({"vitamin_b12": "350"}) == ["b12_low"]

    def test_no_panel(self):
        assert generate_bloodwork_flags(None) == []
        assert generate_bloodwork_flags({}) == []

    def test_values_on_threshold_do_not_flag(self):
        assert generate_bloodwork_flags({"vitamin_d": 30, "ldl": 130}) == []

    def test_recent_panel(self):
        assert is_bloodwork_recent({"test_date": "2025-05-01"}, today=TODAY) is True
        assert is_bloodwork_recent({"test_date": "2025-01-01"}, today=TODAY) is False

    def test_panel_without_date_is_recent(self):
        assert is_bloodwork_recent({"vitamin_d": 20}, today=TODAY) is True

    def test_max_age_from_env(self, monkeypatch):
        monkeypatch.setenv("BLOODWORK_MAX_AGE_DAYS", "365")
        assert is_bloodwork_recent({"test_date": "2025-01-01"}, today=TODAY) is True


# ============================================================================
# Calorie Status
# ============================================================================

class TestCalorieStatus:

    @pytest.mark.parametrize("deficit,expected", [
        (300, "deficit"),
        (-300, "surplus"),
        (100, "maintenance"),
        (200, "maintenance"),
    ])
    def test_explicit_deficit(self, deficit, expected):
        assert determine_calorie_status(None, None, deficit) == expected

    def test_weight_fallback(self):
        assert determine_calorie_status(90, 80, None) == "deficit"
        assert determine_calorie_status(70, 80, None) == "surplus"
        assert determine_calorie_status(80, 81, None) == "maintenance"

    def test_explicit_deficit_wins(self):
        assert determine_calorie_status(70, 80, 300) == "deficit"

    def test_nothing_known(self):
        assert determine_calorie_status(None, None, None) == "maintenance"


# ============================================================================
# Context Building
# ============================================================================

class TestBuildUserContext:

    def test_empty_records(self):
        context = build_user_context(today=TODAY)

        assert context.is_true_natural is True
        assert context.is_on_trt is False
        assert context.goal == Goal.MAINTENANCE
        assert context.phase == 0
        assert context.profile_completeness == "minimal"
        assert context.missing_profile_fields == ["age", "gender", "weight", "goal"]

    def test_natural_profile(self):
        profile = {
            "protocol_mode": "natural",
            "goal_type": "fat_loss",
            "age": 45,
            "gender": "male",
            "weight": 90,
            "target_weight": 82,
        }
        context = build_user_context(profile=profile, today=TODAY)

        assert context.goal == Goal.FAT_LOSS
        assert context.sex == Sex.MALE
        assert context.age == 45
        assert context.is_true_natural is True
        assert context.is_in_deficit is True
        assert context.profile_completeness == "basic"
        assert context.missing_profile_fields == []

    def test_trt_via_clinical_mode(self):
        context = build_user_context(profile={"protocol_mode": "natural, Clinical"}, today=TODAY)

        assert context.is_on_trt is True
        assert context.is_true_natural is False
        assert context.is_enhanced_no_trt is False

    def test_trt_via_compound(self):
        protocols = [{"is_active": True, "peptides": [{"name": "Testosterone Enanthate", "dose": 125}]}]
        context = build_user_context(peptide_protocols=protocols, today=TODAY)

        assert context.is_on_trt is True
        assert context.is_enhanced_no_trt is False

    def test_glp1_peptides(self):
        protocols = [
            {"is_active": True, "peptides": [{"name": "Semaglutide"}, {"name": "BPC-157"}]},
        ]
        context = build_user_context(peptide_protocols=protocols, today=TODAY)

        assert context.is_on_glp1 is True
        assert context.is_enhanced_no_trt is True
        assert context.is_true_natural is False
        assert context.active_peptides == ["semaglutide", "bpc-157"]
        assert context.active_peptide_classes == ["metabolic", "healing"]

    def test_inactive_and_malformed_protocols_ignored(self):
        protocols = [
            {"is_active": False, "peptides": [{"name": "Tirzepatide"}]},
            {"is_active": True, "peptides": None},
            {"is_active": True, "peptides": [{"dose": 2}, "junk"]},
            "not-a-row",
        ]
        context = build_user_context(peptide_protocols=protocols, today=TODAY)

        assert context.active_peptides == []
        assert context.is_on_glp1 is False

    def test_stale_bloodwork_ignored(self):
        panel = {"test_date": "2025-01-01", "vitamin_d": 18}
        context = build_user_context(bloodwork=panel, today=TODAY)

        assert context.bloodwork_flags == []

    def test_recent_bloodwork_gives_full_completeness(self):
        panel = {"test_date": "2025-05-20", "vitamin_d": 18}
        context = build_user_context(bloodwork=panel, today=TODAY)

        assert context.bloodwork_flags == ["vitamin_d_low"]
        assert context.profile_completeness == "full"

    def test_goal_falls_back_to_daily_goals(self):
        context = build_user_context(
            profile={"age": 30},
            daily_goals={"goal_type": "muscle_gain", "calorie_deficit": -400},
            today=TODAY,
        )
        assert context.goal == Goal.MUSCLE_GAIN
        assert context.is_in_surplus is True
        assert "goal" not in context.missing_profile_fields

    def test_unknown_goal_dropped(self):
        context = build_user_context(profile={"goal_type": "bulking_season"}, today=TODAY)
        assert context.goal is None

    def test_phase_from_status(self):
        context = build_user_context(protocol_status={"current_phase": 2}, today=TODAY)
        assert context.phase == 2

    def test_out_of_range_phase_defaults_to_zero(self):
        context = build_user_context(protocol_status={"current_phase": 7}, today=TODAY)
        assert context.phase == 0


class TestHelpers:

    def test_parse_protocol_modes(self):
        assert parse_protocol_modes("Natural, enhanced") == ["natural", "enhanced"]
        assert parse_protocol_modes(None) == ["natural"]
        assert parse_protocol_modes(" , ") == ["natural"]

    def test_peptide_classes_deduplicated(self):
        assert get_peptide_classes(["cjc-1295", "ipamorelin"]) == ["gh_secretagogue"]


class TestSummarizeContext:

    def test_no_context(self):
        assert summarize_context(None) == "Kein Kontext"

    def test_trt_glp1_summary(self):
        context = UserRelevanceContext(
            is_on_trt=True,
            is_on_glp1=True,
            phase=2,
            is_in_deficit=True,
            active_peptide_classes=["metabolic"],
        )
        assert summarize_context(context) == "TRT + GLP-1 · Phase 2 · Defizit · 1 Peptid-Klassen"

    def test_natural_summary(self):
        context = UserRelevanceContext(
            is_true_natural=True,
            phase=0,
            bloodwork_flags=["vitamin_d_low", "hdl_low"],
        )
        assert summarize_context(context) == "Natural · Phase 0 · 2 Blutwert-Trigger"


# ============================================================================
# Record Loader
# ============================================================================

class FakeCursor:
    """Replays canned rows in query order."""

    def __init__(self, one_rows, all_rows):
        self.one_rows = list(one_rows)
        self.all_rows = list(all_rows)
        self.queries = []
        self.closed = False

    def execute(self, query, params=None):
        self.queries.append((" ".join(query.split()), params))

    def fetchone(self):
        return self.one_rows.pop(0)

    def fetchall(self):
        return self.all_rows.pop(0)

    def close(self):
        self.closed = True


class FakeConn:
    def __init__(self, cursor):
        self._cursor = cursor

    def cursor(self):
        return self._cursor


class TestLoadUserRecords:

    def test_collects_all_rows(self):
        cursor = FakeCursor(
            one_rows=[
                {"goal_type": "longevity", "age": 61},
                {"current_phase": 1},
                {"test_date": "2025-05-30", "homocysteine": 14},
                None,
            ],
            all_rows=[[{"peptides": [{"name": "Epitalon"}], "is_active": True}]],
        )
        records = load_user_records(FakeConn(cursor), "user-1", today=TODAY)

        assert records["profile"] == {"goal_type": "longevity", "age": 61}
        assert records["protocol_status"] == {"current_phase": 1}
        assert records["peptide_protocols"][0]["peptides"][0]["name"] == "Epitalon"
        assert records["bloodwork"]["homocysteine"] == 14
        assert records["daily_goals"] is None
        assert cursor.closed is True
        assert len(cursor.queries) == 5
        assert all(params[0] == "user-1" for _, params in cursor.queries)
        assert cursor.queries[3][1] == ("user-1", date(2025, 3, 3))

    def test_records_feed_context(self):
        cursor = FakeCursor(
            one_rows=[
                {"goal_type": "longevity", "age": 61},
                {"current_phase": 1},
                {"test_date": "2025-05-30", "homocysteine": 14},
                None,
            ],
            all_rows=[[{"peptides": [{"name": "Epitalon"}], "is_active": True}]],
        )
        records = load_user_records(FakeConn(cursor), "user-1", today=TODAY)
        context = build_user_context(**records, today=TODAY)

        assert context.goal == Goal.LONGEVITY
        assert context.bloodwork_flags == ["homocysteine_high"]
        assert context.active_peptide_classes == ["longevity"]
        assert context.phase == 1


# ============================================================================
# End-to-end: records -> context -> score
# ============================================================================

class TestContextToScore:

    def test_glp1_user_gets_lean_mass_boost(self):
        matrix = RelevanceMatrix(modifiers=[
            ProtocolModeMatch(mode="on_glp1", delta=2.0, label="GLP-1: Muskelschutz"),
            GoalMatch(goal="fat_loss", delta=1.0),
            BloodworkTrigger(marker="iron_low", delta=0.5, warning=True),
        ])
        context = build_user_context(
            profile={"goal_type": "fat_loss", "protocol_mode": "enhanced"},
            peptide_protocols=[{"is_active": True, "peptides": [{"name": "Tirzepatide"}]}],
            bloodwork={"test_date": "2025-05-15", "iron": 40},
            today=TODAY,
        )
        result = calculate_relevance_score(5.0, matrix, context)

        assert result.final_score == 8.5
        assert result.tier == Tier.ESSENTIAL
        assert result.reason_texts == [
            "Ziel: Fettverlust: +1.0",
            "GLP-1: Muskelschutz: +2.0",
            "Blutwert: iron_low: +0.5",
        ]
        assert len(result.warnings) == 1

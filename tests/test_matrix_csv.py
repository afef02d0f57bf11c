"""
Matrix CSV Import / Export Tests

Tests validate:
- Column prefixes map to the right modifier variants
- Comment / blank / nameless rows are skipped
- Invalid rows are collected as errors, not raised
- Import stats and deterministic import hash
- Export header order and re-import equality

Version: catalog_matrix_v1
"""

from app.catalog.matrix_csv import (
    CSV_HEADERS,
    export_matrix_csv,
    parse_evidence,
    parse_matrix_csv,
    parse_numeric,
    parse_tier,
    read_csv_rows,
)
from app.catalog.models import CatalogSupplement
from app.relevance.models import (
    BloodworkTrigger,
    DemographicMatch,
    GoalMatch,
    ProtocolModeMatch,
    RelevanceMatrix,
    Synergy,
    Tier,
    UserRelevanceContext,
)
from app.relevance.score import calculate_relevance_score


SAMPLE_CSV = """# ARES matrix export
name,category,impact_score,necessity_tier,evidence_level,protocol_phase,goal_fat_loss,ctx_on_glp1,bw_vitamin_d_low,syn_retatrutide,demo_age_over_40,pep_metabolic,cal_in_deficit,warnings
Vitamin D3,Vitamine,8.5,essential,strong,0,,,2.0,,0.5,,,vitamin_d_low

Magnesium Glycinat,Mineralien,6,optimizer,moderate,1,0.5,,,,,,0.5,
Whey Protein,Protein,5,specialist,anecdotal,0,1.0,2.0,,1.0,,1.0,0.5,
,Empty,,,,,,,,,,,,
"""


def parse_sample():
    return parse_matrix_csv(SAMPLE_CSV)


def entry_by_name(result, name):
    return next(e for e in result.entries if e.name == name)


# ============================================================================
# Cell Parsing
# ============================================================================

class TestCellParsing:

    def test_parse_numeric(self):
        assert parse_numeric("1.5") == 1.5
        assert parse_numeric(" -2 ") == -2.0
        assert parse_numeric("") is None
        assert parse_numeric(None) is None
        assert parse_numeric("abc") is None
        assert parse_numeric("nan") is None

    def test_parse_tier(self):
        assert parse_tier("Essential") == "essential"
        assert parse_tier("specialist") == "specialist"
        assert parse_tier("") == "optimizer"
        assert parse_tier("whatever") == "optimizer"

    def test_parse_evidence(self):
        assert parse_evidence("strong") == "stark"
        assert parse_evidence("Stark") == "stark"
        assert parse_evidence("anecdotal") == "anekdotisch"
        assert parse_evidence("") == "moderat"

    def test_header_only_has_no_rows(self):
        assert read_csv_rows("name,category\n") == []
        assert read_csv_rows("# only a comment\n") == []


# ============================================================================
# Import
# ============================================================================

class TestMatrixImport:

    def test_nameless_and_comment_rows_skipped(self):
        result = parse_sample()

        assert [e.name for e in result.entries] == ["Vitamin D3", "Magnesium Glycinat", "Whey Protein"]
        assert result.errors == []

    def test_stats(self):
        stats = parse_sample().stats

        assert stats.total == 3
        assert stats.essential == 1
        assert stats.optimizer == 1
        assert stats.specialist == 1
        assert stats.strong_evidence == 1
        assert stats.moderate_evidence == 2
        assert stats.modifiers == 9

    def test_base_fields(self):
        entry = entry_by_name(parse_sample(), "Magnesium Glycinat")

        assert entry.category == "Mineralien"
        assert entry.impact_score == 6.0
        assert entry.necessity_tier == "optimizer"
        assert entry.evidence_level == "moderat"
        assert entry.protocol_phase == 1

    def test_column_prefixes_map_to_variants(self):
        modifiers = entry_by_name(parse_sample(), "Whey Protein").relevance_matrix.modifiers

        assert [type(m) for m in modifiers] == [
            ProtocolModeMatch,  # ctx_on_glp1
            GoalMatch,          # goal_fat_loss
            ProtocolModeMatch,  # cal_in_deficit
            Synergy,            # pep_metabolic
            Synergy,            # syn_retatrutide
        ]
        assert modifiers[0].mode.value == "on_glp1"
        assert modifiers[2].mode.value == "in_deficit"
        assert modifiers[3].peptide_class == "metabolic"
        assert modifiers[4].compound == "retatrutide"

    def test_warning_column_marks_triggers(self):
        modifiers = entry_by_name(parse_sample(), "Vitamin D3").relevance_matrix.modifiers

        assert isinstance(modifiers[0], DemographicMatch)
        trigger = modifiers[1]
        assert isinstance(trigger, BloodworkTrigger)
        assert trigger.marker == "vitamin_d_low"
        assert trigger.warning is True

    def test_unknown_bloodwork_column_accepted(self):
        result = parse_matrix_csv("name,bw_zinc_low,warnings\nZink,1.5,zinc_low\n")
        trigger = result.entries[0].relevance_matrix.modifiers[0]

        assert trigger.marker == "zinc_low"
        assert trigger.delta == 1.5
        assert trigger.warning is True

    def test_defaults_for_missing_columns(self):
        entry = parse_matrix_csv("name\nGlycin\n").entries[0]

        assert entry.category == "Sonstige"
        assert entry.impact_score == 5.0
        assert entry.protocol_phase == 0
        assert entry.relevance_matrix.is_empty()

    def test_infinite_delta_is_row_error(self):
        csv_text = "name,goal_fat_loss\nBroken,inf\nKoffein,0.5\n"
        result = parse_matrix_csv(csv_text)

        assert [e.name for e in result.entries] == ["Koffein"]
        assert len(result.errors) == 1
        assert result.errors[0].startswith('Row "Broken"')

    def test_infinite_phase_is_row_error(self):
        csv_text = "name,impact_score,protocol_phase\nMagnesium,7,inf\nZink,5,1e400\nSelen,4,2\n"
        result = parse_matrix_csv(csv_text)

        assert [e.name for e in result.entries] == ["Selen"]
        assert len(result.errors) == 2
        assert result.errors[0].startswith('Row "Magnesium"')

    def test_empty_input(self):
        result = parse_matrix_csv("")

        assert result.entries == []
        assert result.stats.total == 0

    def test_import_hash_deterministic(self):
        first = parse_sample()
        second = parse_sample()

        assert first.import_hash.startswith("sha256:")
        assert first.import_hash == second.import_hash

    def test_imported_matrix_scores(self):
        whey = entry_by_name(parse_sample(), "Whey Protein")
        context = UserRelevanceContext(
            goal="fat_loss",
            is_on_glp1=True,
            is_in_deficit=True,
            active_peptides=["retatrutide"],
            active_peptide_classes=["metabolic"],
        )
        result = calculate_relevance_score(whey.impact_score, whey.relevance_matrix, context)

        assert result.final_score == 10.0
        assert result.tier == Tier.ESSENTIAL
        assert len(result.reasons) == 5


# ============================================================================
# Export
# ============================================================================

class TestMatrixExport:

    def test_header_order(self):
        header = export_matrix_csv([]).splitlines()[0]
        assert header == ",".join(CSV_HEADERS)
        assert CSV_HEADERS[0] == "name"
        assert CSV_HEADERS[-1] == "warnings"

    def test_reimport_matches(self):
        original = parse_sample()
        reparsed = parse_matrix_csv(export_matrix_csv(original.entries))

        assert reparsed.entries == original.entries
        assert reparsed.import_hash == original.import_hash

    def test_same_column_deltas_summed(self):
        entry = CatalogSupplement(
            name="Omega-3",
            relevance_matrix=RelevanceMatrix(modifiers=[
                GoalMatch(goal="fat_loss", delta=1.0),
                GoalMatch(goal="fat_loss", delta=0.5, label="Entzündung"),
            ]),
        )
        row = parse_matrix_csv(export_matrix_csv([entry])).entries[0]

        assert len(row.relevance_matrix.modifiers) == 1
        assert row.relevance_matrix.modifiers[0].delta == 1.5

    def test_extra_columns_before_warnings(self):
        entry = CatalogSupplement(
            name="Zink",
            relevance_matrix=RelevanceMatrix(modifiers=[
                BloodworkTrigger(marker="zinc_low", delta=1.0, warning=True),
            ]),
        )
        lines = export_matrix_csv([entry]).splitlines()
        headers = lines[0].split(",")

        assert headers[-2:] == ["bw_zinc_low", "warnings"]
        assert lines[1].endswith(",1,zinc_low")

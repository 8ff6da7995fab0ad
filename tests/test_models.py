"""Tests for data models and row conversion helpers."""

from datetime import datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from models import (
    AnecdotalRating,
    ClassroomGrade,
    CohortReportRow,
    CycleStatus,
    FinalizeReport,
    PlacementRecord,
    SaveReport,
    ScoreRecord,
    Semester,
    TeacherRecommendation,
)
from models.utils import (
    benchmark_from_row,
    cycle_from_row,
    default_cycle_name,
    parse_jsonb,
    placement_from_row,
    rating_from_row,
    score_record_from_row,
    student_from_row,
)


class TestValidation:
    """Model-level validation of ratings and grades."""

    def test_rating_outside_scale_rejected(self):
        with pytest.raises(ValidationError, match="between 1 and 4"):
            AnecdotalRating(cycle_id="c", student_id="s", engagement_pace=5)

    def test_rating_ratings_skips_missing(self):
        rating = AnecdotalRating(cycle_id="c", student_id="s", receptive_language=4, engagement_pace=2)
        assert rating.ratings() == [4, 2]

    def test_grade_outside_percentage_rejected(self):
        with pytest.raises(ValidationError, match="percentage"):
            ClassroomGrade(student_id="s", domain="reading", score=101)

    def test_null_grade_allowed(self):
        assert ClassroomGrade(student_id="s", domain="reading").score is None


class TestPlacementRecord:
    """Derived overridden flag and row mapping."""

    def test_overridden_iff_sections_differ(self):
        same = PlacementRecord(cycle_id="c", student_id="s", auto_section="Daisy", final_section="Daisy")
        moved = PlacementRecord(cycle_id="c", student_id="s", auto_section="Daisy", final_section="Lily")
        assert same.overridden is False
        assert moved.overridden is True

    def test_to_row_drops_attribution_when_not_overridden(self):
        record = PlacementRecord(cycle_id="c", student_id="s", auto_section="Daisy",
                                 final_section="Daisy", overridden_by="op")
        row = record.to_row()
        assert row["is_overridden"] is False
        assert row["override_by"] is None

    def test_to_row_overridden(self):
        record = PlacementRecord(cycle_id="c", student_id="s", auto_section="Daisy",
                                 final_section="Marigold", overridden_by="op")
        assert record.to_row() == {
            "level_test_id": "c",
            "student_id": "s",
            "auto_placement": "Daisy",
            "final_placement": "Marigold",
            "is_overridden": True,
            "override_by": "op",
        }


class TestReports:
    def test_save_report_message(self):
        report = SaveReport(attempted=3, saved=1, failed_ids=["a", "b"])
        assert report.errors == 2
        assert not report.ok
        assert report.message() == "Saved with 2 error(s)"

    def test_save_report_success_message(self):
        report = SaveReport(attempted=2, saved=2)
        assert report.ok
        assert report.message("Placements saved") == "Placements saved"

    def test_finalize_report_counts_both_stages(self):
        report = FinalizeReport(
            cycle_id="c",
            placements=SaveReport(attempted=2, saved=1, failed_ids=["a"]),
            roster=SaveReport(attempted=2, saved=1, failed_ids=["b"]),
            finalized_at=datetime(2026, 3, 1),
        )
        assert report.errors == 2
        assert report.message() == "Placements finalized with 2 error(s)"


class TestRowConversion:
    """asyncpg rows (here plain dicts) to models."""

    def test_parse_jsonb(self):
        assert parse_jsonb('{"a": 1}') == {"a": 1}
        assert parse_jsonb({"a": 1}) == {"a": 1}
        assert parse_jsonb(None, default={}) == {}
        assert parse_jsonb("not json", default={}) == {}

    def test_student_from_row(self):
        student = student_from_row({
            "id": "s1", "grade": 3, "english_class": "Daisy", "is_active": True,
            "english_name": "Ava", "korean_name": "김아바",
        })
        assert student.current_section == "Daisy"
        assert student.display_name == "Ava"

    def test_cycle_from_row_reads_config_sections(self):
        cycle = cycle_from_row({
            "id": "c1", "name": "Spring 2026 - Grade 3", "grade": 3, "academic_year": "2025-2026",
            "semester": "spring", "status": "meeting", "created_by": None, "created_at": None,
            "finalized_at": None,
            "config": '{"sections": [{"key": "written_mc", "label": "MC", "max": 25}]}',
        })
        assert cycle.status == CycleStatus.MEETING
        assert cycle.semester == Semester.SPRING
        assert cycle.test_sections[0].key == "written_mc"
        assert cycle.test_sections[0].max == 25

    @pytest.mark.parametrize("stored, expected", [
        ("draft", CycleStatus.SETUP),
        ("active", CycleStatus.SCORES),
        ("scoring", CycleStatus.SCORES),
        ("placement", CycleStatus.MEETING),
        ("finalized", CycleStatus.FINALIZED),
        ("setup", CycleStatus.SETUP),
        ("anecdotal", CycleStatus.ANECDOTAL),
        ("Placement", CycleStatus.MEETING),
    ])
    def test_cycle_from_row_maps_stored_status(self, stored, expected):
        cycle = cycle_from_row({
            "id": "c1", "name": "Fall 2025 - Grade 4", "grade": 4, "academic_year": "2025-2026",
            "semester": "fall", "status": stored, "created_by": None, "created_at": None,
            "finalized_at": None, "config": None,
        })
        assert cycle.status == expected

    def test_cycle_from_row_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            cycle_from_row({
                "id": "c1", "name": "x", "grade": 4, "academic_year": "2025-2026", "semester": "fall",
                "status": "archived", "created_by": None, "created_at": None, "finalized_at": None, "config": None,
            })

    def test_score_record_from_row(self):
        record = score_record_from_row({
            "level_test_id": "c1", "student_id": "s1", "raw_scores": '{"passage_cwpm": 80, "writing": null}',
            "previous_class": "Daisy", "entered_by": None,
        })
        assert isinstance(record, ScoreRecord)
        assert record.value("passage_cwpm") == 80
        assert record.value("writing") is None

    def test_rating_from_row(self):
        rating = rating_from_row({
            "level_test_id": "c1", "student_id": "s1", "teacher_id": "t1", "receptive_language": 3,
            "productive_language": None, "engagement_pace": 2, "placement_recommendation": 4,
            "notes": None, "is_watchlist": None, "teacher_recommends": "move_up",
        })
        assert rating.rater_id == "t1"
        assert rating.notes == ""
        assert rating.is_watchlist is False
        assert rating.teacher_recommends == TeacherRecommendation.MOVE_UP

    def test_benchmark_from_row_collects_numeric_targets(self):
        benchmark = benchmark_from_row({
            "id": 7, "grade": 3, "english_class": "Daisy", "cwpm_end": Decimal("100"),
            "writing_end": 20, "notes": "text", "is_active": True, "lexile_end": None,
        })
        assert benchmark.section == "Daisy"
        assert benchmark.targets == {"cwpm_end": 100.0, "writing_end": 20.0, "lexile_end": None}

    def test_placement_from_row(self):
        record = placement_from_row({
            "level_test_id": "c1", "student_id": "s1", "auto_placement": "Daisy",
            "final_placement": "Lily", "is_overridden": True, "override_by": "op",
        })
        assert record.overridden
        assert record.overridden_by == "op"


class TestHelpers:
    def test_default_cycle_name(self):
        assert default_cycle_name(Semester.FALL, 2, datetime(2025, 9, 1)) == "Fall 2025 - Grade 2"
        assert default_cycle_name("spring", 3, datetime(2026, 3, 1)) == "Spring 2026 - Grade 3"

    def test_report_row_defaults(self):
        row = CohortReportRow(
            student_id="s", student_name="S", current_section="Daisy", composite=0.5,
            test_ratio=0.5, grade_ratio=0.5, anecdotal_ratio=0.5, percentile=0.5,
            suggested_section="Daisy",
        )
        assert row.is_borderline is False
        assert row.raw_cwpm is None

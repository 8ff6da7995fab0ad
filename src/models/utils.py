"""
Utility functions for working with models and schemas.

Provides helper functions for:
- Converting database rows to Pydantic models
- JSONB parsing
- Section ordering and cycle naming
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Sequence

from .database import (
    AnecdotalRating,
    Benchmark,
    ClassroomGrade,
    CycleStatus,
    LevelingCycle,
    PlacementRecord,
    ScoreRecord,
    ScoreSection,
    Semester,
    Student,
)


logger = logging.getLogger(__name__)

# class_benchmarks columns that identify the row rather than hold a target
BENCHMARK_KEY_COLUMNS = {"id", "grade", "english_class", "section", "created_at", "updated_at"}

# level_tests.status values written before the phase names were adopted
LEGACY_CYCLE_STATUSES = {
    "draft": CycleStatus.SETUP,
    "active": CycleStatus.SCORES,
    "scoring": CycleStatus.SCORES,
    "placement": CycleStatus.MEETING,
}


def parse_jsonb(value: Any, default: Any = None) -> Any:
    """JSONB columns arrive as str or already-decoded values depending on codecs."""
    if value is None:
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Could not parse JSONB value: {value[:80]}")
            return default
    return value


def student_from_row(row: Mapping[str, Any]) -> Student:
    return Student(
        id=str(row["id"]),
        grade=row["grade"],
        current_section=row["english_class"],
        active=row["is_active"],
        english_name=row["english_name"],
        korean_name=row["korean_name"],
    )


def cycle_status_from_db(value: str) -> CycleStatus:
    """Map a stored status onto a phase; legacy draft/active/scoring/placement rows are accepted."""
    status = str(value).strip().lower()
    if status in LEGACY_CYCLE_STATUSES:
        return LEGACY_CYCLE_STATUSES[status]
    return CycleStatus(status)


def cycle_from_row(row: Mapping[str, Any]) -> LevelingCycle:
    config = parse_jsonb(row["config"], default={}) or {}
    sections = [ScoreSection(**s) for s in config.get("sections", []) if isinstance(s, dict)]
    return LevelingCycle(
        id=str(row["id"]),
        name=row["name"],
        grade=row["grade"],
        academic_year=row["academic_year"],
        semester=row["semester"],
        status=cycle_status_from_db(row["status"]),
        created_by=str(row["created_by"]) if row["created_by"] else None,
        created_at=row["created_at"],
        finalized_at=row["finalized_at"],
        test_sections=sections,
    )


def score_record_from_row(row: Mapping[str, Any]) -> ScoreRecord:
    return ScoreRecord(
        cycle_id=str(row["level_test_id"]),
        student_id=str(row["student_id"]),
        raw_scores=parse_jsonb(row["raw_scores"], default={}) or {},
        previous_section=row["previous_class"],
        entered_by=str(row["entered_by"]) if row["entered_by"] else None,
    )


def rating_from_row(row: Mapping[str, Any]) -> AnecdotalRating:
    return AnecdotalRating(
        cycle_id=str(row["level_test_id"]),
        student_id=str(row["student_id"]),
        receptive_language=row["receptive_language"],
        productive_language=row["productive_language"],
        engagement_pace=row["engagement_pace"],
        placement_recommendation=row["placement_recommendation"],
        notes=row["notes"] or "",
        is_watchlist=bool(row["is_watchlist"]),
        teacher_recommends=row["teacher_recommends"],
        rater_id=str(row["teacher_id"]) if row["teacher_id"] else None,
    )


def benchmark_from_row(row: Mapping[str, Any]) -> Benchmark:
    """Every numeric, non-key column of class_benchmarks is a target."""
    targets: Dict[str, Optional[float]] = {}
    for column, value in dict(row).items():
        if column in BENCHMARK_KEY_COLUMNS:
            continue
        if isinstance(value, bool):
            continue
        if value is None or isinstance(value, (int, float, Decimal)):
            targets[column] = float(value) if value is not None else None
    return Benchmark(grade=row["grade"], section=row["english_class"], targets=targets)


def classroom_grade_from_row(row: Mapping[str, Any]) -> ClassroomGrade:
    return ClassroomGrade(
        student_id=str(row["student_id"]),
        domain=row["domain"],
        score=float(row["score"]) if row["score"] is not None else None,
    )


def placement_from_row(row: Mapping[str, Any]) -> PlacementRecord:
    return PlacementRecord(
        cycle_id=str(row["level_test_id"]),
        student_id=str(row["student_id"]),
        auto_section=row["auto_placement"],
        final_section=row["final_placement"],
        overridden_by=str(row["override_by"]) if row["override_by"] else None,
    )


def section_rank(sections: Sequence[str], section: str) -> int:
    """Position of a section in the ordered list; unknown sections sort last."""
    try:
        return list(sections).index(section)
    except ValueError:
        return len(sections)


def default_cycle_name(semester: Semester, grade: int, when: Optional[datetime] = None) -> str:
    """e.g. 'Spring 2026 - Grade 3'"""
    year = (when or datetime.now()).year
    return f"{Semester(semester).value.capitalize()} {year} - Grade {grade}"

"""Cohort results report: per-student composite breakdown and suggested section."""

from enum import Enum
from typing import Iterable, List, Optional

from models import CohortPlacement, CohortReportRow

from .engine import CohortSnapshot


class ReportSort(str, Enum):
    COMPOSITE = "composite"
    CWPM = "cwpm"
    WRITING = "writing"
    NAME = "name"


def build_report(placements: Iterable[CohortPlacement], snapshot: CohortSnapshot) -> List[CohortReportRow]:
    """One row per placed student, in the order the placements were given."""
    students = {s.id: s for s in snapshot.students}
    rows = []
    for placement in placements:
        student = students.get(placement.student_id)
        record = snapshot.scores.get(placement.student_id)
        rating = snapshot.ratings.get(placement.student_id)
        score = placement.score

        rows.append(CohortReportRow(
            student_id=placement.student_id,
            student_name=student.display_name if student else placement.student_id,
            current_section=placement.current_section,
            composite=score.composite,
            test_ratio=score.test_ratio,
            grade_ratio=score.grade_ratio,
            anecdotal_ratio=score.anecdotal_ratio,
            percentile=placement.percentile,
            suggested_section=placement.suggested_section,
            safety_floor_applied=placement.assignment.safety_floor_applied,
            is_borderline=placement.is_borderline,
            raw_cwpm=record.value("passage_cwpm") if record else None,
            raw_writing=record.value("writing") if record else None,
            raw_mc=record.value("written_mc") if record else None,
            word_reading_accuracy=score.metric_ratios.get("word_reading_accuracy"),
            is_watchlist=rating.is_watchlist if rating else False,
            teacher_recommends=rating.teacher_recommends if rating else None,
        ))
    return rows


def filter_rows(
    rows: Iterable[CohortReportRow],
    section: Optional[str] = None,
    borderline_only: bool = False,
    sort_by: ReportSort = ReportSort.COMPOSITE,
) -> List[CohortReportRow]:
    """
    Filter by current section and/or borderline status, then sort.

    Composite, cwpm and writing sort highest first, with missing raw scores
    last. Name sorts alphabetically.
    """
    result = list(rows)
    if section:
        result = [r for r in result if r.current_section == section]
    if borderline_only:
        result = [r for r in result if r.is_borderline]

    sort_by = ReportSort(sort_by)
    if sort_by == ReportSort.COMPOSITE:
        result.sort(key=lambda r: r.composite, reverse=True)
    elif sort_by == ReportSort.CWPM:
        result.sort(key=lambda r: -1 if r.raw_cwpm is None else r.raw_cwpm, reverse=True)
    elif sort_by == ReportSort.WRITING:
        result.sort(key=lambda r: -1 if r.raw_writing is None else r.raw_writing, reverse=True)
    else:
        result.sort(key=lambda r: r.student_name.lower())
    return result

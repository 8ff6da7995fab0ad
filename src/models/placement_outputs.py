"""
Output schemas for the placement pipeline:
Composite Scorer → Percentile Ranker → Bin Assigner → Override Reconciler → Store

These schemas carry the per-student results between pipeline stages and the
operator-facing reports produced by bulk saves and finalization.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .database import TeacherRecommendation


class Signal(str, Enum):
    """Signal families blended into the composite score."""
    TEST = "test"
    GRADES = "grades"
    ANECDOTAL = "anecdotal"


class CompositeScore(BaseModel):
    """Output of the Composite Scorer for one student."""
    student_id: str
    test_ratio: float
    grade_ratio: float
    anecdotal_ratio: float
    composite: float

    # metric key -> clamped ratio, only for metrics that contributed
    metric_ratios: Dict[str, float] = Field(default_factory=dict)

    # Signals that fell back to the neutral ratio
    missing_signals: List[Signal] = Field(default_factory=list)

    @property
    def has_no_data(self) -> bool:
        """True when every signal was absent and the composite is purely neutral."""
        return len(self.missing_signals) == len(Signal)


class SectionAssignment(BaseModel):
    """Output of the Bin Assigner for one student."""
    student_id: str
    section: str
    bin_index: int
    percentile: float
    safety_floor_applied: bool = False


class CohortPlacement(BaseModel):
    """One student's full pass through the placement pipeline."""
    student_id: str
    current_section: str
    score: CompositeScore
    rank: int  # zero-based, ascending by composite
    percentile: float
    assignment: SectionAssignment

    @property
    def suggested_section(self) -> str:
        return self.assignment.section

    @property
    def is_borderline(self) -> bool:
        """Suggested section differs from where the student sits today."""
        return self.assignment.section != self.current_section


class SaveReport(BaseModel):
    """Outcome of a best-effort bulk save; failures are counted, not raised."""
    attempted: int = 0
    saved: int = 0
    failed_ids: List[str] = Field(default_factory=list)

    @property
    def errors(self) -> int:
        return len(self.failed_ids)

    @property
    def ok(self) -> bool:
        return not self.failed_ids

    def message(self, success: str = "Saved") -> str:
        """Operator-facing status line."""
        if self.failed_ids:
            return f"Saved with {self.errors} error(s)"
        return success


class FinalizeReport(BaseModel):
    """Outcome of finalizing a cycle."""
    cycle_id: str
    placements: SaveReport
    roster: SaveReport
    finalized_at: datetime

    @property
    def errors(self) -> int:
        return self.placements.errors + self.roster.errors

    def message(self) -> str:
        if self.errors:
            return f"Placements finalized with {self.errors} error(s)"
        return "Placements finalized"


class CohortReportRow(BaseModel):
    """Row of the cohort results report."""
    student_id: str
    student_name: str
    current_section: str

    composite: float
    test_ratio: float
    grade_ratio: float
    anecdotal_ratio: float
    percentile: float
    suggested_section: str
    safety_floor_applied: bool = False
    is_borderline: bool = False

    raw_cwpm: Optional[float] = None
    raw_writing: Optional[float] = None
    raw_mc: Optional[float] = None
    word_reading_accuracy: Optional[float] = None

    is_watchlist: bool = False
    teacher_recommends: Optional[TeacherRecommendation] = None

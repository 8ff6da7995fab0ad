"""
Database models mapping to the leveling tables in Supabase.

These Pydantic models map to the existing schema:
- public.students
- public.level_tests
- public.level_test_scores
- public.teacher_anecdotal_ratings
- public.class_benchmarks
- public.semester_grades
- public.level_test_placements
- public.behavior_logs (emergency move notes only)

Column names that differ from the model fields are handled by from_row()
helpers in models.utils.
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CycleStatus(str, Enum):
    """Phases of a leveling cycle, in workflow order."""
    SETUP = "setup"
    SCORES = "scores"
    ANECDOTAL = "anecdotal"
    MEETING = "meeting"
    FINALIZED = "finalized"


class Semester(str, Enum):
    FALL = "fall"
    SPRING = "spring"


class TeacherRecommendation(str, Enum):
    """Homeroom teacher's placement recommendation."""
    KEEP = "keep"
    MOVE_UP = "move_up"
    MOVE_DOWN = "move_down"


class Student(BaseModel):
    """Maps to public.students table."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    grade: int
    current_section: str  # english_class column
    active: bool = True

    english_name: Optional[str] = None
    korean_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.english_name or self.id


class ScoreSection(BaseModel):
    """One configured column of a cycle's score-entry template."""
    key: str
    label: str
    max: Optional[float] = None


class LevelingCycle(BaseModel):
    """Maps to public.level_tests table."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    grade: int
    academic_year: str
    semester: Semester
    status: CycleStatus = CycleStatus.SETUP
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None

    # config.sections JSONB
    test_sections: List[ScoreSection] = Field(default_factory=list)

    @property
    def is_finalized(self) -> bool:
        return self.status == CycleStatus.FINALIZED


class ScoreRecord(BaseModel):
    """Maps to public.level_test_scores table."""
    model_config = ConfigDict(from_attributes=True)

    cycle_id: str
    student_id: str
    raw_scores: Dict[str, Optional[float]] = Field(default_factory=dict)
    previous_section: Optional[str] = None
    entered_by: Optional[str] = None

    def value(self, key: str) -> Optional[float]:
        """Raw metric value, or None when the metric was not entered."""
        return self.raw_scores.get(key)


RATING_DIMENSIONS = (
    "receptive_language",
    "productive_language",
    "engagement_pace",
    "placement_recommendation",
)


class AnecdotalRating(BaseModel):
    """Maps to public.teacher_anecdotal_ratings table."""
    model_config = ConfigDict(from_attributes=True)

    cycle_id: str
    student_id: str
    receptive_language: Optional[int] = None
    productive_language: Optional[int] = None
    engagement_pace: Optional[int] = None
    placement_recommendation: Optional[int] = None
    notes: str = ""
    is_watchlist: bool = False
    teacher_recommends: Optional[TeacherRecommendation] = None
    rater_id: Optional[str] = None

    @field_validator(*RATING_DIMENSIONS)
    @classmethod
    def validate_ordinal(cls, v):
        """Ratings are on a 1-4 scale."""
        if v is None:
            return v
        if not 1 <= v <= 4:
            raise ValueError("Anecdotal ratings must be between 1 and 4")
        return v

    def ratings(self) -> List[int]:
        """The ratings that were actually given."""
        values = [getattr(self, dim) for dim in RATING_DIMENSIONS]
        return [v for v in values if v is not None]


class Benchmark(BaseModel):
    """Maps to public.class_benchmarks table."""
    grade: int
    section: str
    targets: Dict[str, Optional[float]] = Field(default_factory=dict)  # e.g. {"cwpm_end": 100}


class ClassroomGrade(BaseModel):
    """Maps to public.semester_grades table."""
    student_id: str
    domain: str
    score: Optional[float] = None

    @field_validator("score")
    @classmethod
    def validate_percentage(cls, v):
        if v is None:
            return v
        if not 0 <= v <= 100:
            raise ValueError("Classroom grade must be a percentage between 0 and 100")
        return v


class PlacementRecord(BaseModel):
    """
    Maps to public.level_test_placements table.

    overridden is derived from the two sections and never stored on the model;
    to_row() writes it for the is_overridden column.
    """
    model_config = ConfigDict(from_attributes=True)

    cycle_id: str
    student_id: str
    auto_section: str
    final_section: str
    overridden_by: Optional[str] = None

    @property
    def overridden(self) -> bool:
        return self.final_section != self.auto_section

    def to_row(self) -> Dict[str, Optional[object]]:
        return {
            "level_test_id": self.cycle_id,
            "student_id": self.student_id,
            "auto_placement": self.auto_section,
            "final_placement": self.final_section,
            "is_overridden": self.overridden,
            "override_by": self.overridden_by if self.overridden else None,
        }


class RosterNote(BaseModel):
    """Maps to note-type rows of public.behavior_logs."""
    student_id: str
    logged_on: date  # date column
    note: str
    teacher_id: Optional[str] = None
    type: str = "note"
    is_flagged: bool = False

"""
Core data models for the cohort leveling system.

This package contains:
- Database models mapping to Supabase tables
- Placement pipeline output schemas
- Row conversion and section ordering helpers
"""

from .database import (
    AnecdotalRating,
    Benchmark,
    ClassroomGrade,
    CycleStatus,
    LevelingCycle,
    PlacementRecord,
    RATING_DIMENSIONS,
    RosterNote,
    ScoreRecord,
    ScoreSection,
    Semester,
    Student,
    TeacherRecommendation,
)
from .placement_outputs import (
    CohortPlacement,
    CohortReportRow,
    CompositeScore,
    FinalizeReport,
    SaveReport,
    SectionAssignment,
    Signal,
)
from . import utils

__all__ = [
    # Database models
    "AnecdotalRating",
    "Benchmark",
    "ClassroomGrade",
    "CycleStatus",
    "LevelingCycle",
    "PlacementRecord",
    "RATING_DIMENSIONS",
    "RosterNote",
    "ScoreRecord",
    "ScoreSection",
    "Semester",
    "Student",
    "TeacherRecommendation",

    # Pipeline outputs
    "CohortPlacement",
    "CohortReportRow",
    "CompositeScore",
    "FinalizeReport",
    "SaveReport",
    "SectionAssignment",
    "Signal",

    # Utilities
    "utils",
]

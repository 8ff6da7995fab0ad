"""
Cohort placement engine.

Composite Scorer → Percentile Ranker → Bin Assigner produce an automatic
section per student; the Override Reconciler holds the meeting's manual edits;
the Placement Workflow moves a cycle through its phases and finalizes it.
"""

from .analysis import OverrideAnalyzer, OverrideMetrics
from .benchmarks import BenchmarkRegistry
from .binning import BinAssigner, SafetyFloor
from .engine import CohortSnapshot, PlacementEngine, load_cohort_snapshot
from .errors import (
    CycleFinalizedError,
    CycleNotFoundError,
    EmergencyMoveError,
    FinalizeNotConfirmedError,
    InvalidPhaseTransitionError,
    LevelingError,
    UnknownSectionError,
    UnknownStudentError,
)
from .metrics import (
    GRADE1_TEMPLATE,
    UPPER_GRADE_TEMPLATE,
    MetricExtractor,
    MetricRegistry,
    MetricTemplate,
    get_default_registry,
)
from .overrides import OverrideReconciler
from .ranking import RankedStudent, rank_percentiles
from .report import ReportSort, build_report, filter_rows
from .scoring import CompositeScorer, CompositeWeights
from .workflow import PlacementWorkflow

__all__ = [
    # Pipeline
    "BenchmarkRegistry",
    "CompositeScorer",
    "CompositeWeights",
    "RankedStudent",
    "rank_percentiles",
    "BinAssigner",
    "SafetyFloor",
    "CohortSnapshot",
    "PlacementEngine",
    "load_cohort_snapshot",

    # Metric templates
    "MetricExtractor",
    "MetricTemplate",
    "MetricRegistry",
    "UPPER_GRADE_TEMPLATE",
    "GRADE1_TEMPLATE",
    "get_default_registry",

    # Meeting and workflow
    "OverrideReconciler",
    "PlacementWorkflow",

    # Reporting
    "ReportSort",
    "build_report",
    "filter_rows",
    "OverrideAnalyzer",
    "OverrideMetrics",

    # Errors
    "LevelingError",
    "CycleNotFoundError",
    "CycleFinalizedError",
    "InvalidPhaseTransitionError",
    "FinalizeNotConfirmedError",
    "UnknownSectionError",
    "UnknownStudentError",
    "EmergencyMoveError",
]

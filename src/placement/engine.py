"""
Placement Engine: Composite Scorer → Percentile Ranker → Bin Assigner.

The engine is pure and synchronous. It runs over a CohortSnapshot taken once
when the meeting opens; load_cohort_snapshot() is the only part that touches
the store.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from models import (
    AnecdotalRating,
    ClassroomGrade,
    CohortPlacement,
    LevelingCycle,
    ScoreRecord,
    Student,
)

from .benchmarks import BenchmarkRegistry
from .binning import BinAssigner, SafetyFloor
from .metrics import MetricRegistry, get_default_registry
from .ranking import rank_percentiles
from .scoring import CompositeScorer, CompositeWeights


logger = logging.getLogger(__name__)


@dataclass
class CohortSnapshot:
    """Everything the engine reads for one cycle, keyed by student id."""
    cycle: LevelingCycle
    students: List[Student]
    scores: Dict[str, ScoreRecord] = field(default_factory=dict)
    ratings: Dict[str, AnecdotalRating] = field(default_factory=dict)
    grades: Dict[str, List[ClassroomGrade]] = field(default_factory=dict)
    benchmarks: Optional[BenchmarkRegistry] = None

    @property
    def cohort(self) -> List[Student]:
        """Active students of the cycle's grade."""
        return [s for s in self.students if s.active and s.grade == self.cycle.grade]

    def student_ids(self) -> List[str]:
        return [s.id for s in self.cohort]


class PlacementEngine:
    """Computes an automatic section for every student in a cohort."""

    def __init__(
        self,
        sections: Sequence[str],
        weights: Optional[CompositeWeights] = None,
        safety_floor: Optional[SafetyFloor] = None,
        neutral_ratio: float = 0.5,
        registry: Optional[MetricRegistry] = None,
    ):
        self.sections = list(sections)
        self.weights = weights or CompositeWeights()
        self.neutral_ratio = neutral_ratio
        self.registry = registry or get_default_registry()
        self.bin_assigner = BinAssigner(self.sections, safety_floor)

    @classmethod
    def from_config(cls, config, registry: Optional[MetricRegistry] = None) -> "PlacementEngine":
        return cls(
            sections=config.sections,
            weights=CompositeWeights.from_config(config),
            safety_floor=SafetyFloor.from_config(config),
            neutral_ratio=config.neutral_ratio,
            registry=registry,
        )

    def scorer_for(self, cycle: LevelingCycle) -> CompositeScorer:
        template = self.registry.template_for(cycle.grade, cycle.test_sections)
        return CompositeScorer(template=template, weights=self.weights, neutral_ratio=self.neutral_ratio)

    def run(self, snapshot: CohortSnapshot) -> List[CohortPlacement]:
        """
        Score, rank and bin the snapshot's cohort.

        Returns:
            One CohortPlacement per cohort student, ascending by composite
        """
        cohort = snapshot.cohort
        if not cohort:
            logger.warning(f"Cycle {snapshot.cycle.id} has no active grade {snapshot.cycle.grade} students")
            return []

        scorer = self.scorer_for(snapshot.cycle)
        benchmarks = snapshot.benchmarks or BenchmarkRegistry(snapshot.cycle.grade)

        by_id = {s.id: s for s in cohort}
        scores = {}
        for student in cohort:
            scores[student.id] = scorer.score(
                student.id,
                score_record=snapshot.scores.get(student.id),
                benchmark_targets=benchmarks.targets_for(student.current_section),
                grades=snapshot.grades.get(student.id),
                rating=snapshot.ratings.get(student.id),
            )

        ranked = rank_percentiles([(sid, score.composite) for sid, score in scores.items()])

        placements = []
        floor_hits = 0
        for entry in ranked:
            record = snapshot.scores.get(entry.student_id)
            assignment = self.bin_assigner.assign(
                entry.student_id,
                entry.percentile,
                record.raw_scores if record else None,
            )
            floor_hits += assignment.safety_floor_applied
            placements.append(CohortPlacement(
                student_id=entry.student_id,
                current_section=by_id[entry.student_id].current_section,
                score=scores[entry.student_id],
                rank=entry.rank,
                percentile=entry.percentile,
                assignment=assignment,
            ))

        logger.info(
            f"Placed {len(placements)} students for cycle {snapshot.cycle.id} "
            f"({floor_hits} by safety floor)"
        )
        return placements

    def auto_placements(self, snapshot: CohortSnapshot) -> Dict[str, str]:
        """student_id -> automatically computed section."""
        return {p.student_id: p.suggested_section for p in self.run(snapshot)}


async def load_cohort_snapshot(store, cycle: LevelingCycle) -> CohortSnapshot:
    """Read roster, records, grades and benchmarks for a cycle from the store."""
    students, score_records, ratings, benchmark_rows = await asyncio.gather(
        store.get_active_students(cycle.grade),
        store.get_score_records(cycle.id),
        store.get_anecdotal_ratings(cycle.id),
        store.get_benchmarks(cycle.grade),
    )
    grades = await store.get_classroom_grades([s.id for s in students])

    return CohortSnapshot(
        cycle=cycle,
        students=students,
        scores={r.student_id: r for r in score_records},
        ratings={r.student_id: r for r in ratings},
        grades=grades,
        benchmarks=BenchmarkRegistry.from_records(cycle.grade, benchmark_rows),
    )

"""
Composite Scorer.

Blends three normalized signals into a single [0, 1] composite:

- test ratio:      mean of the template's per-metric ratios
- grade ratio:     mean classroom percentage / 100
- anecdotal ratio: mean teacher rating / 4

A signal with no data at all falls back to the neutral ratio so unassessed
students are not pushed toward either end of the cohort.
"""

import logging
import statistics
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from models import AnecdotalRating, ClassroomGrade, CompositeScore, ScoreRecord, Signal

from .metrics import MetricTemplate, UPPER_GRADE_TEMPLATE


logger = logging.getLogger(__name__)

MAX_RATING = 4


@dataclass(frozen=True)
class CompositeWeights:
    test: float = 0.3
    grades: float = 0.4
    anecdotal: float = 0.3

    def __post_init__(self):
        if min(self.test, self.grades, self.anecdotal) < 0:
            raise ValueError("Composite weights must be non-negative")
        if abs(self.test + self.grades + self.anecdotal - 1.0) > 1e-6:
            raise ValueError("Composite weights must sum to 1.0")

    @classmethod
    def from_config(cls, config) -> "CompositeWeights":
        return cls(test=config.test_weight, grades=config.grade_weight, anecdotal=config.anecdotal_weight)


class CompositeScorer:
    """Pure function of one student's signals; holds only configuration."""

    def __init__(
        self,
        template: MetricTemplate = UPPER_GRADE_TEMPLATE,
        weights: Optional[CompositeWeights] = None,
        neutral_ratio: float = 0.5,
    ):
        self.template = template
        self.weights = weights or CompositeWeights()
        self.neutral_ratio = neutral_ratio

    def score(
        self,
        student_id: str,
        score_record: Optional[ScoreRecord] = None,
        benchmark_targets: Optional[Mapping[str, Optional[float]]] = None,
        grades: Optional[Iterable[ClassroomGrade]] = None,
        rating: Optional[AnecdotalRating] = None,
    ) -> CompositeScore:
        """
        Compute the composite for one student.

        Args:
            student_id: Student being scored
            score_record: Raw test scores for this cycle, if entered
            benchmark_targets: Targets of the student's current section
            grades: Classroom grade history
            rating: Homeroom teacher's anecdotal rating

        Returns:
            CompositeScore with the three ratios and the blended composite
        """
        missing = []

        raw_scores = score_record.raw_scores if score_record else {}
        metric_ratios = self.template.ratios(raw_scores, benchmark_targets or {})
        if metric_ratios:
            test_ratio = statistics.mean(metric_ratios.values())
        else:
            test_ratio = self.neutral_ratio
            missing.append(Signal.TEST)

        percentages = [g.score for g in (grades or []) if g.score is not None]
        if percentages:
            grade_ratio = statistics.mean(percentages) / 100
        else:
            grade_ratio = self.neutral_ratio
            missing.append(Signal.GRADES)

        given = rating.ratings() if rating else []
        if given:
            anecdotal_ratio = statistics.mean(given) / MAX_RATING
        else:
            anecdotal_ratio = self.neutral_ratio
            missing.append(Signal.ANECDOTAL)

        composite = (
            self.weights.test * test_ratio
            + self.weights.grades * grade_ratio
            + self.weights.anecdotal * anecdotal_ratio
        )

        if len(missing) == len(Signal):
            logger.debug(f"Student {student_id} has no leveling data; composite is neutral")

        return CompositeScore(
            student_id=student_id,
            test_ratio=test_ratio,
            grade_ratio=grade_ratio,
            anecdotal_ratio=anecdotal_ratio,
            composite=composite,
            metric_ratios=metric_ratios,
            missing_signals=missing,
        )

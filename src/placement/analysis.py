"""
Override analysis for a cycle's auditable auto-vs-final record.

Measures how far the meeting moved away from the automatic placement:
override rate, direction of moves, mean section shift, rank agreement
between auto and final sections, and how often final placements follow the
homeroom teacher's recommendation.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
from scipy.stats import spearmanr

from models import AnecdotalRating, PlacementRecord, TeacherRecommendation
from models.utils import section_rank


logger = logging.getLogger(__name__)


@dataclass
class OverrideMetrics:
    """Agreement between automatic and final placements."""

    n_students: int
    override_count: int
    override_rate: float

    # Direction of overrides relative to the automatic section
    moved_up: int
    moved_down: int

    # Mean |final index - auto index| over all students, in sections
    mean_absolute_shift: float
    max_shift: int

    # None when fewer than two students or either side is constant
    spearman: Optional[float]
    spearman_p_value: Optional[float]

    # auto section -> final section -> count
    transition_matrix: Dict[str, Dict[str, int]]

    # Teacher recommendation agreement (keep / move_up / move_down vs final)
    recommendations_total: int = 0
    recommendations_followed: int = 0

    overridden_students: List[str] = field(default_factory=list)

    @property
    def recommendation_agreement(self) -> Optional[float]:
        if not self.recommendations_total:
            return None
        return self.recommendations_followed / self.recommendations_total


class OverrideAnalyzer:
    """Computes OverrideMetrics from placement rows."""

    def __init__(self, sections: Sequence[str], high_override_rate: float = 0.3):
        self.sections = list(sections)
        self.high_override_rate = high_override_rate

    def analyze(
        self,
        records: Iterable[PlacementRecord],
        ratings: Optional[Iterable[AnecdotalRating]] = None,
        previous_sections: Optional[Mapping[str, str]] = None,
    ) -> OverrideMetrics:
        """
        Args:
            records: Saved placement rows for one cycle
            ratings: Anecdotal ratings carrying teacher_recommends
            previous_sections: student_id -> section before the cycle, used
                to judge whether a recommendation was followed

        Returns:
            OverrideMetrics; an empty record set yields zero counts
        """
        records = list(records)
        n = len(records)

        auto_idx = np.array([section_rank(self.sections, r.auto_section) for r in records], dtype=float)
        final_idx = np.array([section_rank(self.sections, r.final_section) for r in records], dtype=float)
        shifts = final_idx - auto_idx

        overridden = [r.student_id for r in records if r.overridden]
        moved_up = int(np.sum(shifts > 0))
        moved_down = int(np.sum(shifts < 0))

        mean_abs = float(np.mean(np.abs(shifts))) if n else 0.0
        max_shift = int(np.max(np.abs(shifts))) if n else 0

        spearman = spearman_p = None
        if n >= 2 and np.ptp(auto_idx) > 0 and np.ptp(final_idx) > 0:
            result = spearmanr(auto_idx, final_idx)
            spearman, spearman_p = float(result[0]), float(result[1])

        matrix: Dict[str, Dict[str, int]] = {}
        for record in records:
            row = matrix.setdefault(record.auto_section, {})
            row[record.final_section] = row.get(record.final_section, 0) + 1

        total, followed = self._recommendation_agreement(records, ratings, previous_sections)

        metrics = OverrideMetrics(
            n_students=n,
            override_count=len(overridden),
            override_rate=len(overridden) / n if n else 0.0,
            moved_up=moved_up,
            moved_down=moved_down,
            mean_absolute_shift=mean_abs,
            max_shift=max_shift,
            spearman=spearman,
            spearman_p_value=spearman_p,
            transition_matrix=matrix,
            recommendations_total=total,
            recommendations_followed=followed,
            overridden_students=overridden,
        )
        logger.info(
            f"Override analysis: {metrics.override_count}/{n} overridden "
            f"(up {moved_up}, down {moved_down}, mean shift {mean_abs:.2f})"
        )
        return metrics

    def _recommendation_agreement(self, records, ratings, previous_sections):
        if not ratings or not previous_sections:
            return 0, 0

        finals = {r.student_id: r.final_section for r in records}
        total = followed = 0
        for rating in ratings:
            if rating.teacher_recommends is None:
                continue
            final = finals.get(rating.student_id)
            previous = previous_sections.get(rating.student_id)
            if final is None or previous is None:
                continue

            delta = section_rank(self.sections, final) - section_rank(self.sections, previous)
            total += 1
            if rating.teacher_recommends == TeacherRecommendation.MOVE_UP and delta > 0:
                followed += 1
            elif rating.teacher_recommends == TeacherRecommendation.MOVE_DOWN and delta < 0:
                followed += 1
            elif rating.teacher_recommends == TeacherRecommendation.KEEP and delta == 0:
                followed += 1
        return total, followed

    def concerns(self, metrics: OverrideMetrics) -> List[str]:
        """Short operator-facing notes on an unusual meeting outcome."""
        notes = []
        if metrics.override_rate > self.high_override_rate:
            notes.append(
                f"High override rate ({metrics.override_rate:.0%}). Review weights or benchmarks for this grade."
            )
        if metrics.max_shift >= 2:
            notes.append(f"At least one student moved {metrics.max_shift} sections from the automatic placement.")
        if metrics.spearman is not None and metrics.spearman < 0.6:
            notes.append(f"Low rank agreement between automatic and final sections ({metrics.spearman:.2f}).")
        if metrics.moved_up and metrics.moved_down == 0 and metrics.moved_up >= 3:
            notes.append("Overrides only moved students up.")
        elif metrics.moved_down and metrics.moved_up == 0 and metrics.moved_down >= 3:
            notes.append("Overrides only moved students down.")
        return notes

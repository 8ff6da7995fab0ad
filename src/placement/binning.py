"""
Bin Assigner: maps a percentile onto one of K ordered sections.

The safety floor runs first and places students with near-zero decoding
ability in the lowest section regardless of their composite.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from models import SectionAssignment

from .errors import UnknownSectionError
from .metrics import WORD_READING_ATTEMPTED, WORD_READING_CORRECT, is_number


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SafetyFloor:
    """Fires when fewer than min_correct words, or under min_accuracy of attempted words, were read correctly."""
    min_correct: float = 4
    min_accuracy: float = 0.10
    correct_key: str = WORD_READING_CORRECT
    attempted_key: str = WORD_READING_ATTEMPTED

    @classmethod
    def from_config(cls, config) -> "SafetyFloor":
        return cls(min_correct=config.safety_floor_min_correct, min_accuracy=config.safety_floor_min_accuracy)

    def is_triggered(self, raw_scores: Optional[Mapping[str, Optional[float]]]) -> bool:
        if not raw_scores:
            return False

        correct = raw_scores.get(self.correct_key)
        if not is_number(correct):
            return False
        if correct < self.min_correct:
            return True

        attempted = raw_scores.get(self.attempted_key)
        if is_number(attempted) and attempted > 0:
            return correct / attempted < self.min_accuracy
        return False


class BinAssigner:
    """Equal-width percentile bands over an ordered section list."""

    def __init__(self, sections: Sequence[str], safety_floor: Optional[SafetyFloor] = None):
        if not sections:
            raise ValueError("BinAssigner needs at least one section")
        self.sections: List[str] = list(sections)
        self.safety_floor = safety_floor or SafetyFloor()

    @property
    def lowest(self) -> str:
        return self.sections[0]

    def bin_index(self, percentile: float) -> int:
        """clamp(floor(percentile * K), 0, K - 1)"""
        k = len(self.sections)
        return min(max(int(math.floor(percentile * k)), 0), k - 1)

    def assign(self, student_id: str, percentile: float,
               raw_scores: Optional[Mapping[str, Optional[float]]] = None) -> SectionAssignment:
        if self.safety_floor.is_triggered(raw_scores):
            logger.debug(f"Safety floor placed {student_id} in {self.lowest}")
            return SectionAssignment(
                student_id=student_id,
                section=self.lowest,
                bin_index=0,
                percentile=percentile,
                safety_floor_applied=True,
            )

        index = self.bin_index(percentile)
        return SectionAssignment(
            student_id=student_id,
            section=self.sections[index],
            bin_index=index,
            percentile=percentile,
        )

    def index_of(self, section: str) -> int:
        try:
            return self.sections.index(section)
        except ValueError:
            raise UnknownSectionError(section) from None

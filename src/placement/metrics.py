"""
Metric extractors and per-grade score templates.

Different grades sit different tests (the Grade 1 written/oral test versus the
upper-grade written test), so raw scores arrive as a sparse key -> value map.
A MetricTemplate lists the extractors that know how to turn those raw values
into [0, 1] ratios, which keeps the Composite Scorer's metric loop data-driven.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Mapping, Optional, Tuple

from models import ScoreSection


logger = logging.getLogger(__name__)

WORD_READING_CORRECT = "word_reading_correct"
WORD_READING_ATTEMPTED = "word_reading_attempted"


@dataclass(frozen=True)
class MetricExtractor:
    """
    Normalizes one raw score.

    Exactly one denominator source is expected:
    benchmark_key (target of the student's current section), max_value
    (fixed test maximum) or denominator_key (another raw score).
    """
    name: str
    value_key: str
    label: str
    benchmark_key: Optional[str] = None
    max_value: Optional[float] = None
    denominator_key: Optional[str] = None

    def denominator(self, raw_scores: Mapping[str, Optional[float]],
                    targets: Mapping[str, Optional[float]]) -> Optional[float]:
        if self.benchmark_key is not None:
            return targets.get(self.benchmark_key)
        if self.denominator_key is not None:
            return raw_scores.get(self.denominator_key)
        return self.max_value

    def ratio(self, raw_scores: Mapping[str, Optional[float]],
              targets: Mapping[str, Optional[float]]) -> Optional[float]:
        """
        value / denominator clamped to [0, 1], or None when the metric is
        unavailable or its denominator is missing or not positive.
        """
        value = raw_scores.get(self.value_key)
        if not is_number(value):
            return None

        denominator = self.denominator(raw_scores, targets)
        if not is_number(denominator) or denominator <= 0:
            return None

        return min(max(value / denominator, 0.0), 1.0)


def is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


@dataclass(frozen=True)
class MetricTemplate:
    """Ordered set of extractors for one grade's test."""
    name: str
    extractors: Tuple[MetricExtractor, ...] = field(default_factory=tuple)

    def ratios(self, raw_scores: Mapping[str, Optional[float]],
               targets: Mapping[str, Optional[float]]) -> Dict[str, float]:
        """Ratios of every extractor that could be computed, keyed by extractor name."""
        result = {}
        for extractor in self.extractors:
            ratio = extractor.ratio(raw_scores, targets)
            if ratio is not None:
                result[extractor.name] = ratio
        return result

    def with_sections(self, sections: Iterable[ScoreSection]) -> "MetricTemplate":
        """
        Apply a cycle's configured score sections.

        A section with a positive max replaces the fixed maximum of the
        extractor reading the same key. Columns the template does not
        score, or scores against a benchmark or another raw score, are left
        alone.
        """
        maxima = {s.key: s.max for s in sections if s.max is not None and s.max > 0}
        if not any(e.value_key in maxima and e.max_value is not None for e in self.extractors):
            return self

        extractors = tuple(
            replace(e, max_value=maxima[e.value_key])
            if e.value_key in maxima and e.max_value is not None else e
            for e in self.extractors
        )
        ignored = sorted(set(maxima) - {e.value_key for e in self.extractors})
        if ignored:
            logger.debug(f"Template {self.name}: configured sections not scored: {ignored}")
        return MetricTemplate(name=self.name, extractors=extractors)


WORD_READING_ACCURACY = MetricExtractor(
    name="word_reading_accuracy",
    value_key=WORD_READING_CORRECT,
    label="Word Reading Accuracy",
    denominator_key=WORD_READING_ATTEMPTED,
)

UPPER_GRADE_TEMPLATE = MetricTemplate(
    name="upper_grade_written",
    extractors=(
        MetricExtractor("passage_cwpm", "passage_cwpm", "CWPM", benchmark_key="cwpm_end"),
        MetricExtractor("writing", "writing", "Writing", benchmark_key="writing_end"),
        MetricExtractor("written_mc", "written_mc", "Multiple Choice", max_value=21),
        WORD_READING_ACCURACY,
    ),
)

GRADE1_TEMPLATE = MetricTemplate(
    name="grade1_written_oral",
    extractors=(
        # Written test
        MetricExtractor("w_letter_names", "w_letter_names", "Letter Names", max_value=5),
        MetricExtractor("w_letter_sounds", "w_letter_sounds", "Letter Sounds", max_value=5),
        MetricExtractor("w_word_picture", "w_word_picture", "Word-Picture", max_value=10),
        MetricExtractor("w_passage_comp", "w_passage_comp", "Passage Comp", max_value=5),
        MetricExtractor("w_writing", "w_writing", "Writing", max_value=5),
        # Oral test
        MetricExtractor("o_alpha_names", "o_alpha_names", "Alphabet Names", max_value=16),
        MetricExtractor("o_alpha_sounds", "o_alpha_sounds", "Alphabet Sounds", max_value=16),
        MetricExtractor("o_alpha_words", "o_alpha_words", "Words Given", max_value=5),
        MetricExtractor("o_phoneme", "o_phoneme", "Phoneme Total", max_value=12),
        WORD_READING_ACCURACY,
    ),
)


class MetricRegistry:
    """Maps grades to score templates, with a fallback for unlisted grades."""

    def __init__(self, default: MetricTemplate = UPPER_GRADE_TEMPLATE,
                 by_grade: Optional[Dict[int, MetricTemplate]] = None):
        self.default = default
        self._by_grade: Dict[int, MetricTemplate] = dict(by_grade or {})

    def register(self, grade: int, template: MetricTemplate) -> None:
        self._by_grade[grade] = template

    def template_for(self, grade: int, sections: Optional[Iterable[ScoreSection]] = None) -> MetricTemplate:
        template = self._by_grade.get(grade, self.default)
        if sections:
            template = template.with_sections(sections)
        return template


def get_default_registry() -> MetricRegistry:
    return MetricRegistry(default=UPPER_GRADE_TEMPLATE, by_grade={1: GRADE1_TEMPLATE})

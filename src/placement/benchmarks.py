"""Per-section benchmark targets for one grade."""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

import yaml

from models import Benchmark


logger = logging.getLogger(__name__)


class BenchmarkRegistry:
    """
    Lookup table of target values keyed by section.

    Benchmarks normalize raw scores against the section a student is being
    evaluated out of, so lookups are always by the student's current section.
    """

    def __init__(self, grade: int, targets: Optional[Mapping[str, Mapping[str, Optional[float]]]] = None):
        self.grade = grade
        self._targets: Dict[str, Dict[str, Optional[float]]] = {
            section: dict(values) for section, values in (targets or {}).items()
        }

    @classmethod
    def from_records(cls, grade: int, records: Iterable[Benchmark]) -> "BenchmarkRegistry":
        targets = {}
        for record in records:
            if record.grade != grade:
                continue
            targets[record.section] = dict(record.targets)
        return cls(grade, targets)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], grade: int) -> "BenchmarkRegistry":
        """
        Load benchmarks from a YAML file shaped like:

            grades:
              3:
                Lily: {cwpm_end: 60, writing_end: 12}
                Camellia: {cwpm_end: 75, writing_end: 14}
        """
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        grades = data.get("grades", {})
        sections = grades.get(grade) or grades.get(str(grade)) or {}
        if not sections:
            logger.warning(f"No benchmarks for grade {grade} in {path}")
        return cls(grade, sections)

    def targets_for(self, section: str) -> Dict[str, Optional[float]]:
        """Targets for a section; an unknown section has no targets."""
        return dict(self._targets.get(section, {}))

    @property
    def sections(self) -> List[str]:
        return list(self._targets.keys())

    def __contains__(self, section: str) -> bool:
        return section in self._targets

    def __len__(self) -> int:
        return len(self._targets)

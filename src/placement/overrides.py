"""
Override Reconciler: the in-memory placement map edited during the meeting.

Automatic sections are fixed when the session is built; reassignment only
touches final sections. Whether a student is overridden is derived from the
two maps on every read rather than stored.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from models import PlacementRecord, SaveReport

from database.store import PlacementStore, save_each

from .errors import CycleFinalizedError, UnknownSectionError, UnknownStudentError


logger = logging.getLogger(__name__)


class OverrideReconciler:
    """
    Placement map for one cycle's meeting.

    Args:
        cycle_id: Cycle the placements belong to
        sections: Ordered section names; every final section must be one of them
        auto_sections: student_id -> automatically computed section
        final_sections: student_id -> chosen section (defaults to auto)
        read_only: True for sessions opened on a finalized cycle
        unplaced: Cohort students with no saved placement
    """

    def __init__(
        self,
        cycle_id: str,
        sections: Sequence[str],
        auto_sections: Mapping[str, str],
        final_sections: Optional[Mapping[str, str]] = None,
        read_only: bool = False,
        unplaced: Optional[Iterable[str]] = None,
    ):
        self.cycle_id = cycle_id
        self.sections = list(sections)
        self._auto: Dict[str, str] = dict(auto_sections)
        self._final: Dict[str, str] = dict(final_sections if final_sections is not None else auto_sections)
        self.read_only = read_only
        self.unplaced: List[str] = list(unplaced or [])
        self._attribution: Dict[str, str] = {}

        missing = set(self._auto) ^ set(self._final)
        if missing:
            raise ValueError(f"Auto and final placement maps differ in students: {sorted(missing)}")

    @classmethod
    def from_records(cls, cycle_id: str, sections: Sequence[str], records: Iterable[PlacementRecord],
                     read_only: bool = False, unplaced: Optional[Iterable[str]] = None) -> "OverrideReconciler":
        """Rebuild a session from saved placement rows, verbatim."""
        records = list(records)
        session = cls(
            cycle_id,
            sections,
            auto_sections={r.student_id: r.auto_section for r in records},
            final_sections={r.student_id: r.final_section for r in records},
            read_only=read_only,
            unplaced=unplaced,
        )
        session._attribution = {r.student_id: r.overridden_by for r in records if r.overridden_by}
        return session

    def __len__(self) -> int:
        return len(self._final)

    def __contains__(self, student_id: str) -> bool:
        return student_id in self._final

    @property
    def student_ids(self) -> List[str]:
        return list(self._final)

    def auto_section(self, student_id: str) -> str:
        self._require_student(student_id)
        return self._auto[student_id]

    def final_section(self, student_id: str) -> str:
        self._require_student(student_id)
        return self._final[student_id]

    def final_map(self) -> Dict[str, str]:
        return dict(self._final)

    def reassign(self, student_id: str, target_section: str) -> None:
        """Move a student's final section. The automatic section is untouched."""
        if self.read_only:
            raise CycleFinalizedError(self.cycle_id, action="reassign students")
        self._require_student(student_id)
        if target_section not in self.sections:
            raise UnknownSectionError(target_section)

        previous = self._final[student_id]
        self._final[student_id] = target_section
        logger.debug(f"Reassigned {student_id}: {previous} -> {target_section} (auto {self._auto[student_id]})")

    def reset(self, student_id: str) -> None:
        """Return a student to their automatic section."""
        self.reassign(student_id, self.auto_section(student_id))

    def is_overridden(self, student_id: str) -> bool:
        self._require_student(student_id)
        return self._final[student_id] != self._auto[student_id]

    def overrides(self) -> List[str]:
        return [sid for sid in self._final if self._final[sid] != self._auto[sid]]

    def section_counts(self) -> Dict[str, int]:
        """Students per configured section, zero-filled, in section order."""
        counts = Counter(self._final.values())
        return {section: counts.get(section, 0) for section in self.sections}

    def members(self, section: str) -> List[str]:
        if section not in self.sections:
            raise UnknownSectionError(section)
        return [sid for sid, final in self._final.items() if final == section]

    def records(self, operator_id: Optional[str] = None) -> List[PlacementRecord]:
        """
        Placement rows for every student; overridden_by is set only on overrides.

        Read-only sessions keep the attribution they were loaded with.
        """
        rows = []
        for sid, final in self._final.items():
            overridden_by = None
            if final != self._auto[sid]:
                overridden_by = self._attribution.get(sid) if self.read_only else operator_id
            rows.append(PlacementRecord(
                cycle_id=self.cycle_id,
                student_id=sid,
                auto_section=self._auto[sid],
                final_section=final,
                overridden_by=overridden_by,
            ))
        return rows

    async def save(self, store: PlacementStore, operator_id: Optional[str] = None) -> SaveReport:
        """
        Upsert every placement row, one at a time.

        Failures are counted in the returned report and do not stop later
        writes. Nothing is rolled back.
        """
        if self.read_only:
            raise CycleFinalizedError(self.cycle_id, action="save placements")
        return await self.persist(store, operator_id)

    async def persist(self, store: PlacementStore, operator_id: Optional[str] = None) -> SaveReport:
        """Upsert every row regardless of read-only state; finalize uses this to reapply a finalized cycle."""
        return await save_each(
            self.records(operator_id),
            store.upsert_placement_record,
            lambda r: r.student_id,
            label="placement",
        )

    def _require_student(self, student_id: str) -> None:
        if student_id not in self._final:
            raise UnknownStudentError(student_id)

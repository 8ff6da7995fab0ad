"""
Persistence gateway for leveling data.

PlacementStore is the contract the workflow depends on: async reads of the
roster, benchmarks and grade history, and idempotent upserts keyed by
(cycle_id, student_id) for score, rating and placement records. Re-saving
overwrites the previous value entirely; there is no merge and no history.

InMemoryStore implements the contract over dictionaries and is used by tests
and offline runs. PostgresPlacementStore (queries.py) is the production
implementation.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from models import (
    AnecdotalRating,
    Benchmark,
    ClassroomGrade,
    CycleStatus,
    LevelingCycle,
    PlacementRecord,
    RosterNote,
    SaveReport,
    ScoreRecord,
    ScoreSection,
    Student,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

RecordKey = Tuple[str, str]  # (cycle_id, student_id)


class PlacementStore(ABC):
    """Abstract interface for leveling persistence."""

    # Cycles
    @abstractmethod
    async def get_cycle(self, cycle_id: str) -> Optional[LevelingCycle]:
        """Get a cycle by id."""
        pass

    @abstractmethod
    async def list_cycles(self, grade: Optional[int] = None) -> List[LevelingCycle]:
        """List cycles, newest first."""
        pass

    @abstractmethod
    async def create_cycle(self, cycle: LevelingCycle) -> LevelingCycle:
        """Insert a new cycle and return it as stored."""
        pass

    @abstractmethod
    async def update_cycle_status(self, cycle_id: str, status: CycleStatus,
                                  finalized_at: Optional[datetime] = None) -> None:
        """Set a cycle's status (and finalized_at when finalizing)."""
        pass

    @abstractmethod
    async def update_cycle_sections(self, cycle_id: str, sections: List[ScoreSection]) -> None:
        """Replace the score-entry sections stored in the cycle's config."""
        pass

    # Roster (read, plus the section write used on finalize)
    @abstractmethod
    async def get_active_students(self, grade: int) -> List[Student]:
        """Active students of a grade, ordered by name."""
        pass

    @abstractmethod
    async def get_student(self, student_id: str) -> Optional[Student]:
        pass

    @abstractmethod
    async def update_student_section(self, student_id: str, section: str) -> None:
        """Write a student's current section."""
        pass

    @abstractmethod
    async def add_roster_note(self, note: RosterNote) -> None:
        """Append an audit note to the student's log."""
        pass

    # Inputs owned by other collaborators
    @abstractmethod
    async def get_benchmarks(self, grade: int) -> List[Benchmark]:
        pass

    @abstractmethod
    async def get_classroom_grades(self, student_ids: Iterable[str]) -> Dict[str, List[ClassroomGrade]]:
        """Grade history keyed by student id."""
        pass

    # Keyed records
    @abstractmethod
    async def get_score_records(self, cycle_id: str) -> List[ScoreRecord]:
        pass

    @abstractmethod
    async def upsert_score_record(self, record: ScoreRecord) -> None:
        pass

    @abstractmethod
    async def get_anecdotal_ratings(self, cycle_id: str) -> List[AnecdotalRating]:
        pass

    @abstractmethod
    async def upsert_anecdotal_rating(self, rating: AnecdotalRating) -> None:
        pass

    @abstractmethod
    async def get_placement_records(self, cycle_id: str) -> List[PlacementRecord]:
        pass

    @abstractmethod
    async def upsert_placement_record(self, record: PlacementRecord) -> None:
        pass


async def save_each(
    items: Iterable[T],
    writer: Callable[[T], Awaitable[Any]],
    item_id: Callable[[T], str],
    label: str = "record",
) -> SaveReport:
    """
    Write items one at a time, counting failures instead of aborting.

    This is best-effort and non-transactional: a failure on one item leaves
    earlier writes in place and does not stop later ones. There is no
    cancellation; the loop always runs to completion.
    """
    report = SaveReport()
    for item in items:
        report.attempted += 1
        try:
            await writer(item)
            report.saved += 1
        except Exception as e:
            report.failed_ids.append(item_id(item))
            logger.error(f"Failed to save {label} for {item_id(item)}: {e}")

    if report.failed_ids:
        logger.warning(f"Saved {report.saved}/{report.attempted} {label}s with {report.errors} error(s)")
    else:
        logger.info(f"Saved {report.saved} {label}s")
    return report


class InMemoryStore(PlacementStore):
    """
    Dictionary-backed store.

    Writes replace whole records under an asyncio.Lock; concurrent writes to
    the same key are last-write-wins, as with the database.
    """

    def __init__(
        self,
        students: Optional[Iterable[Student]] = None,
        benchmarks: Optional[Iterable[Benchmark]] = None,
        classroom_grades: Optional[Iterable[ClassroomGrade]] = None,
    ):
        self._lock = asyncio.Lock()
        self._cycles: Dict[str, LevelingCycle] = {}
        self._students: Dict[str, Student] = {s.id: s.model_copy() for s in (students or [])}
        self._benchmarks: List[Benchmark] = list(benchmarks or [])
        self._grades: List[ClassroomGrade] = list(classroom_grades or [])
        self._scores: Dict[RecordKey, ScoreRecord] = {}
        self._ratings: Dict[RecordKey, AnecdotalRating] = {}
        self._placements: Dict[RecordKey, PlacementRecord] = {}
        self.notes: List[RosterNote] = []

    async def get_cycle(self, cycle_id: str) -> Optional[LevelingCycle]:
        async with self._lock:
            cycle = self._cycles.get(cycle_id)
            return cycle.model_copy(deep=True) if cycle else None

    async def list_cycles(self, grade: Optional[int] = None) -> List[LevelingCycle]:
        async with self._lock:
            cycles = [c for c in self._cycles.values() if grade is None or c.grade == grade]
        cycles.sort(key=lambda c: c.created_at or datetime.min, reverse=True)
        return [c.model_copy(deep=True) for c in cycles]

    async def create_cycle(self, cycle: LevelingCycle) -> LevelingCycle:
        async with self._lock:
            stored = cycle.model_copy(deep=True)
            if not stored.id:
                stored.id = str(uuid.uuid4())
            if stored.created_at is None:
                stored.created_at = datetime.now()
            self._cycles[stored.id] = stored
            return stored.model_copy(deep=True)

    async def update_cycle_status(self, cycle_id: str, status: CycleStatus,
                                  finalized_at: Optional[datetime] = None) -> None:
        async with self._lock:
            cycle = self._cycles.get(cycle_id)
            if cycle is None:
                raise KeyError(cycle_id)
            cycle.status = status
            if finalized_at is not None:
                cycle.finalized_at = finalized_at

    async def update_cycle_sections(self, cycle_id: str, sections: List[ScoreSection]) -> None:
        async with self._lock:
            cycle = self._cycles.get(cycle_id)
            if cycle is None:
                raise KeyError(cycle_id)
            cycle.test_sections = [s.model_copy() for s in sections]

    async def get_active_students(self, grade: int) -> List[Student]:
        async with self._lock:
            students = [s.model_copy() for s in self._students.values() if s.grade == grade and s.active]
        return sorted(students, key=lambda s: ((s.english_name or "").lower(), s.id))

    async def get_student(self, student_id: str) -> Optional[Student]:
        async with self._lock:
            student = self._students.get(student_id)
            return student.model_copy() if student else None

    async def update_student_section(self, student_id: str, section: str) -> None:
        async with self._lock:
            student = self._students.get(student_id)
            if student is None:
                raise KeyError(student_id)
            student.current_section = section

    async def add_roster_note(self, note: RosterNote) -> None:
        async with self._lock:
            self.notes.append(note.model_copy())

    async def get_benchmarks(self, grade: int) -> List[Benchmark]:
        return [b.model_copy(deep=True) for b in self._benchmarks if b.grade == grade]

    async def get_classroom_grades(self, student_ids: Iterable[str]) -> Dict[str, List[ClassroomGrade]]:
        wanted = set(student_ids)
        result: Dict[str, List[ClassroomGrade]] = {}
        for grade in self._grades:
            if grade.student_id in wanted:
                result.setdefault(grade.student_id, []).append(grade.model_copy())
        return result

    async def get_score_records(self, cycle_id: str) -> List[ScoreRecord]:
        async with self._lock:
            return [r.model_copy(deep=True) for (cid, _), r in self._scores.items() if cid == cycle_id]

    async def upsert_score_record(self, record: ScoreRecord) -> None:
        async with self._lock:
            self._scores[(record.cycle_id, record.student_id)] = record.model_copy(deep=True)

    async def get_anecdotal_ratings(self, cycle_id: str) -> List[AnecdotalRating]:
        async with self._lock:
            return [r.model_copy() for (cid, _), r in self._ratings.items() if cid == cycle_id]

    async def upsert_anecdotal_rating(self, rating: AnecdotalRating) -> None:
        async with self._lock:
            self._ratings[(rating.cycle_id, rating.student_id)] = rating.model_copy()

    async def get_placement_records(self, cycle_id: str) -> List[PlacementRecord]:
        async with self._lock:
            return [r.model_copy() for (cid, _), r in self._placements.items() if cid == cycle_id]

    async def upsert_placement_record(self, record: PlacementRecord) -> None:
        async with self._lock:
            self._placements[(record.cycle_id, record.student_id)] = record.model_copy()

"""
Placement Workflow: phase state machine and the operations around it.

    setup → scores ⇄ anecdotal ⇄ meeting → finalized

Setup can be left but never re-entered. Scores, anecdotal and meeting are
freely revisitable; the meeting is always entered through enter_meeting()
so it opens with a placement map. Finalized is terminal and only reachable
through finalize(). Every operation takes the cycle id explicitly; the workflow keeps
no notion of a current cycle.
"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional

from models import (
    AnecdotalRating,
    CycleStatus,
    FinalizeReport,
    LevelingCycle,
    RosterNote,
    SaveReport,
    ScoreRecord,
    ScoreSection,
    Semester,
    Student,
)
from models.utils import default_cycle_name

from database.store import PlacementStore, save_each

from .engine import CohortSnapshot, PlacementEngine, load_cohort_snapshot
from .errors import (
    CycleFinalizedError,
    CycleNotFoundError,
    EmergencyMoveError,
    FinalizeNotConfirmedError,
    InvalidPhaseTransitionError,
    UnknownSectionError,
    UnknownStudentError,
)
from .metrics import MetricRegistry
from .overrides import OverrideReconciler


logger = logging.getLogger(__name__)

# Phases enter_phase() can set directly; the meeting is opened with enter_meeting()
DIRECT_PHASES = (CycleStatus.SCORES, CycleStatus.ANECDOTAL)

EMERGENCY_NOTE_PREFIX = "EMERGENCY LEVEL CHANGE"


class PlacementWorkflow:
    """
    Drives a leveling cycle from creation to finalization.

    Args:
        store: Persistence gateway
        config: LevelingConfig with sections, weights and safety floor
        registry: Metric templates per grade (defaults to the built-in registry)
    """

    def __init__(self, store: PlacementStore, config, registry: Optional[MetricRegistry] = None):
        self.store = store
        self.config = config
        self.engine = PlacementEngine.from_config(config, registry)

    @property
    def sections(self) -> List[str]:
        return list(self.config.sections)

    async def get_cycle(self, cycle_id: str) -> LevelingCycle:
        cycle = await self.store.get_cycle(cycle_id)
        if cycle is None:
            raise CycleNotFoundError(cycle_id)
        return cycle

    async def _get_open_cycle(self, cycle_id: str, action: str) -> LevelingCycle:
        cycle = await self.get_cycle(cycle_id)
        if cycle.is_finalized:
            raise CycleFinalizedError(cycle_id, action=action)
        return cycle

    async def create_cycle(
        self,
        grade: int,
        academic_year: str,
        semester: Semester,
        created_by: Optional[str] = None,
        name: Optional[str] = None,
        test_sections: Optional[Iterable[ScoreSection]] = None,
    ) -> LevelingCycle:
        """Create a cycle in the setup phase."""
        semester = Semester(semester)
        cycle = LevelingCycle(
            id="",
            name=name or default_cycle_name(semester, grade),
            grade=grade,
            academic_year=academic_year,
            semester=semester,
            status=CycleStatus.SETUP,
            created_by=created_by,
            test_sections=list(test_sections or []),
        )
        created = await self.store.create_cycle(cycle)
        logger.info(f"Created cycle {created.id}: {created.name}")
        return created

    async def enter_phase(self, cycle_id: str, phase: CycleStatus) -> LevelingCycle:
        """
        Move a cycle to the scores or anecdotal phase.

        The meeting phase is entered through enter_meeting(), which also
        builds the placement map.

        Raises:
            CycleFinalizedError: the cycle is already finalized
            InvalidPhaseTransitionError: target is meeting or finalized, or setup after it was left
        """
        phase = CycleStatus(phase)
        cycle = await self._get_open_cycle(cycle_id, action=f"enter {phase.value}")

        if phase == CycleStatus.SETUP:
            if cycle.status != CycleStatus.SETUP:
                raise InvalidPhaseTransitionError(f"Cycle {cycle_id} cannot return to setup from {cycle.status.value}")
        elif phase == CycleStatus.MEETING:
            raise InvalidPhaseTransitionError("The meeting is opened through enter_meeting()")
        elif phase not in DIRECT_PHASES:
            raise InvalidPhaseTransitionError("A cycle can only be finalized through finalize()")

        if cycle.status != phase:
            await self.store.update_cycle_status(cycle_id, phase)
            logger.info(f"Cycle {cycle_id}: {cycle.status.value} -> {phase.value}")
            cycle.status = phase
        return cycle

    async def update_cycle_sections(self, cycle_id: str, sections: Iterable[ScoreSection]) -> LevelingCycle:
        """
        Replace the cycle's score-entry sections.

        Configured maxima replace the fixed maxima of the matching metrics the
        next time placements are computed; meetings with saved placements keep
        them as they are.
        """
        cycle = await self._get_open_cycle(cycle_id, action="edit score sections")
        sections = list(sections)
        keys = [s.key for s in sections]
        if len(set(keys)) != len(keys):
            raise ValueError("Score section keys must be unique")

        await self.store.update_cycle_sections(cycle_id, sections)
        logger.info(f"Cycle {cycle_id}: score sections set to {keys}")
        cycle.test_sections = sections
        return cycle

    async def save_score_records(self, cycle_id: str, records: Iterable[ScoreRecord],
                                 entered_by: Optional[str] = None) -> SaveReport:
        """
        Upsert raw score records for a cycle.

        previous_section is filled from the roster when the record does not
        carry one.
        """
        cycle = await self._get_open_cycle(cycle_id, action="save scores")
        roster = {s.id: s for s in await self.store.get_active_students(cycle.grade)}

        prepared = []
        for record in records:
            student = roster.get(record.student_id)
            prepared.append(record.model_copy(update={
                "cycle_id": cycle_id,
                "previous_section": record.previous_section or (student.current_section if student else None),
                "entered_by": record.entered_by or entered_by,
            }))

        return await save_each(prepared, self.store.upsert_score_record, lambda r: r.student_id, label="score")

    async def save_anecdotal_ratings(self, cycle_id: str, ratings: Iterable[AnecdotalRating],
                                     rater_id: Optional[str] = None) -> SaveReport:
        await self._get_open_cycle(cycle_id, action="save ratings")
        prepared = [
            rating.model_copy(update={"cycle_id": cycle_id, "rater_id": rating.rater_id or rater_id})
            for rating in ratings
        ]
        return await save_each(prepared, self.store.upsert_anecdotal_rating, lambda r: r.student_id, label="rating")

    async def load_snapshot(self, cycle_id: str) -> CohortSnapshot:
        cycle = await self.get_cycle(cycle_id)
        return await load_cohort_snapshot(self.store, cycle)

    async def enter_meeting(self, cycle_id: str) -> OverrideReconciler:
        """
        Open the placement meeting.

        Placements are computed only when the cycle has no saved placement
        rows; otherwise the saved rows are loaded as they are, and cohort
        students missing from them are reported as unplaced. Computed
        placements are not persisted here.

        A finalized cycle opens read-only and keeps its status.
        """
        cycle = await self.get_cycle(cycle_id)
        read_only = cycle.is_finalized

        records = await self.store.get_placement_records(cycle_id)
        if records:
            cohort_ids = [s.id for s in await self.store.get_active_students(cycle.grade)]
            saved_ids = {r.student_id for r in records}
            unplaced = [sid for sid in cohort_ids if sid not in saved_ids]
            if unplaced:
                logger.warning(f"Cycle {cycle_id}: {len(unplaced)} cohort student(s) have no saved placement")
            session = OverrideReconciler.from_records(
                cycle_id, self.sections, records, read_only=read_only, unplaced=unplaced,
            )
            logger.info(f"Loaded {len(records)} saved placements for cycle {cycle_id}")
        else:
            snapshot = await load_cohort_snapshot(self.store, cycle)
            auto = self.engine.auto_placements(snapshot)
            session = OverrideReconciler(cycle_id, self.sections, auto, read_only=read_only)

        if not read_only and cycle.status != CycleStatus.MEETING:
            await self.store.update_cycle_status(cycle_id, CycleStatus.MEETING)
            logger.info(f"Cycle {cycle_id}: {cycle.status.value} -> {CycleStatus.MEETING.value}")

        return session

    async def apply_placements_to_roster(self, placements: Iterable[tuple]) -> SaveReport:
        """Write (student_id, section) pairs into the roster, counting failures."""
        return await save_each(
            list(placements),
            lambda item: self.store.update_student_section(item[0], item[1]),
            lambda item: item[0],
            label="roster section",
        )

    async def finalize(self, session: OverrideReconciler, operator_id: Optional[str] = None,
                       confirmed: bool = False) -> FinalizeReport:
        """
        Persist the meeting's placements and apply them to the roster.

        Saves every placement row, writes each final section into the
        roster, then marks the cycle finalized. Per-student failures are
        counted in the report. An existing finalized_at is kept, so running
        this again with the read-only session of a finalized cycle leaves
        the same state behind.

        Raises:
            FinalizeNotConfirmedError: confirmed is not True
            CycleFinalizedError: an editable session targets a finalized cycle
        """
        if confirmed is not True:
            raise FinalizeNotConfirmedError(
                "Finalize placements? This will update all student class assignments. Pass confirmed=True."
            )

        cycle = await self.get_cycle(session.cycle_id)
        if cycle.is_finalized and not session.read_only:
            raise CycleFinalizedError(cycle.id, action="finalize with an editable session")

        placements = await session.persist(self.store, operator_id)
        roster = await self.apply_placements_to_roster(session.final_map().items())

        finalized_at = cycle.finalized_at or datetime.now()
        await self.store.update_cycle_status(cycle.id, CycleStatus.FINALIZED, finalized_at=finalized_at)

        report = FinalizeReport(cycle_id=cycle.id, placements=placements, roster=roster, finalized_at=finalized_at)
        if report.errors:
            logger.warning(f"Cycle {cycle.id}: {report.message()}")
        else:
            logger.info(f"Cycle {cycle.id}: {report.message()} ({len(session)} students)")
        return report

    async def emergency_move(self, student_id: str, target_section: str, reason: str,
                             operator_id: Optional[str] = None) -> RosterNote:
        """
        Move a student outside of any cycle and log the change on the roster.

        Only grades listed in emergency_move_grades are eligible.
        """
        if not reason or not reason.strip():
            raise EmergencyMoveError("A reason is required for an emergency level change")
        if target_section not in self.sections:
            raise UnknownSectionError(target_section)

        student: Optional[Student] = await self.store.get_student(student_id)
        if student is None:
            raise UnknownStudentError(student_id)
        if not student.active:
            raise EmergencyMoveError(f"Student {student_id} is not active")
        if student.grade not in self.config.emergency_move_grades:
            raise EmergencyMoveError(f"Emergency moves are not enabled for grade {student.grade}")

        old_section = student.current_section
        if old_section == target_section:
            raise EmergencyMoveError(f"{student.display_name} is already in {target_section}")

        await self.store.update_student_section(student_id, target_section)
        note = RosterNote(
            student_id=student_id,
            logged_on=date.today(),
            note=f"{EMERGENCY_NOTE_PREFIX}: {old_section} -> {target_section}. Reason: {reason.strip()}",
            teacher_id=operator_id,
        )
        await self.store.add_roster_note(note)

        logger.info(f"Emergency move: {student.display_name} {old_section} -> {target_section}")
        return note

"""
PostgreSQL implementation of the placement store.

Reads and writes the Supabase leveling tables through the asyncpg pool.
Keyed records use INSERT ... ON CONFLICT (level_test_id, student_id) DO UPDATE,
so a re-save overwrites the whole row.
"""

import json
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from models import (
    AnecdotalRating,
    Benchmark,
    ClassroomGrade,
    CycleStatus,
    LevelingCycle,
    PlacementRecord,
    RosterNote,
    ScoreRecord,
    ScoreSection,
    Student,
)
from models.utils import (
    benchmark_from_row,
    classroom_grade_from_row,
    cycle_from_row,
    placement_from_row,
    rating_from_row,
    score_record_from_row,
    student_from_row,
)

from .connection import DatabasePool, get_database_pool
from .store import PlacementStore


logger = logging.getLogger(__name__)


STUDENT_COLUMNS = "id, grade, english_class, is_active, english_name, korean_name"

CYCLE_COLUMNS = "id, name, grade, academic_year, semester, status, created_by, created_at, finalized_at, config"


class PostgresPlacementStore(PlacementStore):
    """
    Placement store backed by the asyncpg pool.

    The pool is resolved lazily from the global get_database_pool() unless
    one is passed in.
    """

    def __init__(self, pool: Optional[DatabasePool] = None):
        self._pool = pool

    async def _get_pool(self) -> DatabasePool:
        if self._pool is None:
            self._pool = await get_database_pool()
        return self._pool

    # Cycles

    async def get_cycle(self, cycle_id: str) -> Optional[LevelingCycle]:
        query = f"SELECT {CYCLE_COLUMNS} FROM public.level_tests WHERE id = $1"
        pool = await self._get_pool()
        row = await pool.execute_query_one(query, cycle_id)
        return cycle_from_row(row) if row else None

    async def list_cycles(self, grade: Optional[int] = None) -> List[LevelingCycle]:
        params = []
        query = f"SELECT {CYCLE_COLUMNS} FROM public.level_tests"
        if grade is not None:
            query += " WHERE grade = $1"
            params.append(grade)
        query += " ORDER BY created_at DESC"

        pool = await self._get_pool()
        rows = await pool.execute_query(query, *params)
        return [cycle_from_row(row) for row in rows]

    async def create_cycle(self, cycle: LevelingCycle) -> LevelingCycle:
        config = {"sections": [s.model_dump() for s in cycle.test_sections]}
        query = f"""
        INSERT INTO public.level_tests (name, grade, academic_year, semester, status, created_by, config)
        VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb)
        RETURNING {CYCLE_COLUMNS}
        """
        pool = await self._get_pool()
        row = await pool.execute_query_one(
            query,
            cycle.name,
            cycle.grade,
            cycle.academic_year,
            cycle.semester.value,
            cycle.status.value,
            cycle.created_by,
            json.dumps(config),
        )
        created = cycle_from_row(row)
        logger.info(f"Created leveling cycle {created.id} ({created.name})")
        return created

    async def update_cycle_status(self, cycle_id: str, status: CycleStatus,
                                  finalized_at: Optional[datetime] = None) -> None:
        pool = await self._get_pool()
        if finalized_at is not None:
            await pool.execute_command(
                "UPDATE public.level_tests SET status = $2, finalized_at = $3 WHERE id = $1",
                cycle_id, status.value, finalized_at,
            )
        else:
            await pool.execute_command(
                "UPDATE public.level_tests SET status = $2 WHERE id = $1",
                cycle_id, status.value,
            )

    async def update_cycle_sections(self, cycle_id: str, sections: List[ScoreSection]) -> None:
        """Replace config.sections, keeping any other keys of the config JSONB."""
        query = """
        UPDATE public.level_tests
        SET config = jsonb_set(COALESCE(config, '{}'::jsonb), '{sections}', $2::jsonb)
        WHERE id = $1
        """
        pool = await self._get_pool()
        await pool.execute_command(query, cycle_id, json.dumps([s.model_dump() for s in sections]))
        logger.info(f"Updated score sections for cycle {cycle_id} ({len(sections)} sections)")

    # Roster

    async def get_active_students(self, grade: int) -> List[Student]:
        query = f"""
        SELECT {STUDENT_COLUMNS}
        FROM public.students
        WHERE grade = $1 AND is_active = true
        ORDER BY english_name
        """
        pool = await self._get_pool()
        rows = await pool.execute_query(query, grade)
        return [student_from_row(row) for row in rows]

    async def get_student(self, student_id: str) -> Optional[Student]:
        query = f"SELECT {STUDENT_COLUMNS} FROM public.students WHERE id = $1"
        pool = await self._get_pool()
        row = await pool.execute_query_one(query, student_id)
        return student_from_row(row) if row else None

    async def update_student_section(self, student_id: str, section: str) -> None:
        pool = await self._get_pool()
        await pool.execute_command(
            "UPDATE public.students SET english_class = $2 WHERE id = $1",
            student_id, section,
        )

    async def add_roster_note(self, note: RosterNote) -> None:
        query = """
        INSERT INTO public.behavior_logs (student_id, date, type, note, is_flagged, teacher_id)
        VALUES ($1, $2, $3, $4, $5, $6)
        """
        pool = await self._get_pool()
        await pool.execute_command(
            query, note.student_id, note.logged_on, note.type, note.note, note.is_flagged, note.teacher_id,
        )

    # Collaborator-owned inputs

    async def get_benchmarks(self, grade: int) -> List[Benchmark]:
        pool = await self._get_pool()
        rows = await pool.execute_query("SELECT * FROM public.class_benchmarks WHERE grade = $1", grade)
        return [benchmark_from_row(row) for row in rows]

    async def get_classroom_grades(self, student_ids: Iterable[str]) -> Dict[str, List[ClassroomGrade]]:
        ids = list(student_ids)
        if not ids:
            return {}

        query = """
        SELECT student_id, domain, score
        FROM public.semester_grades
        WHERE student_id = ANY($1::uuid[])
        """
        pool = await self._get_pool()
        rows = await pool.execute_query(query, ids)

        grades: Dict[str, List[ClassroomGrade]] = {}
        for row in rows:
            grade = classroom_grade_from_row(row)
            grades.setdefault(grade.student_id, []).append(grade)
        return grades

    # Score records

    async def get_score_records(self, cycle_id: str) -> List[ScoreRecord]:
        query = """
        SELECT level_test_id, student_id, raw_scores, previous_class, entered_by
        FROM public.level_test_scores
        WHERE level_test_id = $1
        """
        pool = await self._get_pool()
        rows = await pool.execute_query(query, cycle_id)
        return [score_record_from_row(row) for row in rows]

    async def upsert_score_record(self, record: ScoreRecord) -> None:
        query = """
        INSERT INTO public.level_test_scores (level_test_id, student_id, raw_scores, previous_class, entered_by)
        VALUES ($1, $2, $3::jsonb, $4, $5)
        ON CONFLICT (level_test_id, student_id) DO UPDATE SET
            raw_scores = EXCLUDED.raw_scores,
            previous_class = EXCLUDED.previous_class,
            entered_by = EXCLUDED.entered_by
        """
        pool = await self._get_pool()
        await pool.execute_command(
            query,
            record.cycle_id,
            record.student_id,
            json.dumps(record.raw_scores),
            record.previous_section,
            record.entered_by,
        )

    # Anecdotal ratings

    async def get_anecdotal_ratings(self, cycle_id: str) -> List[AnecdotalRating]:
        query = """
        SELECT level_test_id, student_id, teacher_id, receptive_language, productive_language,
               engagement_pace, placement_recommendation, notes, is_watchlist, teacher_recommends
        FROM public.teacher_anecdotal_ratings
        WHERE level_test_id = $1
        """
        pool = await self._get_pool()
        rows = await pool.execute_query(query, cycle_id)
        return [rating_from_row(row) for row in rows]

    async def upsert_anecdotal_rating(self, rating: AnecdotalRating) -> None:
        query = """
        INSERT INTO public.teacher_anecdotal_ratings (
            level_test_id, student_id, teacher_id, receptive_language, productive_language,
            engagement_pace, placement_recommendation, notes, is_watchlist, teacher_recommends
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
        ON CONFLICT (level_test_id, student_id) DO UPDATE SET
            teacher_id = EXCLUDED.teacher_id,
            receptive_language = EXCLUDED.receptive_language,
            productive_language = EXCLUDED.productive_language,
            engagement_pace = EXCLUDED.engagement_pace,
            placement_recommendation = EXCLUDED.placement_recommendation,
            notes = EXCLUDED.notes,
            is_watchlist = EXCLUDED.is_watchlist,
            teacher_recommends = EXCLUDED.teacher_recommends
        """
        pool = await self._get_pool()
        await pool.execute_command(
            query,
            rating.cycle_id,
            rating.student_id,
            rating.rater_id,
            rating.receptive_language,
            rating.productive_language,
            rating.engagement_pace,
            rating.placement_recommendation,
            rating.notes,
            rating.is_watchlist,
            rating.teacher_recommends.value if rating.teacher_recommends else None,
        )

    # Placements

    async def get_placement_records(self, cycle_id: str) -> List[PlacementRecord]:
        query = """
        SELECT level_test_id, student_id, auto_placement, final_placement, is_overridden, override_by
        FROM public.level_test_placements
        WHERE level_test_id = $1
        """
        pool = await self._get_pool()
        rows = await pool.execute_query(query, cycle_id)
        return [placement_from_row(row) for row in rows]

    async def upsert_placement_record(self, record: PlacementRecord) -> None:
        row = record.to_row()
        query = """
        INSERT INTO public.level_test_placements (
            level_test_id, student_id, auto_placement, final_placement, is_overridden, override_by
        )
        VALUES ($1, $2, $3, $4, $5, $6)
        ON CONFLICT (level_test_id, student_id) DO UPDATE SET
            auto_placement = EXCLUDED.auto_placement,
            final_placement = EXCLUDED.final_placement,
            is_overridden = EXCLUDED.is_overridden,
            override_by = EXCLUDED.override_by
        """
        pool = await self._get_pool()
        await pool.execute_command(
            query,
            row["level_test_id"],
            row["student_id"],
            row["auto_placement"],
            row["final_placement"],
            row["is_overridden"],
            row["override_by"],
        )

"""Shared fixtures: a small grade 3 cohort seeded into an in-memory store."""

import pytest
import pytest_asyncio

from cohort_leveling.config import DEFAULT_SECTIONS, LevelingConfig
from database import InMemoryStore
from models import AnecdotalRating, Benchmark, ClassroomGrade, ScoreRecord, Semester, Student
from placement import PlacementWorkflow


@pytest.fixture
def sections():
    return list(DEFAULT_SECTIONS)


@pytest.fixture
def leveling_config():
    return LevelingConfig(sections=list(DEFAULT_SECTIONS))


@pytest.fixture
def students():
    """Three grade 3 students in Daisy plus one inactive and one grade 4 student."""
    return [
        Student(id="a", grade=3, current_section="Daisy", english_name="Ava"),
        Student(id="b", grade=3, current_section="Daisy", english_name="Ben"),
        Student(id="c", grade=3, current_section="Daisy", english_name="Cleo"),
        Student(id="x", grade=3, current_section="Lily", english_name="Xander", active=False),
        Student(id="g4", grade=4, current_section="Lily", english_name="Gwen"),
    ]


@pytest.fixture
def benchmarks():
    return [
        Benchmark(grade=3, section="Daisy", targets={"cwpm_end": 100, "writing_end": 20}),
        Benchmark(grade=3, section="Lily", targets={"cwpm_end": 60, "writing_end": 12}),
    ]


@pytest.fixture
def classroom_grades():
    return [
        ClassroomGrade(student_id="a", domain="reading", score=90),
        ClassroomGrade(student_id="b", domain="reading", score=20),
        ClassroomGrade(student_id="c", domain="reading", score=50),
    ]


def make_scores(cycle_id):
    """A: 0.84 composite, B: lowest, C: middle."""
    return [
        ScoreRecord(cycle_id=cycle_id, student_id="a", raw_scores={"passage_cwpm": 80, "writing": 18}),
        ScoreRecord(cycle_id=cycle_id, student_id="b", raw_scores={"passage_cwpm": 10, "writing": 2}),
        ScoreRecord(cycle_id=cycle_id, student_id="c", raw_scores={"passage_cwpm": 50, "writing": 10}),
    ]


def make_ratings(cycle_id):
    return [
        AnecdotalRating(cycle_id=cycle_id, student_id="a", receptive_language=3, productive_language=3,
                        engagement_pace=3, placement_recommendation=3),
        AnecdotalRating(cycle_id=cycle_id, student_id="b", receptive_language=1, productive_language=1,
                        engagement_pace=1, placement_recommendation=1),
        AnecdotalRating(cycle_id=cycle_id, student_id="c", receptive_language=2, productive_language=2,
                        engagement_pace=2, placement_recommendation=2),
    ]


@pytest.fixture
def store(students, benchmarks, classroom_grades):
    return InMemoryStore(students=students, benchmarks=benchmarks, classroom_grades=classroom_grades)


@pytest.fixture
def workflow(store, leveling_config):
    return PlacementWorkflow(store, leveling_config)


@pytest_asyncio.fixture
async def seeded_cycle(workflow):
    """A grade 3 cycle in the anecdotal phase with scores and ratings saved."""
    cycle = await workflow.create_cycle(3, "2025-2026", Semester.SPRING, created_by="admin")
    await workflow.enter_phase(cycle.id, "scores")
    await workflow.save_score_records(cycle.id, make_scores(cycle.id), entered_by="t1")
    await workflow.enter_phase(cycle.id, "anecdotal")
    await workflow.save_anecdotal_ratings(cycle.id, make_ratings(cycle.id), rater_id="t1")
    return await workflow.get_cycle(cycle.id)


@pytest.fixture
def score_factory():
    return make_scores


@pytest.fixture
def rating_factory():
    return make_ratings

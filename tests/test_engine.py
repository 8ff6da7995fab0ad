"""Tests for the placement engine over cohort snapshots."""

import pytest
import pytest_asyncio

from models import AnecdotalRating, ClassroomGrade, LevelingCycle, ScoreRecord, ScoreSection, Semester, Student
from placement import BenchmarkRegistry, CohortSnapshot, PlacementEngine, load_cohort_snapshot


@pytest.fixture
def cycle():
    return LevelingCycle(id="cyc", name="Spring 2026 - Grade 3", grade=3,
                         academic_year="2025-2026", semester=Semester.SPRING)


@pytest.fixture
def engine(leveling_config):
    return PlacementEngine.from_config(leveling_config)


@pytest_asyncio.fixture
async def snapshot(store, seeded_cycle):
    return await load_cohort_snapshot(store, seeded_cycle)


class TestPlacementEngine:

    @pytest.mark.asyncio
    async def test_worked_example(self, engine, snapshot):
        """B, C, A rank 0, 0.5, 1 and land in Lily, Sunflower, Snapdragon."""
        placements = engine.run(snapshot)
        by_id = {p.student_id: p for p in placements}

        assert [p.student_id for p in placements] == ["b", "c", "a"]
        assert by_id["a"].score.composite == pytest.approx(0.84)
        assert [p.percentile for p in placements] == [0.0, 0.5, 1.0]
        assert by_id["b"].suggested_section == "Lily"
        assert by_id["c"].suggested_section == "Sunflower"
        assert by_id["a"].suggested_section == "Snapdragon"
        assert all(p.is_borderline for p in placements)

    @pytest.mark.asyncio
    async def test_safety_floor_in_cohort(self, engine, snapshot):
        """B with 2/40 word reading stays in the lowest section even with the top composite."""
        snapshot.scores["b"] = ScoreRecord(
            cycle_id="cyc", student_id="b",
            raw_scores={"passage_cwpm": 100, "writing": 20, "word_reading_correct": 2, "word_reading_attempted": 40},
        )
        snapshot.grades["b"] = [ClassroomGrade(student_id="b", domain="reading", score=100)]
        snapshot.ratings["b"] = AnecdotalRating(cycle_id="cyc", student_id="b", receptive_language=4,
                                                productive_language=4, engagement_pace=4, placement_recommendation=4)
        placements = engine.run(snapshot)
        by_id = {p.student_id: p for p in placements}
        assert placements[-1].student_id == "b"
        assert by_id["b"].assignment.safety_floor_applied
        assert by_id["b"].suggested_section == "Lily"

    @pytest.mark.asyncio
    async def test_snapshot_excludes_inactive_and_other_grades(self, snapshot):
        assert sorted(snapshot.student_ids()) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_snapshot_contents(self, snapshot):
        assert set(snapshot.scores) == {"a", "b", "c"}
        assert snapshot.scores["a"].previous_section == "Daisy"
        assert snapshot.benchmarks.targets_for("Daisy")["cwpm_end"] == 100
        assert snapshot.grades["a"][0].score == 90

    def test_empty_cohort(self, engine, cycle):
        assert engine.run(CohortSnapshot(cycle=cycle, students=[])) == []

    def test_single_student_goes_to_lowest_bin(self, engine, cycle):
        snapshot = CohortSnapshot(
            cycle=cycle,
            students=[Student(id="solo", grade=3, current_section="Daisy")],
        )
        placements = engine.run(snapshot)
        assert placements[0].percentile == 0.0
        assert placements[0].suggested_section == "Lily"
        assert placements[0].score.has_no_data

    def test_benchmarks_follow_current_section(self, engine, cycle):
        """Identical raw scores normalize against each student's own section."""
        students = [
            Student(id="lily", grade=3, current_section="Lily"),
            Student(id="daisy", grade=3, current_section="Daisy"),
        ]
        raw = {"passage_cwpm": 60, "writing": 12}
        snapshot = CohortSnapshot(
            cycle=cycle,
            students=students,
            scores={s.id: ScoreRecord(cycle_id="cyc", student_id=s.id, raw_scores=raw) for s in students},
            benchmarks=BenchmarkRegistry(3, {
                "Lily": {"cwpm_end": 60, "writing_end": 12},
                "Daisy": {"cwpm_end": 100, "writing_end": 20},
            }),
        )
        by_id = {p.student_id: p for p in engine.run(snapshot)}
        assert by_id["lily"].score.test_ratio == pytest.approx(1.0)
        assert by_id["daisy"].score.test_ratio == pytest.approx(0.6)

    def test_cycle_sections_adjust_template(self, engine, cycle):
        cycle.test_sections = [ScoreSection(key="written_mc", label="MC", max=30)]
        student = Student(id="s", grade=3, current_section="Daisy")
        snapshot = CohortSnapshot(
            cycle=cycle,
            students=[student],
            scores={"s": ScoreRecord(cycle_id="cyc", student_id="s", raw_scores={"written_mc": 15})},
        )
        assert engine.run(snapshot)[0].score.test_ratio == pytest.approx(0.5)

    def test_saved_default_sections_do_not_change_test_ratio(self, engine, cycle):
        """Saving the usual score-entry columns must not add comprehension as a metric."""
        student = Student(id="s", grade=3, current_section="Daisy")
        record = ScoreRecord(cycle_id="cyc", student_id="s", raw_scores={
            "passage_cwpm": 80, "writing": 18, "comprehension": 0,
        })
        benchmarks = BenchmarkRegistry(3, {"Daisy": {"cwpm_end": 100, "writing_end": 20}})

        def test_ratio():
            snapshot = CohortSnapshot(cycle=cycle, students=[student], scores={"s": record}, benchmarks=benchmarks)
            return engine.run(snapshot)[0].score.test_ratio

        unconfigured = test_ratio()
        cycle.test_sections = [
            ScoreSection(key="word_reading_correct", label="WR Correct", max=80),
            ScoreSection(key="word_reading_attempted", label="WR Attempted"),
            ScoreSection(key="passage_cwpm", label="CWPM"),
            ScoreSection(key="comprehension", label="Comprehension", max=5),
            ScoreSection(key="written_mc", label="MC", max=21),
            ScoreSection(key="writing", label="Writing", max=20),
        ]
        assert unconfigured == pytest.approx(0.85)
        assert test_ratio() == pytest.approx(unconfigured)

    def test_auto_placements_map(self, engine, cycle):
        students = [Student(id=f"s{i}", grade=3, current_section="Daisy") for i in range(6)]
        auto = engine.auto_placements(CohortSnapshot(cycle=cycle, students=students))
        assert set(auto) == {s.id for s in students}
        assert set(auto.values()) <= set(engine.sections)

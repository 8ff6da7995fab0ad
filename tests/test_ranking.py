"""Tests for percentile ranking and section binning."""

import pytest

from placement import BinAssigner, SafetyFloor, UnknownSectionError, rank_percentiles


class TestPercentileRanker:

    def test_worked_example_percentiles(self):
        ranked = rank_percentiles([("a", 0.84), ("b", 0.20), ("c", 0.50)])
        assert [(r.student_id, r.percentile) for r in ranked] == [("b", 0.0), ("c", 0.5), ("a", 1.0)]
        assert [r.rank for r in ranked] == [0, 1, 2]

    def test_single_student_is_zero(self):
        assert [r.percentile for r in rank_percentiles([("only", 0.7)])] == [0.0]

    def test_empty_cohort(self):
        assert rank_percentiles([]) == []

    def test_ties_keep_input_order(self):
        ranked = rank_percentiles([("x", 0.5), ("y", 0.5), ("z", 0.5)])
        assert [r.student_id for r in ranked] == ["x", "y", "z"]
        assert [r.percentile for r in ranked] == [0.0, 0.5, 1.0]

    def test_extremes_and_monotonic(self):
        composites = [(f"s{i}", c) for i, c in enumerate([0.3, 0.9, 0.1, 0.55, 0.55, 0.72, 0.05])]
        ranked = rank_percentiles(composites)
        assert ranked[0].percentile == 0.0
        assert ranked[-1].percentile == 1.0
        for earlier, later in zip(ranked, ranked[1:]):
            assert earlier.composite <= later.composite
            assert earlier.percentile <= later.percentile


class TestBinAssigner:

    @pytest.fixture
    def assigner(self, sections):
        return BinAssigner(sections)

    def test_worked_example_bins(self, assigner):
        assert assigner.bin_index(1.0) == 5
        assert assigner.bin_index(0.5) == 3
        assert assigner.bin_index(0.0) == 0

    def test_bin_index_non_decreasing(self, assigner):
        indices = [assigner.bin_index(p / 100) for p in range(101)]
        assert indices == sorted(indices)
        assert min(indices) == 0 and max(indices) == 5

    def test_band_boundary_lands_in_upper_band(self):
        five = BinAssigner(["A", "B", "C", "D", "E"])
        ranked = rank_percentiles([(f"s{i}", i / 10) for i in range(6)])
        assert ranked[3].percentile == 0.6
        assert five.bin_index(ranked[3].percentile) == 3
        assert five.bin_index(0.2) == 1
        assert five.bin_index(0.8) == 4

    def test_out_of_range_percentile_clamped(self, assigner):
        assert assigner.bin_index(-0.2) == 0
        assert assigner.bin_index(1.7) == 5

    def test_assign_section(self, assigner):
        assignment = assigner.assign("c", 0.5, {"passage_cwpm": 50})
        assert assignment.section == "Sunflower"
        assert assignment.bin_index == 3
        assert assignment.safety_floor_applied is False

    def test_safety_floor_low_accuracy(self, assigner):
        """2 of 40 words read correctly forces the lowest section at any percentile."""
        assignment = assigner.assign("b", 1.0, {"word_reading_correct": 2, "word_reading_attempted": 40})
        assert assignment.section == "Lily"
        assert assignment.bin_index == 0
        assert assignment.safety_floor_applied is True

    @pytest.mark.parametrize("raw, triggered", [
        ({"word_reading_correct": 3}, True),
        ({"word_reading_correct": 3, "word_reading_attempted": 5}, True),
        ({"word_reading_correct": 4, "word_reading_attempted": 50}, True),
        ({"word_reading_correct": 5, "word_reading_attempted": 50}, False),
        ({"word_reading_correct": 4}, False),
        ({"word_reading_correct": 4, "word_reading_attempted": 0}, False),
        ({"word_reading_correct": None, "word_reading_attempted": 40}, False),
        ({}, False),
        (None, False),
    ])
    def test_safety_floor_conditions(self, raw, triggered):
        assert SafetyFloor().is_triggered(raw) is triggered

    def test_safety_floor_from_config(self, leveling_config):
        floor = SafetyFloor.from_config(leveling_config.model_copy(update={"safety_floor_min_correct": 10}))
        assert floor.is_triggered({"word_reading_correct": 8})

    def test_index_of_unknown_section(self, assigner):
        assert assigner.index_of("Marigold") == 4
        with pytest.raises(UnknownSectionError):
            assigner.index_of("Rose")

    def test_requires_sections(self):
        with pytest.raises(ValueError):
            BinAssigner([])

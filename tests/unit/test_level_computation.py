"""Level computation from cumulative XP."""

import pytest

from fitvibe.gamification.levels import (
    LEVEL_TITLES,
    compute_level,
    level_for_xp,
    level_table,
    title_for_level,
    xp_for_level,
)


class TestLevelThresholds:
    def test_level_1_at_zero_xp(self):
        assert level_for_xp(0) == 1

    def test_99_xp_is_still_level_1(self):
        assert level_for_xp(99) == 1

    def test_level_2_at_100_xp(self):
        assert level_for_xp(100) == 2

    def test_level_3_needs_300_cumulative(self):
        assert level_for_xp(299) == 2
        assert level_for_xp(300) == 3

    def test_level_4_at_600_xp(self):
        assert level_for_xp(600) == 4

    def test_level_10_boundary(self):
        assert xp_for_level(10) == 4500
        assert level_for_xp(4499) == 9
        assert level_for_xp(4500) == 10

    def test_no_level_cap(self):
        assert level_for_xp(10_000_000) == 447

    def test_thresholds_round_trip(self):
        for level in range(1, 120):
            assert level_for_xp(xp_for_level(level)) == level
            if level > 1:
                assert level_for_xp(xp_for_level(level) - 1) == level - 1

    def test_negative_xp_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            level_for_xp(-1)

    def test_level_zero_rejected(self):
        with pytest.raises(ValueError):
            xp_for_level(0)


class TestComputeLevel:
    def test_progress_within_level(self):
        info = compute_level(150)
        assert info["level"] == 2
        assert info["xp_into_level"] == 50
        assert info["xp_for_level"] == 200
        assert info["xp_to_next"] == 150
        assert info["progress_pct"] == 25.0
        assert info["next_level"] == 3

    def test_exactly_on_boundary(self):
        info = compute_level(100)
        assert info["xp_into_level"] == 0
        assert info["progress_pct"] == 0.0

    def test_titles(self):
        assert compute_level(0)["title"] == "Couch Starter"
        assert compute_level(300)["title"] == "Weekend Warrior"
        assert compute_level(4500)["title"] == "Fitness Enthusiast"
        assert compute_level(xp_for_level(50))["title"] == "Legend"

    def test_next_title_changes_at_band_edge(self):
        info = compute_level(100)
        assert info["title"] == "Couch Starter"
        assert info["next_title"] == "Weekend Warrior"


class TestLevelTable:
    def test_table_length(self):
        assert len(level_table(50)) == 50

    def test_first_rows(self):
        table = level_table(3)
        assert table[0] == {"level": 1, "title": "Couch Starter", "xp_required": 0, "cumulative": 0}
        assert table[1]["xp_required"] == 100
        assert table[2]["xp_required"] == 200
        assert table[2]["cumulative"] == 300

    def test_title_bands_are_ascending(self):
        starts = [first for first, _ in LEVEL_TITLES]
        assert starts == sorted(starts)
        assert title_for_level(1000) == LEVEL_TITLES[-1][1]

"""Goal status derivation and session contributions."""

from datetime import datetime, timedelta, timezone

import pytest

from fitvibe.db.models import ActivitySession, Goal
from fitvibe.goals.service import derive_status, progress_pct, session_contribution

NOW = datetime(2026, 4, 10, 12, 0, tzinfo=timezone.utc)


def _goal(**kw) -> Goal:
    defaults = {
        "status": "active",
        "goal_type": "distance",
        "unit": "km",
        "target_value": 10.0,
        "current_value": 0.0,
        "activity_type": None,
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=6),
    }
    defaults.update(kw)
    return Goal(**defaults)


def _session(**kw) -> ActivitySession:
    defaults = {"activity_type": "running", "distance_m": 5000.0, "duration_seconds": 1800, "calories": 320}
    defaults.update(kw)
    return ActivitySession(**defaults)


class TestDeriveStatus:
    def test_active_inside_window(self):
        assert derive_status(_goal(), NOW) == "active"

    def test_pending_before_start(self):
        assert derive_status(_goal(start_date=NOW + timedelta(days=1)), NOW) == "pending"

    def test_completed_when_target_reached(self):
        assert derive_status(_goal(current_value=10.0), NOW) == "completed"

    def test_completion_beats_deadline(self):
        goal = _goal(current_value=12.0, end_date=NOW - timedelta(hours=1))
        assert derive_status(goal, NOW) == "completed"

    def test_failed_after_deadline(self):
        assert derive_status(_goal(end_date=NOW - timedelta(seconds=1)), NOW) == "failed"

    @pytest.mark.parametrize("sticky", ["completed", "abandoned", "paused"])
    def test_sticky_statuses_are_kept(self, sticky):
        goal = _goal(status=sticky, end_date=NOW - timedelta(days=3))
        assert derive_status(goal, NOW) == sticky

    def test_failed_goal_revives_when_deadline_moves(self):
        goal = _goal(status="failed", end_date=NOW + timedelta(days=2))
        assert derive_status(goal, NOW) == "active"


class TestProgressPct:
    def test_partial(self):
        assert progress_pct(_goal(current_value=2.5)) == 25.0

    def test_capped_at_100(self):
        assert progress_pct(_goal(current_value=25.0)) == 100.0


class TestSessionContribution:
    def test_distance_in_km(self):
        assert session_contribution(_goal(), _session()) == 5.0

    def test_distance_in_miles(self):
        assert session_contribution(_goal(unit="mi"), _session(distance_m=1609.344)) == pytest.approx(1.0)

    def test_duration_in_minutes(self):
        assert session_contribution(_goal(goal_type="duration", unit="min"), _session()) == 30.0

    def test_duration_in_hours(self):
        assert session_contribution(_goal(goal_type="duration", unit="h"), _session()) == 0.5

    def test_frequency_counts_sessions(self):
        assert session_contribution(_goal(goal_type="frequency", unit="sessions"), _session()) == 1.0

    def test_numeric_calories(self):
        assert session_contribution(_goal(goal_type="numeric", unit="kcal"), _session()) == 320.0

    def test_completion_goals_ignore_sessions(self):
        assert session_contribution(_goal(goal_type="completion", unit="task"), _session()) == 0.0

    def test_activity_type_filter(self):
        goal = _goal(activity_type="cycling")
        assert session_contribution(goal, _session(activity_type="running")) == 0.0
        assert session_contribution(goal, _session(activity_type="cycling")) == 5.0

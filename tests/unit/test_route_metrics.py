"""Route geometry, validation and effort estimates."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from fitvibe.activities.metrics import (
    ACTIVITY_TYPES,
    estimate_calories,
    haversine_m,
    pace_seconds_per_km,
    route_distance_m,
    route_stats,
    validate_route_point,
)
from fitvibe.exceptions import DomainValidationError

T0 = datetime(2026, 6, 1, 6, 0, tzinfo=timezone.utc)
ONE_DEGREE_LAT_M = 111_194.9


@dataclass
class Point:
    latitude: float
    longitude: float
    elevation_m: float | None
    recorded_at: datetime


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_m(51.5, -0.12, 51.5, -0.12) == 0.0

    def test_one_degree_of_latitude(self):
        assert haversine_m(0, 0, 1, 0) == pytest.approx(ONE_DEGREE_LAT_M, rel=1e-4)

    def test_symmetric(self):
        assert haversine_m(48.85, 2.35, 52.52, 13.40) == pytest.approx(haversine_m(52.52, 13.40, 48.85, 2.35))

    def test_paris_to_berlin(self):
        assert haversine_m(48.8566, 2.3522, 52.52, 13.405) == pytest.approx(878_000, rel=0.01)


class TestValidation:
    def test_valid_point(self):
        validate_route_point(45.0, 7.0, 300.0, T0, now=T0)

    @pytest.mark.parametrize(
        ("lat", "lon", "ele"),
        [(90.1, 0, None), (-91, 0, None), (0, 180.5, None), (0, -181, None), (0, 0, -600.0), (0, 0, 10_001.0)],
    )
    def test_out_of_range(self, lat, lon, ele):
        with pytest.raises(DomainValidationError):
            validate_route_point(lat, lon, ele, T0, now=T0)

    def test_future_point_rejected(self):
        with pytest.raises(DomainValidationError, match="future"):
            validate_route_point(0, 0, None, T0 + timedelta(minutes=10), now=T0)

    def test_small_clock_skew_tolerated(self):
        validate_route_point(0, 0, None, T0 + timedelta(minutes=2), now=T0)


class TestRouteStats:
    def _route(self) -> list[Point]:
        return [
            Point(0.0, 0.0, 100.0, T0),
            Point(0.001, 0.0, 110.0, T0 + timedelta(seconds=40)),
            Point(0.002, 0.0, 105.0, T0 + timedelta(seconds=60)),
        ]

    def test_distance_sums_segments(self):
        assert route_distance_m(self._route()) == pytest.approx(2 * ONE_DEGREE_LAT_M / 1000, rel=1e-3)

    def test_stats(self):
        stats = route_stats(self._route())
        assert stats.point_count == 3
        assert stats.distance_m == pytest.approx(222.4, abs=0.2)
        assert stats.elapsed_seconds == 60
        assert stats.avg_speed_mps == pytest.approx(3.71, abs=0.01)
        # second segment covers ~111 m in 20 s
        assert stats.max_speed_mps == pytest.approx(5.56, abs=0.01)
        assert stats.elevation_gain_m == 10.0
        assert stats.elevation_loss_m == 5.0
        assert stats.min_elevation_m == 100.0
        assert stats.max_elevation_m == 110.0

    def test_single_point(self):
        stats = route_stats([Point(1.0, 1.0, None, T0)])
        assert stats.distance_m == 0.0
        assert stats.elapsed_seconds == 0
        assert stats.avg_speed_mps == 0.0
        assert stats.min_elevation_m is None

    def test_empty_route(self):
        assert route_stats([]).point_count == 0
        assert route_distance_m([]) == 0


class TestEffort:
    def test_calories_from_default_rate(self):
        assert estimate_calories("running", 3600) == 650

    def test_template_rate_wins(self):
        assert estimate_calories("running", 1800, calories_per_hour=750) == 375

    def test_unknown_type_uses_other_rate(self):
        assert estimate_calories("underwater-basket-weaving", 3600) == 300

    def test_every_activity_type_has_a_rate(self):
        for activity_type in ACTIVITY_TYPES:
            assert estimate_calories(activity_type, 3600) > 0

    def test_pace(self):
        assert pace_seconds_per_km(5000, 1500) == 300.0

    def test_pace_undefined_without_distance(self):
        assert pace_seconds_per_km(0, 1500) is None
        assert pace_seconds_per_km(1000, 0) is None

"""Route geometry and effort estimates for activity sessions."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from fitvibe.exceptions import DomainValidationError

EARTH_RADIUS_M = 6_371_000.0

MIN_ELEVATION_M = -500.0
MAX_ELEVATION_M = 10_000.0

# Device clocks drift; allow a little skew before calling a point "future"
FUTURE_TOLERANCE = timedelta(minutes=5)

# kcal per hour for a ~70 kg adult, used when no template supplies a rate
DEFAULT_CALORIES_PER_HOUR = {
    "running": 650,
    "cycling": 550,
    "walking": 280,
    "hiking": 430,
    "swimming": 500,
    "rowing": 520,
    "strength": 380,
    "yoga": 200,
    "hiit": 700,
    "dance": 400,
    "other": 300,
}

ACTIVITY_TYPES = tuple(DEFAULT_CALORIES_PER_HOUR)


class RoutePointLike(Protocol):
    latitude: float
    longitude: float
    elevation_m: float | None
    recorded_at: datetime


@dataclass(frozen=True)
class RouteStats:
    point_count: int
    distance_m: float
    elapsed_seconds: int
    avg_speed_mps: float
    max_speed_mps: float
    elevation_gain_m: float
    elevation_loss_m: float
    min_elevation_m: float | None
    max_elevation_m: float | None


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres between two WGS84 coordinates."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def validate_route_point(
    latitude: float,
    longitude: float,
    elevation_m: float | None,
    recorded_at: datetime,
    now: datetime | None = None,
) -> None:
    if not -90.0 <= latitude <= 90.0:
        raise DomainValidationError("Latitude must be between -90 and 90 degrees")
    if not -180.0 <= longitude <= 180.0:
        raise DomainValidationError("Longitude must be between -180 and 180 degrees")
    if elevation_m is not None and not MIN_ELEVATION_M <= elevation_m <= MAX_ELEVATION_M:
        raise DomainValidationError(
            f"Elevation must be between {MIN_ELEVATION_M:g} and {MAX_ELEVATION_M:g} metres"
        )
    now = now or datetime.now(timezone.utc)
    if recorded_at.tzinfo is None:
        recorded_at = recorded_at.replace(tzinfo=timezone.utc)
    if recorded_at > now + FUTURE_TOLERANCE:
        raise DomainValidationError("Route point timestamp cannot be in the future")


def route_distance_m(points: Sequence[RoutePointLike]) -> float:
    return sum(
        haversine_m(a.latitude, a.longitude, b.latitude, b.longitude) for a, b in zip(points, points[1:])
    )


def route_stats(points: Sequence[RoutePointLike]) -> RouteStats:
    """Summary statistics for points already ordered by time."""
    distance = 0.0
    max_speed = 0.0
    gain = loss = 0.0
    for a, b in zip(points, points[1:]):
        segment = haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)
        distance += segment
        dt = (b.recorded_at - a.recorded_at).total_seconds()
        if dt > 0:
            max_speed = max(max_speed, segment / dt)
        if a.elevation_m is not None and b.elevation_m is not None:
            climb = b.elevation_m - a.elevation_m
            if climb > 0:
                gain += climb
            else:
                loss -= climb

    elapsed = 0
    if len(points) > 1:
        elapsed = max(0, int((points[-1].recorded_at - points[0].recorded_at).total_seconds()))
    elevations = [p.elevation_m for p in points if p.elevation_m is not None]

    return RouteStats(
        point_count=len(points),
        distance_m=round(distance, 1),
        elapsed_seconds=elapsed,
        avg_speed_mps=round(distance / elapsed, 2) if elapsed else 0.0,
        max_speed_mps=round(max_speed, 2),
        elevation_gain_m=round(gain, 1),
        elevation_loss_m=round(loss, 1),
        min_elevation_m=min(elevations) if elevations else None,
        max_elevation_m=max(elevations) if elevations else None,
    )


def estimate_calories(activity_type: str, active_seconds: int, calories_per_hour: int | None = None) -> int:
    rate = calories_per_hour or DEFAULT_CALORIES_PER_HOUR.get(activity_type, DEFAULT_CALORIES_PER_HOUR["other"])
    return int(round(rate * active_seconds / 3600))


def pace_seconds_per_km(distance_m: float, active_seconds: int) -> float | None:
    if distance_m <= 0 or active_seconds <= 0:
        return None
    return round(active_seconds / (distance_m / 1000), 1)

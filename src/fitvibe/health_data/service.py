"""Health data sources and manually entered measurements."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.db.models import HealthDataEntry, HealthDataSource
from fitvibe.exceptions import ConflictError, DomainValidationError, NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

PROVIDERS = ("apple_health", "google_fit", "fitbit", "garmin", "strava", "manual")

# data_type -> (unit, min, max); values must also be positive
DATA_TYPES: dict[str, tuple[str, float, float]] = {
    "weight": ("kg", 20.0, 500.0),
    "heart_rate": ("bpm", 25.0, 250.0),
    "resting_heart_rate": ("bpm", 25.0, 150.0),
    "sleep_hours": ("h", 0.0, 24.0),
    "steps": ("count", 0.0, 200_000.0),
    "body_fat": ("%", 1.0, 75.0),
    "blood_pressure_systolic": ("mmHg", 60.0, 260.0),
    "blood_pressure_diastolic": ("mmHg", 30.0, 160.0),
    "water_ml": ("ml", 0.0, 10_000.0),
    "active_minutes": ("min", 0.0, 1440.0),
}

_FUTURE_TOLERANCE = timedelta(minutes=5)


def validate_measurement(data_type: str, value: float, recorded_at: datetime, now: datetime | None = None) -> str:
    """Check a measurement against its type's bounds. Returns the canonical unit."""
    if data_type not in DATA_TYPES:
        raise DomainValidationError(f"Unknown health data type: {data_type}")
    unit, low, high = DATA_TYPES[data_type]
    if value <= 0:
        raise DomainValidationError("Value must be greater than zero")
    if not low <= value <= high:
        raise DomainValidationError(f"{data_type} must be between {low:g} and {high:g} {unit}")
    now = now or datetime.now(timezone.utc)
    if recorded_at.tzinfo is None:
        recorded_at = recorded_at.replace(tzinfo=timezone.utc)
    if recorded_at > now + _FUTURE_TOLERANCE:
        raise DomainValidationError("Measurement time cannot be in the future")
    return unit


# ── Sources ──


async def list_sources(db: AsyncSession, user_id: int) -> list[HealthDataSource]:
    result = await db.execute(
        select(HealthDataSource).where(HealthDataSource.user_id == user_id).order_by(HealthDataSource.provider)
    )
    return list(result.scalars().all())


async def _get_source(db: AsyncSession, user_id: int, provider: str) -> HealthDataSource | None:
    result = await db.execute(
        select(HealthDataSource).where(HealthDataSource.user_id == user_id, HealthDataSource.provider == provider)
    )
    return result.scalar_one_or_none()


async def connect_source(
    db: AsyncSession,
    user_id: int,
    provider: str,
    external_account_id: str | None = None,
) -> HealthDataSource:
    """Record a provider link. Reconnecting a disconnected provider reuses its row."""
    if provider not in PROVIDERS:
        raise DomainValidationError(f"Unknown health data provider: {provider}")
    now = datetime.now(timezone.utc)
    source = await _get_source(db, user_id, provider)
    if source is not None:
        if source.is_connected:
            raise ConflictError(f"{provider} is already connected")
        source.is_connected = True
        source.connected_at = now
        source.disconnected_at = None
        source.external_account_id = external_account_id
    else:
        source = HealthDataSource(
            user_id=user_id,
            provider=provider,
            external_account_id=external_account_id,
            is_connected=True,
            connected_at=now,
        )
        db.add(source)
    await db.flush()
    logger.info("User %d connected %s", user_id, provider)
    return source


async def disconnect_source(db: AsyncSession, user_id: int, provider: str) -> HealthDataSource:
    source = await _get_source(db, user_id, provider)
    if source is None or not source.is_connected:
        raise NotFoundError("Connected source", provider)
    source.is_connected = False
    source.disconnected_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("User %d disconnected %s", user_id, provider)
    return source


# ── Entries ──


async def add_entry(
    db: AsyncSession,
    user_id: int,
    data_type: str,
    value: float,
    recorded_at: datetime,
    unit: str | None = None,
    notes: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> HealthDataEntry:
    canonical_unit = validate_measurement(data_type, value, recorded_at)
    if unit is not None and unit != canonical_unit:
        raise DomainValidationError(f"{data_type} is recorded in {canonical_unit}")
    entry = HealthDataEntry(
        user_id=user_id,
        provider="manual",
        data_type=data_type,
        value=value,
        unit=canonical_unit,
        recorded_at=recorded_at,
        notes=notes,
        entry_metadata=metadata or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.flush()
    return entry


def _date_range(start: datetime | None, end: datetime | None) -> tuple[datetime | None, datetime | None]:
    """Treat naive bounds as UTC and reject an inverted range."""
    if start is not None and start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end is not None and end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    if start is not None and end is not None and end < start:
        raise DomainValidationError("end must not be before start")
    return start, end


def _entry_filters(
    user_id: int,
    data_type: str | None,
    start: datetime | None,
    end: datetime | None,
) -> list:
    filters = [HealthDataEntry.user_id == user_id]
    if data_type is not None:
        filters.append(HealthDataEntry.data_type == data_type)
    if start is not None:
        filters.append(HealthDataEntry.recorded_at >= start)
    if end is not None:
        filters.append(HealthDataEntry.recorded_at <= end)
    return filters


async def list_entries(
    db: AsyncSession,
    user_id: int,
    data_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[HealthDataEntry], int]:
    start, end = _date_range(start, end)
    filters = _entry_filters(user_id, data_type, start, end)
    total = (await db.execute(select(func.count()).select_from(HealthDataEntry).where(*filters))).scalar_one()
    result = await db.execute(
        select(HealthDataEntry)
        .where(*filters)
        .order_by(HealthDataEntry.recorded_at.desc(), HealthDataEntry.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def delete_entry(db: AsyncSession, user_id: int, entry_id: int) -> None:
    entry = await db.get(HealthDataEntry, entry_id)
    if entry is None:
        raise NotFoundError("Health data entry", entry_id)
    if entry.user_id != user_id:
        raise PermissionDeniedError("You do not own this entry")
    await db.delete(entry)
    await db.flush()


async def metrics_summary(
    db: AsyncSession,
    user_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, dict[str, Any]]:
    """Count, min, max, average and latest value per data type."""
    start, end = _date_range(start, end)
    filters = _entry_filters(user_id, None, start, end)
    result = await db.execute(
        select(
            HealthDataEntry.data_type,
            func.count(HealthDataEntry.id),
            func.min(HealthDataEntry.value),
            func.max(HealthDataEntry.value),
            func.avg(HealthDataEntry.value),
        )
        .where(*filters)
        .group_by(HealthDataEntry.data_type)
    )
    summary: dict[str, dict[str, Any]] = {}
    for data_type, count, low, high, avg in result.all():
        latest = (
            await db.execute(
                select(HealthDataEntry)
                .where(*filters, HealthDataEntry.data_type == data_type)
                .order_by(HealthDataEntry.recorded_at.desc(), HealthDataEntry.id.desc())
                .limit(1)
            )
        ).scalar_one()
        summary[data_type] = {
            "unit": DATA_TYPES.get(data_type, (latest.unit,))[0],
            "count": int(count),
            "min": float(low),
            "max": float(high),
            "avg": round(float(avg), 2),
            "latest": float(latest.value),
            "latest_at": latest.recorded_at,
        }
    return summary

"""Health data API endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.auth.dependencies import get_current_user
from fitvibe.database import get_session
from fitvibe.db.models import HealthDataEntry, User
from fitvibe.health_data import service
from fitvibe.health_data.schemas import (
    ConnectSourceRequest,
    CreateEntryRequest,
    EntryListResponse,
    EntryResponse,
    HealthSummaryResponse,
    MetricSummary,
    Provider,
    SourceListResponse,
    SourceResponse,
)

router = APIRouter(prefix="/api/v1/health-data", tags=["Health Data"])


def _entry(e: HealthDataEntry) -> EntryResponse:
    return EntryResponse(
        id=e.id,
        provider=e.provider,
        data_type=e.data_type,
        value=e.value,
        unit=e.unit,
        recorded_at=e.recorded_at,
        notes=e.notes,
        metadata=e.entry_metadata or {},
    )


@router.get("/sources", response_model=SourceListResponse)
async def list_sources(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SourceListResponse:
    sources = await service.list_sources(db, user.id)
    return SourceListResponse(sources=[SourceResponse.model_validate(s) for s in sources])


@router.post("/sources/{provider}", response_model=SourceResponse, status_code=201)
async def connect_source(
    provider: Provider,
    body: ConnectSourceRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SourceResponse:
    source = await service.connect_source(db, user.id, provider, body.external_account_id if body else None)
    await db.commit()
    return SourceResponse.model_validate(source)


@router.delete("/sources/{provider}", response_model=SourceResponse)
async def disconnect_source(
    provider: Provider,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SourceResponse:
    source = await service.disconnect_source(db, user.id, provider)
    await db.commit()
    return SourceResponse.model_validate(source)


@router.post("/entries", response_model=EntryResponse, status_code=201)
async def add_entry(
    body: CreateEntryRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> EntryResponse:
    entry = await service.add_entry(
        db,
        user.id,
        body.data_type,
        body.value,
        body.recorded_at,
        unit=body.unit,
        notes=body.notes,
        metadata=body.metadata,
    )
    await db.commit()
    return _entry(entry)


@router.get("/entries", response_model=EntryListResponse)
async def list_entries(
    data_type: str | None = Query(None, max_length=32),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> EntryListResponse:
    entries, total = await service.list_entries(db, user.id, data_type, start, end, page, per_page)
    return EntryListResponse(entries=[_entry(e) for e in entries], total=total, page=page, per_page=per_page)


@router.delete("/entries/{entry_id}", status_code=204)
async def delete_entry(
    entry_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.delete_entry(db, user.id, entry_id)
    await db.commit()


@router.get("/summary", response_model=HealthSummaryResponse)
async def summary(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> HealthSummaryResponse:
    metrics = await service.metrics_summary(db, user.id, start, end)
    return HealthSummaryResponse(metrics={k: MetricSummary(**v) for k, v in metrics.items()})

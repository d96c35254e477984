"""Shared test fixtures.

Each test gets a fresh SQLite file, an in-process fake Redis and a mocked
email service, so the suite needs no running services.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fakeredis import aioredis as fake_aioredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

import fitvibe.email.service as email_service_module
import fitvibe.redis_client as redis_client_module
from fitvibe.activities.seed import seed_activity_templates
from fitvibe.auth.jwt import reset_keys
from fitvibe.config import get_settings
from fitvibe.database import close_db, get_engine, get_session_factory, init_db
from fitvibe.db.base import Base
from fitvibe.gamification.seed import seed_badges
from fitvibe.main import create_app

DEFAULT_PASSWORD = "SecureP@ss1"


@pytest.fixture(autouse=True)
def _test_settings(tmp_path, monkeypatch):
    """Point settings at a per-test SQLite file and relax the global rate limit."""
    monkeypatch.setenv("FV_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("FV_RATE_LIMIT_REQUESTS", "10000")
    monkeypatch.setenv("FV_LOG_FORMAT", "console")
    get_settings.cache_clear()
    reset_keys()
    yield
    get_settings.cache_clear()
    reset_keys()


@pytest_asyncio.fixture
async def redis_client(monkeypatch) -> AsyncGenerator[fake_aioredis.FakeRedis, None]:
    """Fake Redis installed as the shared client."""
    rc = fake_aioredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_client_module, "_pool", rc)
    yield rc
    await rc.flushall()
    await rc.aclose()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Create the schema and seed reference data."""
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        await seed_badges(session)
        await seed_activity_templates(session)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for arranging data and asserting on it."""
    async with get_session_factory()() as session:
        yield session


@pytest.fixture(autouse=True)
def mock_email_service(monkeypatch):
    """Replace the email service singleton so nothing is ever sent."""
    mock_service = MagicMock()
    mock_service.send_template = AsyncMock(return_value=True)
    mock_service.send_email = AsyncMock(return_value=True)
    monkeypatch.setattr(email_service_module, "_email_service", mock_service)
    return mock_service


@pytest_asyncio.fixture
async def client(database, redis_client) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to a fresh app instance."""
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def register_user(
    client: AsyncClient,
    email: str = "runner@example.com",
    display_name: str = "Runner",
    password: str = DEFAULT_PASSWORD,
) -> dict:
    """Register through the API. Returns credentials, tokens and auth headers."""
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "display_name": display_name},
    )
    assert response.status_code == 201, response.text
    data = response.json()
    return {
        "email": email,
        "password": password,
        "user_id": data["user"]["id"],
        "access_token": data["access_token"],
        "refresh_token": data["refresh_token"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }


@pytest_asyncio.fixture
async def user(client: AsyncClient) -> dict:
    return await register_user(client)


@pytest_asyncio.fixture
async def other_user(client: AsyncClient) -> dict:
    return await register_user(client, email="cyclist@example.com", display_name="Cyclist")


@pytest_asyncio.fixture
async def auth_headers(user: dict) -> dict[str, str]:
    return user["headers"]


async def template_id(client: AsyncClient, slug: str) -> int:
    response = await client.get("/api/v1/activities/templates")
    return next(t["id"] for t in response.json()["templates"] if t["slug"] == slug)


async def start_session(
    client: AsyncClient,
    headers: dict,
    minutes_ago: int = 45,
    slug: str | None = "easy-run",
    activity_type: str | None = None,
) -> dict:
    """Start a session that began ``minutes_ago`` minutes in the past."""
    body: dict = {"started_at": (datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)).isoformat()}
    if slug is not None:
        body["template_id"] = await template_id(client, slug)
    if activity_type is not None:
        body["activity_type"] = activity_type
    response = await client.post("/api/v1/activities/sessions", headers=headers, json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def complete_session(client: AsyncClient, headers: dict, session_id: int, **body) -> dict:
    response = await client.post(f"/api/v1/activities/sessions/{session_id}/complete", headers=headers, json=body)
    assert response.status_code == 200, response.text
    return response.json()


async def log_workout(client: AsyncClient, headers: dict, minutes_ago: int = 45, slug: str = "easy-run", **body) -> dict:
    """Start and complete a session in one go. Returns the completion response."""
    session = await start_session(client, headers, minutes_ago=minutes_ago, slug=slug)
    return await complete_session(client, headers, session["id"], **body)

"""Health data sources and measurements."""

from datetime import datetime, timedelta, timezone

from httpx import AsyncClient


def _ago(**kwargs) -> str:
    return (datetime.now(timezone.utc) - timedelta(**kwargs)).isoformat()


async def add_entry(client: AsyncClient, headers: dict, data_type: str, value: float, **extra) -> dict:
    body = {"data_type": data_type, "value": value, "recorded_at": extra.pop("recorded_at", _ago(hours=1))}
    body.update(extra)
    response = await client.post("/api/v1/health-data/entries", headers=headers, json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestSources:
    async def test_connect_and_list(self, client: AsyncClient, user: dict):
        response = await client.post(
            "/api/v1/health-data/sources/garmin", headers=user["headers"], json={"external_account_id": "g-123"}
        )
        assert response.status_code == 201
        assert response.json()["is_connected"] is True
        assert response.json()["external_account_id"] == "g-123"

        await client.post("/api/v1/health-data/sources/apple_health", headers=user["headers"])
        listing = await client.get("/api/v1/health-data/sources", headers=user["headers"])
        assert [s["provider"] for s in listing.json()["sources"]] == ["apple_health", "garmin"]

    async def test_connect_twice(self, client: AsyncClient, user: dict):
        await client.post("/api/v1/health-data/sources/fitbit", headers=user["headers"])
        response = await client.post("/api/v1/health-data/sources/fitbit", headers=user["headers"])
        assert response.status_code == 409

    async def test_unknown_provider(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/health-data/sources/myspace", headers=user["headers"])
        assert response.status_code == 422

    async def test_disconnect_and_reconnect(self, client: AsyncClient, user: dict):
        await client.post("/api/v1/health-data/sources/strava", headers=user["headers"])
        response = await client.delete("/api/v1/health-data/sources/strava", headers=user["headers"])
        assert response.json()["is_connected"] is False
        assert response.json()["disconnected_at"] is not None

        again = await client.delete("/api/v1/health-data/sources/strava", headers=user["headers"])
        assert again.status_code == 404

        reconnected = await client.post("/api/v1/health-data/sources/strava", headers=user["headers"])
        assert reconnected.status_code == 201
        assert reconnected.json()["disconnected_at"] is None
        listing = await client.get("/api/v1/health-data/sources", headers=user["headers"])
        assert len(listing.json()["sources"]) == 1


class TestEntries:
    async def test_create_fills_unit(self, client: AsyncClient, user: dict):
        entry = await add_entry(client, user["headers"], "weight", 72.4, notes="morning", metadata={"scale": "home"})
        assert entry["unit"] == "kg"
        assert entry["provider"] == "manual"
        assert entry["metadata"] == {"scale": "home"}

    async def test_matching_unit_accepted(self, client: AsyncClient, user: dict):
        entry = await add_entry(client, user["headers"], "heart_rate", 62, unit="bpm")
        assert entry["value"] == 62

    async def test_wrong_unit(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/health-data/entries", headers=user["headers"], json={
            "data_type": "weight", "value": 160, "unit": "lb", "recorded_at": _ago(hours=1),
        })
        assert response.status_code == 400

    async def test_out_of_range(self, client: AsyncClient, user: dict):
        for data_type, value in (("weight", 10), ("heart_rate", 300), ("sleep_hours", 25), ("steps", 0)):
            response = await client.post("/api/v1/health-data/entries", headers=user["headers"], json={
                "data_type": data_type, "value": value, "recorded_at": _ago(hours=1),
            })
            assert response.status_code == 400, data_type

    async def test_unknown_type(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/health-data/entries", headers=user["headers"], json={
            "data_type": "mood", "value": 5, "recorded_at": _ago(hours=1),
        })
        assert response.status_code == 400

    async def test_future_timestamp(self, client: AsyncClient, user: dict):
        future = (datetime.now(timezone.utc) + timedelta(hours=2)).isoformat()
        response = await client.post("/api/v1/health-data/entries", headers=user["headers"], json={
            "data_type": "steps", "value": 1000, "recorded_at": future,
        })
        assert response.status_code == 400

    async def test_list_and_filter(self, client: AsyncClient, user: dict):
        await add_entry(client, user["headers"], "weight", 73.0, recorded_at=_ago(days=3))
        await add_entry(client, user["headers"], "weight", 72.5, recorded_at=_ago(days=1))
        await add_entry(client, user["headers"], "steps", 8000, recorded_at=_ago(days=1))

        everything = await client.get("/api/v1/health-data/entries", headers=user["headers"])
        assert everything.json()["total"] == 3

        weights = await client.get("/api/v1/health-data/entries", headers=user["headers"], params={"data_type": "weight"})
        assert [e["value"] for e in weights.json()["entries"]] == [72.5, 73.0]

        recent = await client.get(
            "/api/v1/health-data/entries", headers=user["headers"], params={"start": _ago(days=2)}
        )
        assert recent.json()["total"] == 2

    async def test_reversed_range(self, client: AsyncClient, user: dict):
        response = await client.get(
            "/api/v1/health-data/entries", headers=user["headers"], params={"start": _ago(days=1), "end": _ago(days=2)}
        )
        assert response.status_code == 400

    async def test_naive_and_aware_bounds_mixed(self, client: AsyncClient, user: dict):
        recorded = datetime.now(timezone.utc) - timedelta(days=1)
        await add_entry(client, user["headers"], "weight", 72.0, recorded_at=recorded.isoformat())
        start = (recorded - timedelta(hours=1)).replace(tzinfo=None).isoformat()
        end = (recorded + timedelta(hours=1)).isoformat()

        response = await client.get(
            "/api/v1/health-data/entries", headers=user["headers"], params={"start": start, "end": end}
        )
        assert response.status_code == 200
        assert response.json()["total"] == 1

        summary = await client.get(
            "/api/v1/health-data/summary", headers=user["headers"], params={"start": start, "end": end}
        )
        assert summary.json()["metrics"]["weight"]["count"] == 1

    async def test_naive_reversed_range(self, client: AsyncClient, user: dict):
        response = await client.get(
            "/api/v1/health-data/entries",
            headers=user["headers"],
            params={"start": "2026-01-02T00:00:00", "end": "2026-01-01T00:00:00Z"},
        )
        assert response.status_code == 400

    async def test_delete_ownership(self, client: AsyncClient, user: dict, other_user: dict):
        entry = await add_entry(client, user["headers"], "weight", 72.0)
        forbidden = await client.delete(f"/api/v1/health-data/entries/{entry['id']}", headers=other_user["headers"])
        assert forbidden.status_code == 403
        response = await client.delete(f"/api/v1/health-data/entries/{entry['id']}", headers=user["headers"])
        assert response.status_code == 204
        missing = await client.delete(f"/api/v1/health-data/entries/{entry['id']}", headers=user["headers"])
        assert missing.status_code == 404

    async def test_entries_are_private(self, client: AsyncClient, user: dict, other_user: dict):
        await add_entry(client, user["headers"], "weight", 72.0)
        response = await client.get("/api/v1/health-data/entries", headers=other_user["headers"])
        assert response.json()["total"] == 0


class TestSummary:
    async def test_summary_per_type(self, client: AsyncClient, user: dict):
        await add_entry(client, user["headers"], "weight", 74.0, recorded_at=_ago(days=5))
        await add_entry(client, user["headers"], "weight", 72.0, recorded_at=_ago(days=1))
        await add_entry(client, user["headers"], "weight", 73.0, recorded_at=_ago(days=3))
        await add_entry(client, user["headers"], "sleep_hours", 7.5)

        response = await client.get("/api/v1/health-data/summary", headers=user["headers"])
        metrics = response.json()["metrics"]
        assert set(metrics) == {"weight", "sleep_hours"}
        weight = metrics["weight"]
        assert (weight["count"], weight["min"], weight["max"], weight["avg"]) == (3, 72.0, 74.0, 73.0)
        assert weight["latest"] == 72.0
        assert weight["unit"] == "kg"

    async def test_empty_summary(self, client: AsyncClient, user: dict):
        response = await client.get("/api/v1/health-data/summary", headers=user["headers"])
        assert response.json() == {"metrics": {}}

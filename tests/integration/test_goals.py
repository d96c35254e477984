"""Goal lifecycle, progress and session-driven completion."""

from datetime import datetime, timedelta, timezone

from httpx import AsyncClient

from tests.conftest import log_workout


def _iso(delta: timedelta) -> str:
    return (datetime.now(timezone.utc) + delta).isoformat()


async def create_goal(client: AsyncClient, headers: dict, **overrides) -> dict:
    body = {
        "title": "Run 5 km this week",
        "goal_type": "distance",
        "frequency": "weekly",
        "target_value": 5,
        "unit": "km",
        "activity_type": "running",
    }
    body.update(overrides)
    response = await client.post("/api/v1/goals", headers=headers, json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateGoal:
    async def test_defaults(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        assert goal["status"] == "active"
        assert goal["current_value"] == 0
        assert goal["progress_pct"] == 0
        start = datetime.fromisoformat(goal["start_date"])
        end = datetime.fromisoformat(goal["end_date"])
        assert end - start == timedelta(days=7)

    async def test_future_start_is_pending(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"], start_date=_iso(timedelta(days=2)))
        assert goal["status"] == "pending"

    async def test_custom_needs_end_date(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/goals", headers=user["headers"], json={
            "title": "Whenever", "goal_type": "frequency", "frequency": "custom", "target_value": 3, "unit": "sessions",
        })
        assert response.status_code == 400

    async def test_end_before_start(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/goals", headers=user["headers"], json={
            "title": "Backwards", "goal_type": "frequency", "frequency": "custom", "target_value": 3,
            "unit": "sessions", "start_date": _iso(timedelta(days=5)), "end_date": _iso(timedelta(days=1)),
        })
        assert response.status_code == 400

    async def test_non_positive_target(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/goals", headers=user["headers"], json={
            "title": "Nothing", "goal_type": "distance", "target_value": 0, "unit": "km",
        })
        assert response.status_code == 422

    async def test_blank_title(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/goals", headers=user["headers"], json={
            "title": "   ", "goal_type": "distance", "target_value": 5, "unit": "km",
        })
        assert response.status_code == 422


class TestProgress:
    async def test_manual_progress(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        response = await client.post(
            f"/api/v1/goals/{goal['id']}/progress", headers=user["headers"], json={"amount": 2, "note": "treadmill"}
        )
        assert response.json()["current_value"] == 2
        assert response.json()["progress_pct"] == 40.0

        response = await client.put(f"/api/v1/goals/{goal['id']}/progress", headers=user["headers"], json={"value": 3.5})
        assert response.json()["current_value"] == 3.5

    async def test_negative_values_rejected(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        add = await client.post(f"/api/v1/goals/{goal['id']}/progress", headers=user["headers"], json={"amount": -1})
        assert add.status_code == 400
        put = await client.put(f"/api/v1/goals/{goal['id']}/progress", headers=user["headers"], json={"value": -1})
        assert put.status_code == 400

    async def test_reaching_target_completes_and_grants_xp(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        response = await client.put(f"/api/v1/goals/{goal['id']}/progress", headers=user["headers"], json={"value": 5})
        assert response.json()["status"] == "completed"
        assert response.json()["completed_at"] is not None

        history = await client.get("/api/v1/users/me/xp/history", headers=user["headers"])
        sources = [(e["source"], e["amount"]) for e in history.json()["entries"]]
        assert ("goal", 100) in sources
        assert ("badge", 100) in sources  # goal_getter

        again = await client.post(f"/api/v1/goals/{goal['id']}/progress", headers=user["headers"], json={"amount": 1})
        assert again.status_code == 409

    async def test_pending_goal_rejects_progress(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"], start_date=_iso(timedelta(days=2)))
        response = await client.post(f"/api/v1/goals/{goal['id']}/progress", headers=user["headers"], json={"amount": 1})
        assert response.status_code == 409

    async def test_history(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        await client.post(f"/api/v1/goals/{goal['id']}/progress", headers=user["headers"], json={"amount": 1})
        await client.post(f"/api/v1/goals/{goal['id']}/progress", headers=user["headers"], json={"amount": 1.5})
        response = await client.get(f"/api/v1/goals/{goal['id']}/history", headers=user["headers"])
        entries = response.json()["entries"]
        assert [e["value"] for e in entries] == [2.5, 1.0]
        assert [e["delta"] for e in entries] == [1.5, 1.0]
        assert {e["source"] for e in entries} == {"manual"}


class TestSessionProgress:
    async def test_session_completes_distance_goal(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        result = await log_workout(client, user["headers"], distance_m=5200)
        assert result["goals_completed"] == [goal["id"]]

        refreshed = await client.get(f"/api/v1/goals/{goal['id']}", headers=user["headers"])
        assert refreshed.json()["status"] == "completed"
        assert refreshed.json()["current_value"] == 5.2

    async def test_other_activity_types_do_not_count(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        await log_workout(client, user["headers"], slug="lap-swim", distance_m=1500)
        refreshed = await client.get(f"/api/v1/goals/{goal['id']}", headers=user["headers"])
        assert refreshed.json()["current_value"] == 0

    async def test_frequency_goal_counts_sessions(self, client: AsyncClient, user: dict):
        goal = await create_goal(
            client, user["headers"], title="Move twice", goal_type="frequency", target_value=2, unit="sessions",
            activity_type=None,
        )
        await log_workout(client, user["headers"], minutes_ago=90)
        result = await log_workout(client, user["headers"], slug="vinyasa-yoga", minutes_ago=30)
        assert result["goals_completed"] == [goal["id"]]

    async def test_paused_goal_ignores_sessions(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        await client.post(f"/api/v1/goals/{goal['id']}/pause", headers=user["headers"])
        await log_workout(client, user["headers"], distance_m=8000)
        refreshed = await client.get(f"/api/v1/goals/{goal['id']}", headers=user["headers"])
        assert refreshed.json()["status"] == "paused"
        assert refreshed.json()["current_value"] == 0


class TestLifecycle:
    async def test_pause_resume(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        paused = await client.post(f"/api/v1/goals/{goal['id']}/pause", headers=user["headers"])
        assert paused.json()["status"] == "paused"
        assert (await client.post(f"/api/v1/goals/{goal['id']}/pause", headers=user["headers"])).status_code == 409

        resumed = await client.post(f"/api/v1/goals/{goal['id']}/resume", headers=user["headers"])
        assert resumed.json()["status"] == "active"
        assert (await client.post(f"/api/v1/goals/{goal['id']}/resume", headers=user["headers"])).status_code == 409

    async def test_abandon_is_final(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        abandoned = await client.post(f"/api/v1/goals/{goal['id']}/abandon", headers=user["headers"])
        assert abandoned.json()["status"] == "abandoned"
        for action in ("abandon", "pause", "resume"):
            response = await client.post(f"/api/v1/goals/{goal['id']}/{action}", headers=user["headers"])
            assert response.status_code == 409, action
        patch = await client.patch(f"/api/v1/goals/{goal['id']}", headers=user["headers"], json={"title": "New"})
        assert patch.status_code == 409

    async def test_extend_deadline(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        later = (datetime.fromisoformat(goal["end_date"]) + timedelta(days=7)).isoformat()
        response = await client.post(f"/api/v1/goals/{goal['id']}/extend", headers=user["headers"], json={"end_date": later})
        assert datetime.fromisoformat(response.json()["end_date"]) == datetime.fromisoformat(later)

        earlier = await client.post(
            f"/api/v1/goals/{goal['id']}/extend", headers=user["headers"], json={"end_date": _iso(timedelta(days=1))}
        )
        assert earlier.status_code == 400

    async def test_adapt_target_requires_adaptive(self, client: AsyncClient, user: dict):
        fixed = await create_goal(client, user["headers"])
        response = await client.post(f"/api/v1/goals/{fixed['id']}/adapt", headers=user["headers"], json={"target_value": 8})
        assert response.status_code == 400

        adaptive = await create_goal(client, user["headers"], is_adaptive=True)
        await client.put(f"/api/v1/goals/{adaptive['id']}/progress", headers=user["headers"], json={"value": 3})
        response = await client.post(
            f"/api/v1/goals/{adaptive['id']}/adapt", headers=user["headers"], json={"target_value": 3}
        )
        assert response.json()["target_value"] == 3
        assert response.json()["status"] == "completed"

    async def test_update_descriptive_fields(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        response = await client.patch(
            f"/api/v1/goals/{goal['id']}", headers=user["headers"], json={"title": "Run 5 km", "is_adaptive": True}
        )
        assert response.json()["title"] == "Run 5 km"
        assert response.json()["is_adaptive"] is True
        assert response.json()["target_value"] == 5

    async def test_delete(self, client: AsyncClient, user: dict):
        goal = await create_goal(client, user["headers"])
        await client.post(f"/api/v1/goals/{goal['id']}/progress", headers=user["headers"], json={"amount": 1})
        response = await client.delete(f"/api/v1/goals/{goal['id']}", headers=user["headers"])
        assert response.status_code == 204
        assert (await client.get(f"/api/v1/goals/{goal['id']}", headers=user["headers"])).status_code == 404


class TestListingAndAnalytics:
    async def test_list_and_filter(self, client: AsyncClient, user: dict):
        first = await create_goal(client, user["headers"])
        second = await create_goal(client, user["headers"], title="Swim", activity_type="swimming")
        await client.post(f"/api/v1/goals/{first['id']}/abandon", headers=user["headers"])

        everything = await client.get("/api/v1/goals", headers=user["headers"])
        assert everything.json()["total"] == 2
        active = await client.get("/api/v1/goals", headers=user["headers"], params={"status": "active"})
        assert [g["id"] for g in active.json()["goals"]] == [second["id"]]

    async def test_analytics(self, client: AsyncClient, user: dict):
        done = await create_goal(client, user["headers"])
        await client.put(f"/api/v1/goals/{done['id']}/progress", headers=user["headers"], json={"value": 5})
        dropped = await create_goal(client, user["headers"])
        await client.post(f"/api/v1/goals/{dropped['id']}/abandon", headers=user["headers"])
        half = await create_goal(client, user["headers"], goal_type="duration", target_value=60, unit="min")
        await client.put(f"/api/v1/goals/{half['id']}/progress", headers=user["headers"], json={"value": 30})

        response = await client.get("/api/v1/goals/analytics", headers=user["headers"])
        data = response.json()
        assert data["total"] == 3
        assert data["by_status"]["completed"] == 1
        assert data["by_status"]["abandoned"] == 1
        assert data["by_type"] == {"distance": 2, "duration": 1}
        assert data["completion_rate"] == 50.0
        assert data["average_active_progress"] == 50.0


class TestOwnership:
    async def test_other_users_goal(self, client: AsyncClient, user: dict, other_user: dict):
        goal = await create_goal(client, user["headers"])
        assert (await client.get(f"/api/v1/goals/{goal['id']}", headers=other_user["headers"])).status_code == 403
        response = await client.delete(f"/api/v1/goals/{goal['id']}", headers=other_user["headers"])
        assert response.status_code == 403

    async def test_missing_goal(self, client: AsyncClient, user: dict):
        assert (await client.get("/api/v1/goals/999", headers=user["headers"])).status_code == 404

"""Challenge creation, activation, participation and progress."""

from datetime import datetime, timedelta, timezone

from httpx import AsyncClient

from tests.conftest import log_workout, register_user


def _iso(delta: timedelta) -> str:
    return (datetime.now(timezone.utc) + delta).isoformat()


async def create_challenge(client: AsyncClient, headers: dict, activate: bool = True, **overrides) -> dict:
    body = {
        "title": "October 50K",
        "challenge_type": "distance",
        "target_value": 50,
        "unit": "km",
        "start_date": _iso(-timedelta(days=1)),
        "end_date": _iso(timedelta(days=30)),
    }
    body.update(overrides)
    response = await client.post("/api/v1/challenges", headers=headers, json=body)
    assert response.status_code == 201, response.text
    challenge = response.json()
    if activate:
        response = await client.post(f"/api/v1/challenges/{challenge['id']}/activate", headers=headers)
        assert response.status_code == 200, response.text
        challenge = response.json()
    return challenge


class TestCreateAndActivate:
    async def test_created_inactive(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(client, user["headers"], activate=False)
        assert challenge["is_active"] is False
        assert challenge["participant_count"] == 0
        assert challenge["xp_reward"] == 250
        assert challenge["creator_id"] == user["user_id"]

    async def test_inactive_challenges_not_listed(self, client: AsyncClient, user: dict):
        await create_challenge(client, user["headers"], activate=False)
        response = await client.get("/api/v1/challenges")
        assert response.json()["total"] == 0
        everything = await client.get("/api/v1/challenges", params={"active_only": False})
        assert everything.json()["total"] == 1

    async def test_only_creator_activates(self, client: AsyncClient, user: dict, other_user: dict):
        challenge = await create_challenge(client, user["headers"], activate=False)
        response = await client.post(f"/api/v1/challenges/{challenge['id']}/activate", headers=other_user["headers"])
        assert response.status_code == 403

    async def test_activate_twice(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(client, user["headers"])
        response = await client.post(f"/api/v1/challenges/{challenge['id']}/activate", headers=user["headers"])
        assert response.status_code == 409

    async def test_cannot_activate_before_start(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(
            client, user["headers"], activate=False, start_date=_iso(timedelta(days=3)), end_date=_iso(timedelta(days=10))
        )
        response = await client.post(f"/api/v1/challenges/{challenge['id']}/activate", headers=user["headers"])
        assert response.status_code == 400

    async def test_window_validation(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/challenges", headers=user["headers"], json={
            "title": "Backwards", "challenge_type": "distance", "target_value": 5, "unit": "km",
            "start_date": _iso(timedelta(days=5)), "end_date": _iso(timedelta(days=1)),
        })
        assert response.status_code == 400

        response = await client.post("/api/v1/challenges", headers=user["headers"], json={
            "title": "Already over", "challenge_type": "distance", "target_value": 5, "unit": "km",
            "start_date": _iso(-timedelta(days=5)), "end_date": _iso(-timedelta(days=1)),
        })
        assert response.status_code == 400

    async def test_search_and_filter(self, client: AsyncClient, user: dict):
        await create_challenge(client, user["headers"])
        await create_challenge(
            client, user["headers"], title="Ten workouts", challenge_type="activity_count", target_value=10, unit="sessions"
        )
        by_type = await client.get("/api/v1/challenges", params={"challenge_type": "activity_count"})
        assert [c["title"] for c in by_type.json()["challenges"]] == ["Ten workouts"]
        by_text = await client.get("/api/v1/challenges", params={"q": "50k"})
        assert [c["title"] for c in by_text.json()["challenges"]] == ["October 50K"]

    async def test_unknown_challenge(self, client: AsyncClient):
        assert (await client.get("/api/v1/challenges/404")).status_code == 404


class TestParticipation:
    async def test_join(self, client: AsyncClient, user: dict, other_user: dict):
        challenge = await create_challenge(client, user["headers"])
        response = await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=other_user["headers"])
        assert response.status_code == 201
        assert response.json()["progress"] == 0
        assert response.json()["is_completed"] is False

        detail = await client.get(f"/api/v1/challenges/{challenge['id']}")
        assert detail.json()["participant_count"] == 1

    async def test_join_twice(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(client, user["headers"])
        await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=user["headers"])
        response = await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=user["headers"])
        assert response.status_code == 409

    async def test_join_inactive(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(client, user["headers"], activate=False)
        response = await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=user["headers"])
        assert response.status_code == 409

    async def test_full_challenge(self, client: AsyncClient, user: dict, other_user: dict):
        challenge = await create_challenge(client, user["headers"], max_participants=2)
        third = await register_user(client, email="rower@example.com", display_name="Rower")
        for headers in (user["headers"], other_user["headers"]):
            assert (await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=headers)).status_code == 201
        response = await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=third["headers"])
        assert response.status_code == 409

    async def test_leave(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(client, user["headers"])
        await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=user["headers"])
        response = await client.post(f"/api/v1/challenges/{challenge['id']}/leave", headers=user["headers"])
        assert response.status_code == 204
        detail = await client.get(f"/api/v1/challenges/{challenge['id']}")
        assert detail.json()["participant_count"] == 0

        again = await client.post(f"/api/v1/challenges/{challenge['id']}/leave", headers=user["headers"])
        assert again.status_code == 404

    async def test_mine(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(client, user["headers"])
        await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=user["headers"])
        response = await client.get("/api/v1/challenges/mine", headers=user["headers"])
        [entry] = response.json()["challenges"]
        assert entry["challenge"]["id"] == challenge["id"]
        assert entry["participation"]["progress_pct"] == 0


class TestProgress:
    async def test_manual_progress_on_custom_challenge(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(
            client, user["headers"], title="Learn to swim", challenge_type="custom", target_value=10, unit="lessons"
        )
        await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=user["headers"])

        url = f"/api/v1/challenges/{challenge['id']}/progress"
        response = await client.post(url, headers=user["headers"], json={"value": 4})
        assert response.json()["progress"] == 4
        assert response.json()["progress_pct"] == 40.0

        lower = await client.post(url, headers=user["headers"], json={"value": 3})
        assert lower.status_code == 400

        done = await client.post(url, headers=user["headers"], json={"value": 10})
        assert done.json()["is_completed"] is True

        frozen = await client.post(url, headers=user["headers"], json={"value": 12})
        assert frozen.status_code == 409

        history = await client.get("/api/v1/users/me/xp/history", headers=user["headers"])
        sources = [(e["source"], e["amount"]) for e in history.json()["entries"]]
        assert ("challenge", 250) in sources
        assert ("badge", 200) in sources  # challenge_champion

    async def test_manual_progress_rejected_for_tracked_types(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(client, user["headers"])
        await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=user["headers"])
        response = await client.post(
            f"/api/v1/challenges/{challenge['id']}/progress", headers=user["headers"], json={"value": 5}
        )
        assert response.status_code == 400

    async def test_progress_needs_participation(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(client, user["headers"], challenge_type="custom", unit="lessons")
        response = await client.post(
            f"/api/v1/challenges/{challenge['id']}/progress", headers=user["headers"], json={"value": 1}
        )
        assert response.status_code == 404

    async def test_sessions_advance_distance_challenge(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(client, user["headers"], target_value=10)
        await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=user["headers"])

        first = await log_workout(client, user["headers"], minutes_ago=120, distance_m=6000)
        assert first["challenges_completed"] == []
        second = await log_workout(client, user["headers"], minutes_ago=30, distance_m=4500)
        assert second["challenges_completed"] == [challenge["id"]]

        mine = await client.get("/api/v1/challenges/mine", headers=user["headers"])
        participation = mine.json()["challenges"][0]["participation"]
        assert participation["progress"] == 10.5
        assert participation["progress_pct"] == 100.0

    async def test_activity_filter(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(
            client, user["headers"], challenge_type="activity_count", target_value=3, unit="sessions",
            activity_type="swimming",
        )
        await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=user["headers"])
        await log_workout(client, user["headers"])
        mine = await client.get("/api/v1/challenges/mine", headers=user["headers"])
        assert mine.json()["challenges"][0]["participation"]["progress"] == 0

    async def test_leaderboard(self, client: AsyncClient, user: dict, other_user: dict):
        challenge = await create_challenge(client, user["headers"], challenge_type="custom", unit="points")
        for headers in (user["headers"], other_user["headers"]):
            await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=headers)
        url = f"/api/v1/challenges/{challenge['id']}/progress"
        await client.post(url, headers=user["headers"], json={"value": 10})
        await client.post(url, headers=other_user["headers"], json={"value": 25})

        response = await client.get(f"/api/v1/challenges/{challenge['id']}/leaderboard")
        entries = response.json()["entries"]
        assert [(e["rank"], e["display_name"], e["progress"]) for e in entries] == [
            (1, "Cyclist", 25),
            (2, "Runner", 10),
        ]

    async def test_completed_participation_cannot_leave(self, client: AsyncClient, user: dict):
        challenge = await create_challenge(client, user["headers"], challenge_type="custom", target_value=1, unit="x")
        await client.post(f"/api/v1/challenges/{challenge['id']}/join", headers=user["headers"])
        await client.post(f"/api/v1/challenges/{challenge['id']}/progress", headers=user["headers"], json={"value": 1})
        response = await client.post(f"/api/v1/challenges/{challenge['id']}/leave", headers=user["headers"])
        assert response.status_code == 409

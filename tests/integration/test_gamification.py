"""Levels, badges, XP, streaks and leaderboards over HTTP."""

from datetime import datetime, timezone

from httpx import AsyncClient

from fitvibe.database import run_after_commit_callbacks
from fitvibe.gamification.leaderboard import build_leaderboard_key
from fitvibe.gamification.seed import BADGE_SEED_DATA
from fitvibe.gamification.xp_service import grant_xp
from tests.conftest import log_workout


class TestLevels:
    async def test_level_table(self, client: AsyncClient):
        response = await client.get("/api/v1/gamification/levels", params={"max_level": 4})
        levels = response.json()["levels"]
        assert [lvl["cumulative"] for lvl in levels] == [0, 100, 300, 600]
        assert [lvl["xp_required"] for lvl in levels] == [0, 100, 200, 300]
        assert levels[0]["title"] == "Couch Starter"
        assert levels[2]["title"] == "Weekend Warrior"

    async def test_max_level_bounds(self, client: AsyncClient):
        response = await client.get("/api/v1/gamification/levels", params={"max_level": 0})
        assert response.status_code == 422


class TestBadgeCatalogue:
    async def test_lists_every_badge(self, client: AsyncClient):
        response = await client.get("/api/v1/badges")
        badges = response.json()["badges"]
        assert len(badges) == len(BADGE_SEED_DATA)
        assert all(b["total_earned"] == 0 for b in badges)

    async def test_badge_detail_with_earners(self, client: AsyncClient, user: dict):
        await log_workout(client, user["headers"])
        response = await client.get("/api/v1/badges/first_workout")
        data = response.json()
        assert data["trigger_type"] == "session_count"
        assert data["total_earned"] == 1
        assert data["recent_earners"][0]["display_name"] == "Runner"

    async def test_unknown_badge(self, client: AsyncClient):
        response = await client.get("/api/v1/badges/does_not_exist")
        assert response.status_code == 404


class TestUserProgress:
    async def test_fresh_user(self, client: AsyncClient, user: dict):
        xp = await client.get("/api/v1/users/me/xp", headers=user["headers"])
        assert xp.json()["total_xp"] == 0
        assert xp.json()["level"] == 1
        assert xp.json()["xp_to_next"] == 100

        badges = await client.get("/api/v1/users/me/badges", headers=user["headers"])
        assert badges.json()["total_earned"] == 0
        assert badges.json()["total_available"] == len(BADGE_SEED_DATA)

        streak = await client.get("/api/v1/users/me/streak", headers=user["headers"])
        assert streak.json()["current_streak"] == 0
        assert streak.json()["active_today"] is False

    async def test_xp_history_records_each_grant(self, client: AsyncClient, user: dict):
        result = await log_workout(client, user["headers"])
        response = await client.get("/api/v1/users/me/xp/history", headers=user["headers"])
        entries = response.json()["entries"]
        sources = {e["source"] for e in entries}
        assert sources == {"session", "badge"}
        assert response.json()["total"] == 1 + len(result["badges_awarded"])

        total = sum(e["amount"] for e in entries)
        xp = await client.get("/api/v1/users/me/xp", headers=user["headers"])
        assert xp.json()["total_xp"] == total

    async def test_streak_after_workout(self, client: AsyncClient, user: dict):
        await log_workout(client, user["headers"])
        response = await client.get("/api/v1/users/me/streak", headers=user["headers"])
        data = response.json()
        assert data["current_streak"] == 1
        assert data["longest_streak"] == 1
        assert data["active_today"] is True
        assert data["active_days"] == 1

    async def test_calendar(self, client: AsyncClient, user: dict):
        await log_workout(client, user["headers"], minutes_ago=120)
        await log_workout(client, user["headers"], minutes_ago=30)
        response = await client.get("/api/v1/users/me/streak/calendar", headers=user["headers"])
        days = response.json()["days"]
        assert len(days) == 30
        today = datetime.now(timezone.utc).date().isoformat()
        assert days[-1] == {"date": today, "sessions": 2}
        assert sum(d["sessions"] for d in days) == 2

    async def test_calendar_rejects_reversed_range(self, client: AsyncClient, user: dict):
        response = await client.get(
            "/api/v1/users/me/streak/calendar",
            headers=user["headers"],
            params={"start": "2026-03-10", "end": "2026-03-01"},
        )
        assert response.status_code == 400

    async def test_summary(self, client: AsyncClient, user: dict):
        await log_workout(client, user["headers"], distance_m=5000, calories=400)
        response = await client.get("/api/v1/users/me/gamification", headers=user["headers"])
        data = response.json()
        assert data["totals"]["total_sessions"] == 1
        assert data["totals"]["total_distance_m"] == 5000
        assert data["totals"]["total_calories"] == 400
        assert data["badges"]["total"] == len(BADGE_SEED_DATA)
        assert data["badges"]["earned"] >= 1
        assert data["streak"]["current_streak"] == 1


class TestLeaderboards:
    async def test_xp_leaderboard(self, client: AsyncClient, user: dict, other_user: dict):
        await log_workout(client, user["headers"], minutes_ago=90)
        await log_workout(client, other_user["headers"], minutes_ago=20)

        response = await client.get("/api/v1/leaderboards/xp", params={"period": "alltime"})
        data = response.json()
        assert data["total"] == 2
        assert [e["user_id"] for e in data["entries"]] == [user["user_id"], other_user["user_id"]]
        assert data["entries"][0]["rank"] == 1
        assert data["entries"][0]["display_name"] == "Runner"

    async def test_distance_leaderboard_in_km(self, client: AsyncClient, user: dict):
        await log_workout(client, user["headers"], distance_m=12500)
        response = await client.get("/api/v1/leaderboards/distance", params={"period": "weekly"})
        assert response.json()["entries"][0]["score"] == 12.5

    async def test_my_rank(self, client: AsyncClient, user: dict, other_user: dict):
        await log_workout(client, user["headers"])
        mine = await client.get("/api/v1/leaderboards/sessions/me", headers=user["headers"])
        assert mine.json()["rank"] == 1
        assert mine.json()["score"] == 1

        theirs = await client.get("/api/v1/leaderboards/sessions/me", headers=other_user["headers"])
        assert theirs.json()["rank"] is None
        assert theirs.json()["score"] == 0

    async def test_unknown_metric_or_period(self, client: AsyncClient):
        assert (await client.get("/api/v1/leaderboards/pushups")).status_code == 400
        response = await client.get("/api/v1/leaderboards/xp", params={"period": "daily"})
        assert response.status_code == 400

    async def test_scores_follow_the_transaction(self, db_session, redis_client, user: dict):
        key = build_leaderboard_key("xp", "alltime")

        await grant_xp(db_session, redis_client, user["user_id"], 40, "bonus", "1", "Rolled back", "bonus:1")
        await db_session.rollback()
        assert await run_after_commit_callbacks(db_session) == 0
        assert await redis_client.zscore(key, str(user["user_id"])) is None

        await grant_xp(db_session, redis_client, user["user_id"], 40, "bonus", "2", "Kept", "bonus:2")
        assert await redis_client.zscore(key, str(user["user_id"])) is None
        await db_session.commit()
        assert await run_after_commit_callbacks(db_session) == 1
        assert await redis_client.zscore(key, str(user["user_id"])) == 40

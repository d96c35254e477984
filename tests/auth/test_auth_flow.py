"""Integration tests for authentication flows."""

from datetime import datetime, timedelta, timezone

from httpx import AsyncClient
from sqlalchemy import select, update

from fitvibe.auth.jwt import hash_refresh_token
from fitvibe.db.models import RefreshToken, User
from tests.conftest import DEFAULT_PASSWORD, register_user


def _token_from(mock_email_service, template_name: str, url_key: str) -> str:
    for call in reversed(mock_email_service.send_template.await_args_list):
        if call.kwargs["template_name"] == template_name:
            return call.kwargs["context"][url_key].split("token=")[1]
    raise AssertionError(f"no {template_name} email sent")


class TestRegistration:
    async def test_register_returns_tokens_and_profile(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/register", json={
            "email": "New.Runner@Example.com",
            "password": DEFAULT_PASSWORD,
            "display_name": "  New Runner ",
            "fitness_level": "intermediate",
        })
        assert response.status_code == 201
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["user"]["email"] == "new.runner@example.com"
        assert data["user"]["display_name"] == "New Runner"
        assert data["user"]["fitness_level"] == "intermediate"
        assert data["user"]["email_verified"] is False
        assert data["user"]["level"] == 1
        assert data["user"]["total_xp"] == 0

    async def test_register_sends_welcome_email(self, client: AsyncClient, mock_email_service):
        await register_user(client)
        call = mock_email_service.send_template.await_args
        assert call.kwargs["template_name"] == "welcome"
        assert call.kwargs["to"] == "runner@example.com"
        assert "token=" in call.kwargs["context"]["verify_url"]

    async def test_register_survives_email_failure(self, client: AsyncClient, mock_email_service):
        mock_email_service.send_template.side_effect = ConnectionError("smtp down")
        response = await client.post("/api/v1/auth/register", json={
            "email": "offline@example.com", "password": DEFAULT_PASSWORD, "display_name": "Offline",
        })
        assert response.status_code == 201

    async def test_duplicate_email_conflicts(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/register", json={
            "email": "RUNNER@example.com", "password": DEFAULT_PASSWORD, "display_name": "Someone Else",
        })
        assert response.status_code == 409

    async def test_duplicate_display_name_is_case_insensitive(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/register", json={
            "email": "other@example.com", "password": DEFAULT_PASSWORD, "display_name": "RUNNER",
        })
        assert response.status_code == 409

    async def test_weak_password_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/register", json={
            "email": "weak@example.com", "password": "password", "display_name": "Weakling",
        })
        assert response.status_code == 400

    async def test_invalid_email_is_422(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/register", json={
            "email": "not-an-email", "password": DEFAULT_PASSWORD, "display_name": "Nobody",
        })
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    async def test_short_display_name_is_422(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/register", json={
            "email": "short@example.com", "password": DEFAULT_PASSWORD, "display_name": "  ab  ",
        })
        assert response.status_code == 422


class TestLogin:
    async def test_login_success(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/login", json={
            "email": user["email"], "password": user["password"],
        })
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["id"] == user["user_id"]
        assert data["user"]["login_count"] == 2

    async def test_login_email_is_case_insensitive(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/login", json={
            "email": "RUNNER@EXAMPLE.COM", "password": user["password"],
        })
        assert response.status_code == 200

    async def test_wrong_password(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/login", json={
            "email": user["email"], "password": "WrongP@ss1",
        })
        assert response.status_code == 401

    async def test_unknown_email_same_error(self, client: AsyncClient, user: dict):
        wrong_pw = await client.post("/api/v1/auth/login", json={
            "email": user["email"], "password": "WrongP@ss1",
        })
        unknown = await client.post("/api/v1/auth/login", json={
            "email": "ghost@example.com", "password": "WrongP@ss1",
        })
        assert unknown.status_code == 401
        assert unknown.json()["detail"] == wrong_pw.json()["detail"]

    async def test_lockout_after_repeated_failures(self, client: AsyncClient, user: dict):
        for _ in range(10):
            await client.post("/api/v1/auth/login", json={"email": user["email"], "password": "WrongP@ss1"})
        response = await client.post("/api/v1/auth/login", json={
            "email": user["email"], "password": user["password"],
        })
        assert response.status_code == 429
        assert int(response.headers["retry-after"]) == 15 * 60

    async def test_success_clears_failure_counter(self, client: AsyncClient, user: dict, redis_client):
        for _ in range(3):
            await client.post("/api/v1/auth/login", json={"email": user["email"], "password": "WrongP@ss1"})
        assert await redis_client.get(f"login_attempts:{user['user_id']}") == "3"
        await client.post("/api/v1/auth/login", json={"email": user["email"], "password": user["password"]})
        assert await redis_client.get(f"login_attempts:{user['user_id']}") is None


class TestTokenRefresh:
    async def test_refresh_token_rotation(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": user["refresh_token"]})
        assert response.status_code == 200
        data = response.json()
        assert data["refresh_token"] != user["refresh_token"]
        assert data["access_token"]

    async def test_refresh_token_invalid(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": "not_a_real_token"})
        assert response.status_code == 401

    async def test_reuse_revokes_every_session(self, client: AsyncClient, user: dict):
        old = user["refresh_token"]
        first = await client.post("/api/v1/auth/refresh", json={"refresh_token": old})
        rotated = first.json()["refresh_token"]

        reuse = await client.post("/api/v1/auth/refresh", json={"refresh_token": old})
        assert reuse.status_code == 401

        # The legitimately rotated token died with the rest
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": rotated})
        assert response.status_code == 401

    async def test_expired_refresh_token(self, client: AsyncClient, user: dict, db_session):
        token_hash = hash_refresh_token(user["refresh_token"])
        await db_session.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == token_hash)
            .values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        )
        await db_session.commit()

        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": user["refresh_token"]})
        assert response.status_code == 401
        assert response.json()["detail"] == "Refresh token has expired"

        # Expiry is not reuse: the token is left as it was
        result = await db_session.execute(select(RefreshToken).where(RefreshToken.token_hash == token_hash))
        record = result.scalar_one()
        assert record.is_revoked is False
        assert record.replaced_by is None


class TestLogout:
    async def test_logout_revokes_refresh_token(self, client: AsyncClient, user: dict):
        response = await client.post(
            "/api/v1/auth/logout", json={"refresh_token": user["refresh_token"]}, headers=user["headers"]
        )
        assert response.status_code == 200
        refresh = await client.post("/api/v1/auth/refresh", json={"refresh_token": user["refresh_token"]})
        assert refresh.status_code == 401

    async def test_logout_requires_auth(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/logout", json={"refresh_token": user["refresh_token"]})
        assert response.status_code == 401

    async def test_logout_all(self, client: AsyncClient, user: dict):
        login = await client.post("/api/v1/auth/login", json={"email": user["email"], "password": user["password"]})
        second_refresh = login.json()["refresh_token"]

        response = await client.post("/api/v1/auth/logout-all", headers=user["headers"])
        assert response.status_code == 200
        assert response.json()["revoked"] == 2

        for token in (user["refresh_token"], second_refresh):
            refresh = await client.post("/api/v1/auth/refresh", json={"refresh_token": token})
            assert refresh.status_code == 401


class TestEmailVerification:
    async def test_verify_email(self, client: AsyncClient, user: dict, mock_email_service):
        token = _token_from(mock_email_service, "welcome", "verify_url")
        response = await client.post("/api/v1/auth/verify-email", json={"token": token})
        assert response.status_code == 200

        me = await client.get("/api/v1/auth/me", headers=user["headers"])
        assert me.json()["email_verified"] is True

    async def test_token_is_single_use(self, client: AsyncClient, user: dict, mock_email_service):
        token = _token_from(mock_email_service, "welcome", "verify_url")
        await client.post("/api/v1/auth/verify-email", json={"token": token})
        again = await client.post("/api/v1/auth/verify-email", json={"token": token})
        assert again.status_code == 400

    async def test_unknown_token(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/verify-email", json={"token": "bogus"})
        assert response.status_code == 400

    async def test_resend_invalidates_previous_token(self, client: AsyncClient, user: dict, mock_email_service):
        first = _token_from(mock_email_service, "welcome", "verify_url")
        response = await client.post("/api/v1/auth/resend-verification", headers=user["headers"])
        assert response.status_code == 200
        second = _token_from(mock_email_service, "verify_email", "verify_url")

        assert (await client.post("/api/v1/auth/verify-email", json={"token": first})).status_code == 400
        assert (await client.post("/api/v1/auth/verify-email", json={"token": second})).status_code == 200

    async def test_resend_cooldown(self, client: AsyncClient, user: dict):
        await client.post("/api/v1/auth/resend-verification", headers=user["headers"])
        response = await client.post("/api/v1/auth/resend-verification", headers=user["headers"])
        assert response.status_code == 429
        assert 0 < int(response.headers["retry-after"]) <= 300

    async def test_resend_when_already_verified(self, client: AsyncClient, user: dict, mock_email_service):
        token = _token_from(mock_email_service, "welcome", "verify_url")
        await client.post("/api/v1/auth/verify-email", json={"token": token})
        response = await client.post("/api/v1/auth/resend-verification", headers=user["headers"])
        assert response.status_code == 400


class TestPasswordManagement:
    async def test_forgot_password_unknown_email_still_200(self, client: AsyncClient, mock_email_service):
        response = await client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})
        assert response.status_code == 200
        mock_email_service.send_template.assert_not_awaited()

    async def test_reset_password_flow(self, client: AsyncClient, user: dict, mock_email_service):
        await client.post("/api/v1/auth/forgot-password", json={"email": user["email"]})
        token = _token_from(mock_email_service, "password_reset", "reset_url")

        response = await client.post("/api/v1/auth/reset-password", json={
            "token": token, "new_password": "N3wSecure!Pass",
        })
        assert response.status_code == 200

        old_login = await client.post("/api/v1/auth/login", json={"email": user["email"], "password": user["password"]})
        assert old_login.status_code == 401
        new_login = await client.post("/api/v1/auth/login", json={"email": user["email"], "password": "N3wSecure!Pass"})
        assert new_login.status_code == 200

        # Every refresh token issued before the reset is gone
        refresh = await client.post("/api/v1/auth/refresh", json={"refresh_token": user["refresh_token"]})
        assert refresh.status_code == 401

    async def test_reset_token_single_use(self, client: AsyncClient, user: dict, mock_email_service):
        await client.post("/api/v1/auth/forgot-password", json={"email": user["email"]})
        token = _token_from(mock_email_service, "password_reset", "reset_url")
        await client.post("/api/v1/auth/reset-password", json={"token": token, "new_password": "N3wSecure!Pass"})
        again = await client.post("/api/v1/auth/reset-password", json={"token": token, "new_password": "An0ther!Pass"})
        assert again.status_code == 400

    async def test_reset_rejects_weak_password(self, client: AsyncClient, user: dict, mock_email_service):
        await client.post("/api/v1/auth/forgot-password", json={"email": user["email"]})
        token = _token_from(mock_email_service, "password_reset", "reset_url")
        response = await client.post("/api/v1/auth/reset-password", json={"token": token, "new_password": "weak"})
        assert response.status_code == 400

    async def test_change_password(self, client: AsyncClient, user: dict, mock_email_service):
        response = await client.post("/api/v1/auth/change-password", headers=user["headers"], json={
            "current_password": user["password"], "new_password": "Chang3d!Pass",
        })
        assert response.status_code == 200
        assert mock_email_service.send_template.await_args.kwargs["template_name"] == "password_changed"

        login = await client.post("/api/v1/auth/login", json={"email": user["email"], "password": "Chang3d!Pass"})
        assert login.status_code == 200

    async def test_change_password_wrong_current(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/change-password", headers=user["headers"], json={
            "current_password": "WrongP@ss1", "new_password": "Chang3d!Pass",
        })
        assert response.status_code == 401

    async def test_change_password_must_differ(self, client: AsyncClient, user: dict):
        response = await client.post("/api/v1/auth/change-password", headers=user["headers"], json={
            "current_password": user["password"], "new_password": user["password"],
        })
        assert response.status_code == 400

    async def test_password_strength_endpoint(self, client: AsyncClient):
        weak = await client.post("/api/v1/auth/password-strength", json={"password": "password"})
        assert weak.status_code == 200
        assert weak.json()["is_strong"] is False
        assert weak.json()["problems"]

        strong = await client.post("/api/v1/auth/password-strength", json={"password": "X9#kL2$mQ7!vR4@z"})
        assert strong.json()["is_strong"] is True
        assert strong.json()["score"] > weak.json()["score"]

    async def test_generate_password_endpoint(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/generate-password")
        assert response.status_code == 200
        assert len(response.json()["password"]) == 16


class TestCurrentUser:
    async def test_me(self, client: AsyncClient, user: dict):
        response = await client.get("/api/v1/auth/me", headers=user["headers"])
        assert response.status_code == 200
        assert response.json()["id"] == user["user_id"]

    async def test_me_without_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401

    async def test_me_with_garbage_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    async def test_deactivated_account_is_403(self, client: AsyncClient, user: dict, db_session):
        account = await db_session.get(User, user["user_id"])
        account.is_active = False
        await db_session.commit()

        response = await client.get("/api/v1/auth/me", headers=user["headers"])
        assert response.status_code == 403

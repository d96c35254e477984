"""Tests for email service and templates."""

from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest
from fakeredis import aioredis as fake_aioredis

from fitvibe.config import get_settings
from fitvibe.email.service import (
    EmailService,
    ResendProvider,
    SMTPProvider,
    _create_provider,
    render_template,
)
from fitvibe.email.templates import (
    password_changed,
    password_reset,
    verify_email,
    welcome_email,
)


class TestEmailTemplates:
    def test_welcome_email(self):
        subject, html, text = welcome_email("Runner", "https://fitvibe.app/verify?token=abc")
        assert "Welcome" in subject
        assert "Runner" in html
        assert "https://fitvibe.app/verify?token=abc" in text

    def test_welcome_without_name(self):
        _, html, text = welcome_email(verify_url="https://fitvibe.app/verify")
        assert "Hi there," in text
        assert "Hi there," in html

    def test_verify_email(self):
        subject, html, text = verify_email("https://example.com/verify-link")
        assert "confirm" in subject.lower()
        assert "verify-link" in html
        assert "verify-link" in text

    def test_password_reset(self):
        subject, html, text = password_reset("https://example.com/reset-link")
        assert "reset" in subject.lower()
        assert "reset-link" in html
        assert "reset-link" in text

    def test_password_changed(self):
        subject, html, text = password_changed("Runner")
        assert "password" in subject.lower()
        assert "Runner" in html
        assert "Runner" in text

    def test_display_name_is_escaped(self):
        _, html, _ = password_changed("<script>")
        assert "<script>" not in html
        assert "&lt;script&gt;" in html


class TestRenderTemplate:
    def test_extra_context_ignored(self):
        subject, _, text = render_template(
            "password_reset", {"reset_url": "https://x/reset", "display_name": "Runner", "unused": 1}
        )
        assert "reset" in subject.lower()
        assert "Hi Runner," in text

    def test_unknown_template(self):
        with pytest.raises(ValueError, match="Unknown template"):
            render_template("newsletter", {})


class TestProviderSelection:
    def test_default_is_smtp(self):
        assert isinstance(_create_provider(), SMTPProvider)

    def test_resend(self, monkeypatch):
        monkeypatch.setenv("FV_EMAIL_PROVIDER", "resend")
        monkeypatch.setenv("FV_RESEND_API_KEY", "re_test")
        get_settings.cache_clear()
        provider = _create_provider()
        assert isinstance(provider, ResendProvider)
        assert provider.api_key == "re_test"

    def test_unknown_provider(self, monkeypatch):
        monkeypatch.setenv("FV_EMAIL_PROVIDER", "carrier-pigeon")
        get_settings.cache_clear()
        with pytest.raises(ValueError, match="Unsupported email provider"):
            _create_provider()


class TestSMTPProvider:
    def _provider(self) -> SMTPProvider:
        return SMTPProvider(
            host="smtp.test",
            port=587,
            username="",
            password="",
            from_address="noreply@fitvibe.app",
            from_name="FitVibe",
        )

    def test_message_is_multipart(self):
        msg = self._provider().build_message("runner@example.com", "Hello", "<p>hi</p>", "hi")
        assert msg["From"] == "FitVibe <noreply@fitvibe.app>"
        assert msg["To"] == "runner@example.com"
        assert [part.get_content_type() for part in msg.get_payload()] == ["text/plain", "text/html"]

    async def test_send_success(self):
        with patch("aiosmtplib.send", new=AsyncMock()) as send:
            assert await self._provider().send("runner@example.com", "Hello", "<p>hi</p>", "hi") is True
        send.assert_awaited_once()
        assert send.await_args.kwargs["hostname"] == "smtp.test"
        assert send.await_args.kwargs["username"] is None

    async def test_send_failure_returns_false(self):
        with patch("aiosmtplib.send", new=AsyncMock(side_effect=aiosmtplib.SMTPException("down"))):
            assert await self._provider().send("runner@example.com", "Hello", "<p>hi</p>", "hi") is False


class TestEmailService:
    async def test_hourly_limit_per_recipient(self):
        redis = fake_aioredis.FakeRedis(decode_responses=True)
        provider = AsyncMock()
        provider.send = AsyncMock(return_value=True)
        service = EmailService(provider=provider, redis=redis, max_per_hour=2)

        results = [await service.send_email("Runner@Example.com", "Hi", "<p>x</p>", "x") for _ in range(3)]
        assert results == [True, True, False]
        assert provider.send.await_count == 2

        # A different recipient has its own budget
        assert await service.send_email("cyclist@example.com", "Hi", "<p>x</p>", "x") is True
        await redis.aclose()

    async def test_send_template(self):
        provider = AsyncMock()
        provider.send = AsyncMock(return_value=True)
        service = EmailService(provider=provider, max_per_hour=5)

        sent = await service.send_template("runner@example.com", "verify_email", {"verify_url": "https://x/v"})
        assert sent is True
        to, subject, _html, text = provider.send.await_args.args
        assert to == "runner@example.com"
        assert "confirm" in subject.lower()
        assert "https://x/v" in text

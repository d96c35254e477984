"""
Transactional email templates.

Every template returns ``(subject, html_body, text_body)``. HTML uses inline
styles only; user-supplied values are escaped.
"""

from __future__ import annotations

from html import escape

APP_NAME = "FitVibe"
ACCENT = "#FF5A36"
BG = "#F5F7FA"
CARD = "#FFFFFF"
TEXT = "#1F2933"
MUTED = "#616E7C"


def _layout(content: str) -> str:
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>{APP_NAME}</title></head>
<body style="margin:0;padding:0;background-color:{BG};font-family:-apple-system,'Segoe UI',Roboto,sans-serif;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background-color:{BG};">
    <tr><td align="center" style="padding:32px 16px;">
      <table role="presentation" width="560" cellspacing="0" cellpadding="0" style="max-width:560px;width:100%;">
        <tr><td style="padding-bottom:24px;font-size:24px;font-weight:700;color:{ACCENT};">{APP_NAME}</td></tr>
        <tr><td style="background-color:{CARD};border-radius:12px;padding:32px;color:{TEXT};">{content}</td></tr>
        <tr><td style="padding-top:24px;font-size:12px;color:{MUTED};">
          You are receiving this because you have a {APP_NAME} account.
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>"""


def _button(url: str, label: str) -> str:
    return (
        f'<p style="margin:28px 0;"><a href="{escape(url, quote=True)}" '
        f'style="background-color:{ACCENT};color:#FFFFFF;padding:12px 28px;border-radius:8px;'
        f'text-decoration:none;font-weight:600;">{label}</a></p>'
    )


def _greeting(display_name: str | None) -> str:
    return f"Hi {display_name}," if display_name else "Hi there,"


def welcome_email(display_name: str | None = None, verify_url: str = "") -> tuple[str, str, str]:
    """Sent right after registration; doubles as the first verification mail."""
    subject = f"Welcome to {APP_NAME}! Confirm your email"
    greeting = _greeting(display_name)
    html_body = _layout(
        f"<p>{escape(greeting)}</p>"
        "<p>Your account is ready. Log your first workout to start earning XP, "
        "badges and streaks.</p>"
        "<p>Please confirm your email address first:</p>"
        f"{_button(verify_url, 'Confirm email')}"
    )
    text_body = (
        f"{greeting}\n\n"
        f"Your {APP_NAME} account is ready.\n\n"
        f"Confirm your email address: {verify_url}\n"
    )
    return subject, html_body, text_body


def verify_email(verify_url: str = "") -> tuple[str, str, str]:
    subject = f"Confirm your {APP_NAME} email address"
    html_body = _layout(
        "<p>Use the button below to confirm your email address.</p>"
        f"{_button(verify_url, 'Confirm email')}"
        f'<p style="color:{MUTED};font-size:13px;">The link expires in 24 hours.</p>'
    )
    text_body = f"Confirm your email address: {verify_url}\n\nThe link expires in 24 hours.\n"
    return subject, html_body, text_body


def password_reset(reset_url: str = "", display_name: str | None = None) -> tuple[str, str, str]:
    subject = f"Reset your {APP_NAME} password"
    greeting = _greeting(display_name)
    html_body = _layout(
        f"<p>{escape(greeting)}</p>"
        "<p>We received a request to reset your password.</p>"
        f"{_button(reset_url, 'Choose a new password')}"
        f'<p style="color:{MUTED};font-size:13px;">If you did not ask for this, ignore this email. '
        "The link expires in one hour.</p>"
    )
    text_body = (
        f"{greeting}\n\nReset your password: {reset_url}\n\n"
        "If you did not ask for this, ignore this email.\n"
    )
    return subject, html_body, text_body


def password_changed(display_name: str | None = None) -> tuple[str, str, str]:
    subject = f"Your {APP_NAME} password was changed"
    greeting = _greeting(display_name)
    html_body = _layout(
        f"<p>{escape(greeting)}</p>"
        "<p>Your password was just changed and all other sessions were signed out.</p>"
        "<p>If this wasn't you, reset your password immediately.</p>"
    )
    text_body = (
        f"{greeting}\n\nYour password was just changed and all other sessions were signed out.\n"
        "If this wasn't you, reset your password immediately.\n"
    )
    return subject, html_body, text_body

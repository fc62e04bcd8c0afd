"""Tests for the mailer and notification delivery."""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from finwise.config import settings
from finwise.services import mailer_service
from finwise.services.mailer_service import MailerService, deliver_safely, redact_email


def test_redact_email():
    assert redact_email("parent@example.com") == "pa***@example.com"
    assert redact_email("nonsense") == "redacted"


def test_build_message_with_attachment():
    mailer = MailerService(settings)

    msg = mailer._build_message(
        "admin@example.com",
        "Review",
        "<p>hi</p>",
        "hi",
        attachment=(b"image-bytes", "passport.png"),
    )

    assert msg["To"] == "admin@example.com"
    assert msg["Subject"] == "Review"
    attachments = list(msg.iter_attachments())
    assert len(attachments) == 1
    assert attachments[0].get_filename() == "passport.png"
    assert attachments[0].get_content() == b"image-bytes"


@pytest.mark.asyncio
class TestMailerService:
    """Sending behaviour with and without SMTP."""

    async def test_unconfigured_does_not_connect(self, monkeypatch):
        smtp = MagicMock()
        monkeypatch.setattr(mailer_service.smtplib, "SMTP", smtp)
        mailer = MailerService(settings.model_copy(update={"smtp_host": None}))

        await mailer.send_child_welcome_email("kid@example.com", "Kim")

        assert mailer.is_configured is False
        smtp.assert_not_called()

    async def test_configured_sends_over_starttls(self, monkeypatch):
        smtp = MagicMock()
        monkeypatch.setattr(mailer_service.smtplib, "SMTP", smtp)
        mailer = MailerService(
            settings.model_copy(
                update={
                    "smtp_host": "smtp.example.com",
                    "smtp_port": 587,
                    "smtp_user": "user",
                    "smtp_password": "secret",
                    "smtp_use_tls": True,
                }
            )
        )

        await mailer.send_password_reset_email(
            "pat@example.com", "Pat", "https://finwise.web.app/reset?token=abc"
        )

        smtp.assert_called_once_with("smtp.example.com", 587, timeout=30)
        server = smtp.return_value.__enter__.return_value
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "secret")
        sent = server.send_message.call_args.args[0]
        assert sent["To"] == "pat@example.com"
        assert "reset?token=abc" in sent.get_body(("plain",)).get_content()

    async def test_admin_notification_goes_to_admin(self, monkeypatch):
        mailer = MailerService(settings.model_copy(update={"admin_email": "ops@example.com"}))
        calls = []

        async def fake_send(to_email, subject, html_body, text_body, attachment=None):
            calls.append((to_email, subject, attachment))

        monkeypatch.setattr(mailer, "send_email", fake_send)

        await mailer.send_parent_signup_notification_to_admin(
            "pat@example.com", "Pat", uuid4(), b"img", "passport.png"
        )

        assert calls[0][0] == "ops@example.com"
        assert calls[0][2] == (b"img", "passport.png")

    async def test_deliver_safely_swallows_failures(self):
        async def failing(*args, **kwargs):
            raise ConnectionError("smtp down")

        await deliver_safely(failing, "pat@example.com")

    async def test_deliver_safely_passes_arguments(self):
        received = []

        async def send(*args, **kwargs):
            received.append((args, kwargs))

        await deliver_safely(send, "a", b="c")

        assert received == [(("a",), {"b": "c"})]

"""Transactional email over SMTP.

Sends are fire-and-forget from the caller's point of view: schedule them with
``deliver_safely`` so a failure is logged and never reaches the request.
"""

import smtplib
import ssl
from collections.abc import Awaitable, Callable
from email.message import EmailMessage
from html import escape
from typing import Any
from uuid import UUID

import structlog
from starlette.concurrency import run_in_threadpool

from finwise.config import Settings

logger = structlog.get_logger(__name__)


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


async def deliver_safely(send: Callable[..., Awaitable[None]], *args: Any, **kwargs: Any) -> None:
    """Run a send coroutine and log instead of raising on failure."""
    try:
        await send(*args, **kwargs)
    except Exception as e:
        logger.error(
            "notification_failed",
            notification=getattr(send, "__name__", repr(send)),
            error_type=type(e).__name__,
            error=str(e),
        )


def _layout(title: str, color: str, body_html: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background: {color}; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0; }}
    .content {{ background: #f9fafb; padding: 30px; border-radius: 0 0 8px 8px; }}
    .button {{ background: {color}; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block; margin-top: 20px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{escape(title)}</h1></div>
    <div class="content">{body_html}</div>
  </div>
</body>
</html>"""


class MailerService:
    """Email service for sending transactional emails.

    Falls back to logging when SMTP is not configured (dev mode).
    """

    def __init__(self, settings: Settings):
        """Initialize SMTP settings."""
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_user = settings.smtp_user
        self.smtp_password = settings.smtp_password
        self.smtp_use_tls = settings.smtp_use_tls
        self.from_email = settings.mail_from
        self.from_name = settings.mail_from_name
        self.admin_email = settings.admin_email

    @property
    def is_configured(self) -> bool:
        """Check if email sending is properly configured."""
        return bool(self.smtp_host)

    def _build_message(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        attachment: tuple[bytes, str] | None = None,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")
        if attachment is not None:
            content, filename = attachment
            msg.add_attachment(
                content,
                maintype="application",
                subtype="octet-stream",
                filename=filename,
            )
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.smtp_use_tls:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.starttls(context=context)
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)
        else:
            with smtplib.SMTP_SSL(
                self.smtp_host, self.smtp_port, context=context, timeout=30
            ) as server:
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        attachment: tuple[bytes, str] | None = None,
    ) -> None:
        """
        Send an email.

        Args:
            to_email: Recipient address
            subject: Subject line
            html_body: HTML body
            text_body: Plain text body
            attachment: Optional (content, filename) pair

        Raises:
            smtplib.SMTPException: If the SMTP server rejects the message
        """
        if not self.is_configured:
            logger.info(
                "email_dev_mode",
                to=redact_email(to_email),
                subject=subject,
                body_preview=text_body[:200],
                has_attachment=attachment is not None,
            )
            return

        msg = self._build_message(to_email, subject, html_body, text_body, attachment)
        await run_in_threadpool(self._deliver, msg)
        logger.info("email_sent", to=redact_email(to_email), subject=subject)

    async def send_parent_welcome_email(self, email: str, name: str) -> None:
        """Welcome a parent whose verification is pending."""
        text = (
            f"Welcome to FinWise, {name}!\n\n"
            "Your parent account has been created successfully. Our team is reviewing "
            "your verification documents and will get back to you within 1-2 business days.\n\n"
            "Thank you for choosing FinWise!"
        )
        html = _layout(
            "Welcome to FinWise",
            "#4F46E5",
            f"<p>Hi {escape(name)},</p>"
            "<p>Your parent account has been created successfully.</p>"
            "<p>Our team is reviewing your verification documents and will get back to you "
            "within 1-2 business days.</p>",
        )
        await self.send_email(email, "Welcome to FinWise - Verification in Progress", html, text)

    async def send_child_welcome_email(self, email: str, name: str) -> None:
        """Welcome a child account."""
        text = (
            f"Welcome to FinWise, {name}!\n\n"
            "Your account has been created successfully. A parent or guardian will need to "
            "link your account to their household to get started.\n\n"
            "Thank you for joining FinWise!"
        )
        html = _layout(
            "Welcome to FinWise",
            "#10B981",
            f"<p>Hi {escape(name)},</p>"
            "<p>Your account has been created successfully.</p>"
            "<p>A parent or guardian will need to link your account to their household "
            "to get started.</p>",
        )
        await self.send_email(email, "Welcome to FinWise", html, text)

    async def send_parent_signup_notification_to_admin(
        self,
        parent_email: str,
        parent_name: str,
        user_id: UUID,
        id_image: bytes,
        id_image_filename: str,
    ) -> None:
        """Ask an administrator to review a parent's identity document."""
        text = (
            "A new parent account is awaiting verification.\n\n"
            f"Name: {parent_name}\nEmail: {parent_email}\nUser ID: {user_id}\n\n"
            "The submitted ID image is attached."
        )
        html = _layout(
            "New parent verification",
            "#F59E0B",
            "<p>A new parent account is awaiting verification.</p>"
            f"<p><strong>Name:</strong> {escape(parent_name)}<br>"
            f"<strong>Email:</strong> {escape(parent_email)}<br>"
            f"<strong>User ID:</strong> {user_id}</p>"
            "<p>The submitted ID image is attached.</p>",
        )
        await self.send_email(
            self.admin_email,
            f"FinWise - Parent verification required: {parent_name}",
            html,
            text,
            attachment=(id_image, id_image_filename),
        )

    async def send_password_reset_email(self, email: str, name: str, reset_link: str) -> None:
        """Send a password reset link."""
        text = (
            f"Hello {name},\n\n"
            "We received a request to reset your FinWise password. Use the link below "
            f"within the next hour:\n\n{reset_link}\n\n"
            "If you did not request this, you can ignore this email."
        )
        html = _layout(
            "Reset your password",
            "#4F46E5",
            f"<p>Hello {escape(name)},</p>"
            "<p>We received a request to reset your FinWise password.</p>"
            f'<a class="button" href="{escape(reset_link)}">Reset password</a>'
            "<p>The link expires in one hour. If you did not request this, "
            "you can ignore this email.</p>",
        )
        await self.send_email(email, "FinWise - Reset your password", html, text)


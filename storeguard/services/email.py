"""
Email Service

Sends transactional mail for the password-reset flow. Providers:
- console: log the envelope only (development default)
- smtp: smtplib, run in a worker thread
- sendgrid: SendGrid v3 HTTP API via httpx

Senders never raise; failures come back as EmailResult(success=False).
"""

import asyncio
import logging
import smtplib
import uuid
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

import httpx

from storeguard.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    method: str = "console"


class EmailService:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.provider = self.settings.email_provider.lower()

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    async def send_password_reset_email(
        self,
        to: str,
        reset_url: str,
        recipient_name: Optional[str] = None,
        expires_in: str = "1 hour",
    ) -> EmailResult:
        greeting = f"Hi {recipient_name}," if recipient_name else "Hi,"
        body = (
            f"{greeting}\n\n"
            f"We received a request to reset the password for your "
            f"{self.settings.app_name} account.\n\n"
            f"Reset your password here:\n{reset_url}\n\n"
            f"This link expires in {expires_in}. If you did not request a "
            f"reset, you can ignore this email.\n"
        )
        return await self.send(to, f"Reset your {self.settings.app_name} password", body)

    async def send_password_changed_email(
        self,
        to: str,
        recipient_name: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> EmailResult:
        greeting = f"Hi {recipient_name}," if recipient_name else "Hi,"
        who = f" by {changed_by}" if changed_by else ""
        body = (
            f"{greeting}\n\n"
            f"The password for your {self.settings.app_name} account was "
            f"changed{who}.\n\n"
            f"If you did not expect this change, contact your administrator.\n"
        )
        return await self.send(to, f"Your {self.settings.app_name} password was changed", body)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def send(self, to: str, subject: str, body: str) -> EmailResult:
        try:
            if self.provider == "smtp":
                return await self._send_smtp(to, subject, body)
            if self.provider == "sendgrid":
                return await self._send_sendgrid(to, subject, body)
            return self._send_console(to, subject)
        except Exception as e:
            logger.error("Email send via %s failed: %s", self.provider, e)
            return EmailResult(success=False, error=str(e)[:400], method=self.provider)

    def _send_console(self, to: str, subject: str) -> EmailResult:
        # Body carries the reset link; log the envelope only
        logger.info("EMAIL (console) to=%s subject=%s", to, subject)
        return EmailResult(success=True, message_id=f"console-{uuid.uuid4()}", method="console")

    async def _send_smtp(self, to: str, subject: str, body: str) -> EmailResult:
        if not self.settings.smtp_host:
            return EmailResult(success=False, error="SMTP not configured", method="smtp")

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.settings.email_from
        msg["To"] = to
        msg["Message-ID"] = f"<{uuid.uuid4()}@storeguard>"
        msg.set_content(body)

        await asyncio.to_thread(self._deliver_smtp, msg)
        return EmailResult(success=True, message_id=msg["Message-ID"], method="smtp")

    def _deliver_smtp(self, msg: EmailMessage) -> None:
        s = self.settings
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=10) as smtp:
            if s.smtp_use_tls:
                smtp.starttls()
            if s.smtp_user:
                smtp.login(s.smtp_user, s.smtp_password or "")
            smtp.send_message(msg)

    async def _send_sendgrid(self, to: str, subject: str, body: str) -> EmailResult:
        if not self.settings.sendgrid_api_key:
            return EmailResult(success=False, error="SendGrid not configured", method="sendgrid")

        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.settings.email_from},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                SENDGRID_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.sendgrid_api_key}"},
            )

        if response.status_code >= 400:
            return EmailResult(
                success=False,
                error=f"SendGrid returned {response.status_code}",
                method="sendgrid",
            )
        return EmailResult(
            success=True,
            message_id=response.headers.get("X-Message-Id"),
            method="sendgrid",
        )


def get_email_service() -> EmailService:
    """FastAPI dependency."""
    return EmailService()

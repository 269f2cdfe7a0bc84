"""Email and webhook delivery of alert notifications."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage

import httpx

from printwatch.config import EmailSettings, Settings
from printwatch.core.models import _now

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Sends a notification over every enabled channel.

    ``dispatch`` is what the alert engine calls; it reports success as a bool
    and only logs failures. ``send_test`` returns the per-channel outcome so an
    operator can see what went wrong.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport

    def update_settings(self, settings: Settings) -> None:
        self.settings = settings

    async def dispatch(self, subject: str, message: str, alert_type: str) -> bool:
        results = await self._send_all(subject, message, alert_type)
        if not results:
            logger.debug("No notification channels enabled; %r not sent", subject)
            return False
        failed = {channel: error for channel, error in results.items() if error}
        for channel, error in failed.items():
            logger.warning("Notification via %s failed: %s", channel, error)
        return len(failed) < len(results)

    async def send_test(self) -> dict[str, str | None]:
        """Send a test message; maps each channel to its error, or None on success."""
        return await self._send_all(
            "PrintWatch test notification",
            "This is a test notification from PrintWatch.",
            "test",
        )

    async def _send_all(
        self, subject: str, message: str, alert_type: str
    ) -> dict[str, str | None]:
        results: dict[str, str | None] = {}
        cfg = self.settings.notifications

        if cfg.email.enabled and cfg.email.recipients:
            try:
                await asyncio.to_thread(_send_email, cfg.email, subject, message)
                results["email"] = None
            except (smtplib.SMTPException, OSError) as exc:
                results["email"] = str(exc)

        hooks = [w for w in cfg.webhooks if w.enabled]
        if hooks:
            payload = {
                "subject": subject,
                "message": message,
                "alert_type": alert_type,
                "text": f"{subject}\n{message}",
                "timestamp": _now().isoformat(),
            }
            async with httpx.AsyncClient(
                timeout=cfg.webhook_timeout, transport=self._transport
            ) as client:
                for hook in hooks:
                    label = f"webhook:{hook.name or httpx.URL(hook.url).host}"
                    try:
                        resp = await client.post(hook.url, json=payload)
                        resp.raise_for_status()
                        results[label] = None
                    except httpx.HTTPError as exc:
                        results[label] = str(exc)

        return results


def _send_email(email: EmailSettings, subject: str, body: str) -> None:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = email.sender or email.user
    msg["To"] = ", ".join(email.recipients)
    msg.set_content(body)

    with smtplib.SMTP(email.host, email.port, timeout=30) as smtp:
        if email.use_tls:
            smtp.starttls()
        if email.user:
            smtp.login(email.user, email.password)
        smtp.send_message(msg)

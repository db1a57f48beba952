"""Operator alerts over the local mail relay.

Alerts are best effort: a broken relay is logged and otherwise ignored so it
can never fail a run.
"""

from __future__ import annotations

import asyncio
import smtplib
import socket
from email.message import EmailMessage
from typing import TYPE_CHECKING

from .config import Settings
from .logging import jlog

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .runner import RunResult

SUBJECT_PREFIX = "[Auction Insights]"


class Notifier:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _send(self, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._settings.alert_from
        msg["To"] = self._settings.alert_to
        msg.set_content(body)
        with smtplib.SMTP(self._settings.smtp_host, self._settings.smtp_port, timeout=30) as server:
            server.send_message(msg)

    async def notify(self, subject: str, body: str) -> bool:
        subject = f"{SUBJECT_PREFIX} {subject}"
        if not self._settings.alert_to:
            jlog("warning", event="alert_skipped", subject=subject, reason="AI_ALERT_TO not set")
            return False
        try:
            await asyncio.to_thread(self._send, subject, body)
        except (smtplib.SMTPException, OSError, socket.timeout) as exc:
            jlog("error", event="alert_failed", subject=subject, error=str(exc))
            return False
        jlog("info", event="alert_sent", subject=subject, to=self._settings.alert_to)
        return True

    async def login_required(self) -> bool:
        return await self.notify(
            "Login required",
            "The Google Ads session is not authenticated.\n"
            "Please log in manually in the browser window; the scraper resumes automatically "
            f"(waiting up to {self._settings.login_timeout_s / 60:g} minutes).",
        )

    async def session_expired(self, url: str) -> bool:
        return await self.notify(
            "Session expired",
            "The keep-alive check no longer reaches an authenticated Google Ads page.\n"
            f"Current URL: {url or '(none)'}\n"
            "Run the scraper with --login-only to sign in again.",
        )

    async def run_succeeded(self, result: "RunResult") -> bool:
        lines = [f"{name}: {tr.row_count} rows" for name, tr in result.targets.items()]
        return await self.notify(
            f"Run succeeded ({result.total_rows} rows)",
            "\n".join([f"Run {result.run_id} finished at {result.finished_at}.", *lines]),
        )

    async def run_failed(self, error: BaseException | str, result: "RunResult | None" = None) -> bool:
        lines = [f"Error: {error}"]
        if result is not None:
            for name, tr in result.targets.items():
                lines.append(f"{name}: {'ok' if tr.ok else 'FAILED - ' + (tr.error or 'unknown error')}")
        return await self.notify("Run failed", "\n".join(lines))


__all__ = ["Notifier"]

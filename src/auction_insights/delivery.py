"""Programmatic delivery of extracted rows to a webhook."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import asdict, dataclass

import requests

from .config import DashboardTarget, Settings
from .extractor import AuctionRow
from .logging import tlog
from .metadata import build_webhook_payload
from .versioning import get_scraper_version


@dataclass(frozen=True)
class DeliveryOutcome:
    ok: bool
    channel: str
    status_code: int | None = None
    error: str | None = None
    detail: str | None = None

    def as_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


class WebhookDelivery:
    channel = "webhook"

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        if not settings.webhook_url:
            raise ValueError("WebhookDelivery requires settings.webhook_url")
        self._url = settings.webhook_url
        self._timeout_s = settings.webhook_timeout_s
        self._mcc_account = settings.mcc_account_id
        self._http = session or requests.Session()

    def _post(self, payload: dict) -> requests.Response:
        return self._http.post(self._url, json=payload, timeout=self._timeout_s)

    async def deliver(self, target: DashboardTarget, rows: Sequence[AuctionRow]) -> DeliveryOutcome:
        """POST the rows; failures come back as ``ok=False``, never as an exception."""

        payload = build_webhook_payload(
            rows=rows,
            dashboard=target.name,
            mcc_account=self._mcc_account,
            scraper_version=get_scraper_version(),
        )
        try:
            resp = await asyncio.to_thread(self._post, payload)
        except requests.RequestException as exc:
            tlog("webhook_failed", target=target.name, level="error", error=str(exc))
            return DeliveryOutcome(ok=False, channel=self.channel, error=str(exc))

        if 200 <= resp.status_code < 300:
            tlog("webhook_delivered", target=target.name, status=resp.status_code, rows=len(rows))
            return DeliveryOutcome(ok=True, channel=self.channel, status_code=resp.status_code)

        body = (resp.text or "")[:500]
        tlog("webhook_rejected", target=target.name, level="error", status=resp.status_code, body=body)
        return DeliveryOutcome(
            ok=False,
            channel=self.channel,
            status_code=resp.status_code,
            error=f"HTTP {resp.status_code}",
            detail=body or None,
        )


__all__ = ["DeliveryOutcome", "WebhookDelivery"]

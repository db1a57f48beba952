"""Payload builders for outbound delivery."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Iterable
from typing import Any
from typing import OrderedDict as OrderedDictType

from .extractor import AuctionRow
from .logging import utcnow_iso


def build_webhook_payload(
    *,
    rows: Iterable[AuctionRow],
    dashboard: str,
    mcc_account: str,
    timestamp: str | None = None,
    scraper_version: str | None = None,
) -> OrderedDictType[str, Any]:
    """Return the webhook body with deterministic key ordering."""

    payload: OrderedDictType[str, Any] = OrderedDict()
    payload["auctionData"] = [row.as_payload() for row in rows]
    payload["timestamp"] = timestamp or utcnow_iso()
    payload["dashboard"] = dashboard
    payload["mccAccount"] = mcc_account
    if scraper_version:
        payload["scraperVersion"] = scraper_version
    return payload


__all__ = ["build_webhook_payload"]

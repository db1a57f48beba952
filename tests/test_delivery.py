import asyncio

import pytest
import requests

from auction_insights.config import DashboardTarget, Settings
from auction_insights.delivery import WebhookDelivery
from auction_insights.extractor import AuctionRow

TARGET = DashboardTarget("Weekly", "42")
ROWS = [AuctionRow("rival.com", "35%")]


class FakeResponse:
    def __init__(self, status_code: int, text: str = ""):
        self.status_code = status_code
        self.text = text


class FakeHttp:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.fixture
def webhook_settings():
    return Settings(delivery_mode="webhook", webhook_url="https://hooks.example/ads", webhook_timeout_s=5)


def test_deliver_posts_payload_and_accepts_2xx(webhook_settings):
    http = FakeHttp(FakeResponse(204))
    outcome = asyncio.run(WebhookDelivery(webhook_settings, session=http).deliver(TARGET, ROWS))
    assert outcome.ok
    assert outcome.status_code == 204
    url, body, timeout = http.calls[0]
    assert url == "https://hooks.example/ads"
    assert timeout == 5
    assert body["dashboard"] == "Weekly"
    assert body["auctionData"][0]["domain"] == "rival.com"


def test_deliver_reports_http_error_without_raising(webhook_settings):
    http = FakeHttp(FakeResponse(500, "upstream down"))
    outcome = asyncio.run(WebhookDelivery(webhook_settings, session=http).deliver(TARGET, ROWS))
    assert not outcome.ok
    assert outcome.error == "HTTP 500"
    assert outcome.as_dict() == {
        "ok": False,
        "channel": "webhook",
        "status_code": 500,
        "error": "HTTP 500",
        "detail": "upstream down",
    }


def test_deliver_reports_connection_error_without_raising(webhook_settings):
    http = FakeHttp(exc=requests.ConnectionError("refused"))
    outcome = asyncio.run(WebhookDelivery(webhook_settings, session=http).deliver(TARGET, ROWS))
    assert not outcome.ok
    assert "refused" in outcome.error


def test_webhook_delivery_requires_url():
    with pytest.raises(ValueError):
        WebhookDelivery(Settings())

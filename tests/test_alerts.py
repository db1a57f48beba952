import asyncio
import smtplib

from auction_insights import alerts
from auction_insights.alerts import Notifier
from auction_insights.config import Settings


class FakeSMTP:
    sent: list = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


class BrokenSMTP(FakeSMTP):
    def __init__(self, host, port, timeout=None):
        raise ConnectionRefusedError("relay down")


def test_notify_sends_prefixed_subject(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(alerts.smtplib, "SMTP", FakeSMTP)
    notifier = Notifier(Settings(alert_to="ops@example.com"))

    assert asyncio.run(notifier.login_required()) is True

    (msg,) = FakeSMTP.sent
    assert msg["Subject"] == "[Auction Insights] Login required"
    assert msg["To"] == "ops@example.com"


def test_notify_failure_is_swallowed(monkeypatch):
    monkeypatch.setattr(alerts.smtplib, "SMTP", BrokenSMTP)
    notifier = Notifier(Settings(alert_to="ops@example.com"))
    assert asyncio.run(notifier.run_failed(RuntimeError("boom"))) is False


def test_notify_smtp_error_is_swallowed(monkeypatch):
    class RejectingSMTP(FakeSMTP):
        def send_message(self, msg):
            raise smtplib.SMTPRecipientsRefused({})

    monkeypatch.setattr(alerts.smtplib, "SMTP", RejectingSMTP)
    notifier = Notifier(Settings(alert_to="ops@example.com"))
    assert asyncio.run(notifier.session_expired("https://accounts.google.com")) is False


def test_notify_without_recipient_is_skipped(monkeypatch):
    monkeypatch.setattr(alerts.smtplib, "SMTP", BrokenSMTP)
    assert asyncio.run(Notifier(Settings()).notify("x", "y")) is False


def test_notifier_keeps_no_history_between_alerts(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(alerts.smtplib, "SMTP", FakeSMTP)
    notifier = Notifier(Settings(alert_to="ops@example.com"))
    before = dict(vars(notifier))

    for _ in range(3):
        asyncio.run(notifier.session_expired("https://accounts.google.com"))

    assert len(FakeSMTP.sent) == 3
    assert vars(notifier) == before

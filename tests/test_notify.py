"""Tests for email and webhook notification delivery."""

from __future__ import annotations

import asyncio
import json
import smtplib

import httpx

from printwatch.config import EmailSettings, NotificationSettings, Settings, WebhookSettings
from printwatch.core import notify
from printwatch.core.notify import NotificationDispatcher


def _settings(**notifications) -> Settings:
    return Settings(notifications=NotificationSettings(**notifications))


def test_no_channels_enabled():
    dispatcher = NotificationDispatcher(_settings())
    assert asyncio.run(dispatcher.dispatch("s", "m", "offline")) is False
    assert asyncio.run(dispatcher.send_test()) == {}


def test_webhook_payload():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(200)

    settings = _settings(webhooks=[WebhookSettings(url="https://hooks.example.com/a", name="teams")])
    dispatcher = NotificationDispatcher(settings, transport=httpx.MockTransport(handler))

    assert asyncio.run(dispatcher.dispatch("Printer offline", "gone", "offline")) is True
    (payload,) = received
    assert payload["subject"] == "Printer offline"
    assert payload["message"] == "gone"
    assert payload["alert_type"] == "offline"
    assert payload["text"] == "Printer offline\ngone"


def test_disabled_webhook_skipped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("disabled webhook was called")

    settings = _settings(webhooks=[WebhookSettings(url="https://hooks.example.com/a", enabled=False)])
    dispatcher = NotificationDispatcher(settings, transport=httpx.MockTransport(handler))
    assert asyncio.run(dispatcher.send_test()) == {}


def test_failures_reported_per_channel():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "bad.example.com":
            return httpx.Response(500)
        return httpx.Response(204)

    settings = _settings(
        webhooks=[
            WebhookSettings(url="https://good.example.com/hook"),
            WebhookSettings(url="https://bad.example.com/hook"),
        ]
    )
    dispatcher = NotificationDispatcher(settings, transport=httpx.MockTransport(handler))

    results = asyncio.run(dispatcher.send_test())
    assert results["webhook:good.example.com"] is None
    assert "500" in results["webhook:bad.example.com"]
    # One channel got through
    assert asyncio.run(dispatcher.dispatch("s", "m", "low-supply")) is True


def test_all_channels_failing():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    settings = _settings(webhooks=[WebhookSettings(url="https://down.example.com/hook")])
    dispatcher = NotificationDispatcher(settings, transport=httpx.MockTransport(handler))
    assert asyncio.run(dispatcher.dispatch("s", "m", "offline")) is False


def test_email_sent_through_smtp(monkeypatch):
    sent = []

    class FakeSMTP:
        def __init__(self, host, port, timeout):
            self.host, self.port = host, port
            self.tls = False
            self.login_args = None

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            self.tls = True

        def login(self, user, password):
            self.login_args = (user, password)

        def send_message(self, msg):
            sent.append((self, msg))

    monkeypatch.setattr(notify.smtplib, "SMTP", FakeSMTP)
    email = EmailSettings(
        enabled=True,
        host="smtp.example.com",
        user="pw@example.com",
        password="secret",
        recipients=["ops@example.com", "desk@example.com"],
    )
    dispatcher = NotificationDispatcher(_settings(email=email))

    assert asyncio.run(dispatcher.send_test()) == {"email": None}
    ((smtp, msg),) = sent
    assert (smtp.host, smtp.port, smtp.tls) == ("smtp.example.com", 587, True)
    assert smtp.login_args == ("pw@example.com", "secret")
    assert msg["To"] == "ops@example.com, desk@example.com"
    assert msg["From"] == "pw@example.com"


def test_email_failure_reported(monkeypatch):
    def broken(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "try later")

    monkeypatch.setattr(notify.smtplib, "SMTP", broken)
    email = EmailSettings(enabled=True, host="smtp.example.com", recipients=["ops@example.com"])
    results = asyncio.run(NotificationDispatcher(_settings(email=email)).send_test())
    assert "try later" in results["email"]

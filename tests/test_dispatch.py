import asyncio

import pytest

from app.core.config import Settings
from app.services import http_client, notifications
from app.services.dispatch import AuditEntry, Notification, SideEffectDispatcher
from app.services.notifications import (
    EmailNotifier,
    NotificationRouter,
    SmsNotifier,
    rate_alert_messages,
)


def test_inline_when_worker_not_running():
    seen = []
    dispatcher = SideEffectDispatcher({AuditEntry: seen.append})
    entry = AuditEntry(1, "ORDER_CREATED", "Order", "7")
    dispatcher.submit(entry)
    assert seen == [entry]


def test_handler_errors_are_swallowed(caplog):
    def boom(_):
        raise RuntimeError("nope")

    dispatcher = SideEffectDispatcher({Notification: boom})
    dispatcher.submit(Notification("EMAIL", "a@b.c", "s", "b"))
    assert any("side effect Notification failed" in r.getMessage() for r in caplog.records)


def test_unknown_message_type_is_dropped():
    SideEffectDispatcher().submit(object())


@pytest.mark.asyncio
async def test_worker_delivers_off_the_request_path():
    seen = []
    dispatcher = SideEffectDispatcher({AuditEntry: seen.append})
    await dispatcher.start()
    try:
        assert dispatcher.running
        dispatcher.submit(AuditEntry(None, "A", "E", "1"))
        dispatcher.submit(AuditEntry(None, "B", "E", "2"))
        await dispatcher.drain()
        assert [e.action for e in seen] == ["A", "B"]
    finally:
        await dispatcher.stop()
    assert not dispatcher.running


@pytest.mark.asyncio
async def test_stop_flushes_pending_messages():
    seen = []
    dispatcher = SideEffectDispatcher({AuditEntry: seen.append})
    await dispatcher.start()
    for i in range(5):
        dispatcher.submit(AuditEntry(None, "X", "E", str(i)))
    await dispatcher.stop()
    assert len(seen) == 5


@pytest.mark.asyncio
async def test_worker_survives_handler_failure():
    seen = []

    def flaky(entry):
        if entry.action == "BAD":
            raise ValueError("bad entry")
        seen.append(entry)

    dispatcher = SideEffectDispatcher({AuditEntry: flaky})
    await dispatcher.start()
    try:
        dispatcher.submit(AuditEntry(None, "BAD", "E", "1"))
        dispatcher.submit(AuditEntry(None, "GOOD", "E", "2"))
        await asyncio.wait_for(dispatcher.drain(), timeout=2)
        assert [e.action for e in seen] == ["GOOD"]
    finally:
        await dispatcher.stop()


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


def test_email_notifier_uses_smtp(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
    notifier = EmailNotifier(Settings(smtp_host="smtp.test", email_from="desk@forex.local"))
    notifier.send("john@example.com", "Order confirmed", "hello")
    assert len(FakeSMTP.sent) == 1
    msg = FakeSMTP.sent[0]
    assert msg["To"] == "john@example.com"
    assert msg["From"] == "desk@forex.local"
    assert msg["Subject"] == "Order confirmed"


def test_email_notifier_log_only_without_host(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
    EmailNotifier(Settings(smtp_host=None)).send("john@example.com", "s", "b")
    assert FakeSMTP.sent == []


def test_sms_notifier_posts_to_gateway(monkeypatch):
    calls = []
    monkeypatch.setattr(
        notifications, "post_json", lambda url, payload, **kw: calls.append((url, payload)) or {}
    )
    SmsNotifier(Settings(sms_gateway_url="http://sms.test/send")).send("+911234567890", "hi")
    assert calls == [("http://sms.test/send", {"to": "+911234567890", "message": "hi"})]


def test_sms_notifier_failure_is_not_resent(monkeypatch):
    attempts = []

    def failing_send(req, timeout):
        attempts.append(req.full_url)
        raise http_client.HttpError("gateway timeout")

    monkeypatch.setattr(http_client, "_send", failing_send)
    with pytest.raises(http_client.HttpError):
        SmsNotifier(Settings(sms_gateway_url="http://sms.test/send")).send("+911234567890", "hi")
    assert attempts == ["http://sms.test/send"]


def test_router_rejects_unknown_channel():
    router = NotificationRouter(EmailNotifier(Settings()), SmsNotifier(Settings()))
    with pytest.raises(ValueError):
        router(Notification("PIGEON", "x", "s", "b"))


def test_rate_alert_messages_follow_alert_type():
    alert = {
        "id": 1,
        "currency_code": "USD",
        "target_rate": 84.0,
        "alert_type": "BOTH",
        "email": "john@example.com",
        "phone": None,
    }
    messages = rate_alert_messages(alert, 83.9)
    assert [m.channel for m in messages] == ["EMAIL"]
    assert "83.90" in messages[0].body

from __future__ import annotations

import asyncio
import json
import logging

import httpx
import pytest

from app.adapters import factory, webhook_notifier
from app.adapters.fake_notifier import RecordingNotifier
from app.adapters.logging_notifier import LoggingNotifier
from app.adapters.payloads import BusinessContact, CustomerInfo, TaskInfo
from app.adapters.webhook_notifier import WebhookNotifier


def _request_parts() -> tuple[BusinessContact, TaskInfo, CustomerInfo]:
    contact = BusinessContact(
        business_id="biz-1",
        business_name="Corner Helpers",
        contact_name="Alex",
        contact_email="alex@example.com",
        contact_phone="555-0100",
    )
    task_info = TaskInfo(
        task_id="task-1",
        title="Move boxes",
        description="Two flights of stairs",
        address="1 Main St",
        urgency="Urgent",
        category="General",
        amount=25.0,
    )
    customer = CustomerInfo(name="Riley", email="riley@example.com", phone="555-0111")
    return contact, task_info, customer


def test_webhook_notifier_posts_json_payload() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202)

    notifier = WebhookNotifier("https://hooks.example.com/volunteer", transport=httpx.MockTransport(handler))
    ok = asyncio.run(notifier.send_business_volunteer_request(*_request_parts()))

    assert ok is True
    assert seen[0]["type"] == "business_volunteer_request"
    assert seen[0]["business"]["contact_email"] == "alex@example.com"
    assert seen[0]["task"]["task_id"] == "task-1"
    assert seen[0]["customer"]["name"] == "Riley"


@pytest.mark.parametrize("status_code", [400, 503])
def test_webhook_notifier_reports_http_failure(status_code: int, caplog: pytest.LogCaptureFixture) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code))
    notifier = WebhookNotifier("https://hooks.example.com/volunteer", transport=transport)

    with caplog.at_level(logging.WARNING, logger="app.adapters.webhook_notifier"):
        ok = asyncio.run(notifier.send_business_volunteer_request(*_request_parts()))

    assert ok is False
    assert "task=task-1" in caplog.text


def test_webhook_notifier_reports_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    notifier = WebhookNotifier("https://hooks.example.com/volunteer", transport=httpx.MockTransport(handler))
    assert asyncio.run(notifier.send_business_volunteer_request(*_request_parts())) is False


def test_logging_notifier_always_delivers(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="app.adapters.logging_notifier"):
        ok = asyncio.run(LoggingNotifier().send_business_volunteer_request(*_request_parts()))
    assert ok is True
    assert "Corner Helpers" in caplog.text


def test_recording_notifier_keeps_requests() -> None:
    notifier = RecordingNotifier(ok=False)
    ok = asyncio.run(notifier.send_business_volunteer_request(*_request_parts()))
    assert ok is False
    assert [item.task_info.task_id for item in notifier.sent] == ["task-1"]


def test_build_notifier_follows_webhook_setting(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(webhook_notifier, "NOTIFIER_WEBHOOK_URL", None)
    assert isinstance(factory.build_notifier(), LoggingNotifier)

    monkeypatch.setattr(webhook_notifier, "NOTIFIER_WEBHOOK_URL", "https://hooks.example.com/volunteer")
    assert isinstance(factory.build_notifier(), WebhookNotifier)

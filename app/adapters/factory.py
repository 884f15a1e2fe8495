from __future__ import annotations

from app.adapters import webhook_notifier
from app.adapters.base import Notifier
from app.adapters.logging_notifier import LoggingNotifier
from app.adapters.webhook_notifier import WebhookNotifier


def build_notifier() -> Notifier:
    url = webhook_notifier.NOTIFIER_WEBHOOK_URL
    if url:
        return WebhookNotifier(url)
    return LoggingNotifier()

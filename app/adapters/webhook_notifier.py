from __future__ import annotations

import logging
import os

import httpx

from app.adapters.payloads import BusinessContact, CustomerInfo, TaskInfo, request_payload

logger = logging.getLogger(__name__)

NOTIFIER_WEBHOOK_URL = os.getenv("NOTIFIER_WEBHOOK_URL")
NOTIFIER_TIMEOUT_SECONDS = float(os.getenv("NOTIFIER_TIMEOUT_SECONDS", "10"))


class WebhookNotifier:
    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout_seconds = max(timeout_seconds or NOTIFIER_TIMEOUT_SECONDS, 0.1)
        self._transport = transport

    async def send_business_volunteer_request(
        self,
        contact: BusinessContact,
        task_info: TaskInfo,
        customer_info: CustomerInfo,
    ) -> bool:
        body = request_payload(contact, task_info, customer_info)
        async with httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport) as client:
            try:
                response = await client.post(self._url, json=body)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning(
                    "volunteer request webhook failed task=%s business=%s: %s",
                    task_info.task_id,
                    contact.business_id,
                    exc,
                )
                return False
        return True

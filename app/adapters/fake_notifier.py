from __future__ import annotations

import asyncio
from dataclasses import dataclass

from app.adapters.payloads import BusinessContact, CustomerInfo, TaskInfo


@dataclass
class SentRequest:
    contact: BusinessContact
    task_info: TaskInfo
    customer_info: CustomerInfo


class RecordingNotifier:
    def __init__(
        self,
        *,
        ok: bool = True,
        raise_error: bool = False,
        delay_seconds: float = 0.0,
        release: asyncio.Event | None = None,
    ) -> None:
        self._ok = ok
        self._raise_error = raise_error
        self._delay_seconds = max(delay_seconds, 0.0)
        self._release = release
        self.sent: list[SentRequest] = []

    async def send_business_volunteer_request(
        self,
        contact: BusinessContact,
        task_info: TaskInfo,
        customer_info: CustomerInfo,
    ) -> bool:
        if self._release is not None:
            await self._release.wait()
        if self._delay_seconds > 0:
            await asyncio.sleep(self._delay_seconds)
        self.sent.append(SentRequest(contact=contact, task_info=task_info, customer_info=customer_info))
        if self._raise_error:
            raise RuntimeError("notifier transport unavailable")
        return self._ok

from __future__ import annotations

from typing import Protocol

from app.adapters.payloads import BusinessContact, CustomerInfo, TaskInfo


class Notifier(Protocol):
    async def send_business_volunteer_request(
        self,
        contact: BusinessContact,
        task_info: TaskInfo,
        customer_info: CustomerInfo,
    ) -> bool: ...

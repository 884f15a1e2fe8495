from __future__ import annotations

import logging

from app.adapters.payloads import BusinessContact, CustomerInfo, TaskInfo

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Default notifier when no delivery endpoint is configured."""

    async def send_business_volunteer_request(
        self,
        contact: BusinessContact,
        task_info: TaskInfo,
        customer_info: CustomerInfo,
    ) -> bool:
        logger.info(
            "volunteer request for task %s (%s, %s) -> %s <%s> on behalf of %s",
            task_info.task_id,
            task_info.urgency,
            task_info.category,
            contact.business_name,
            contact.contact_email,
            customer_info.name,
        )
        return True

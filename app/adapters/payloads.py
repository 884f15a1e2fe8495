from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from app.domain.models import Business, Task


@dataclass(frozen=True)
class BusinessContact:
    business_id: str
    business_name: str
    contact_name: str
    contact_email: str
    contact_phone: str

    @classmethod
    def from_business(cls, business: Business) -> BusinessContact:
        person = business.contact_person or {}
        return cls(
            business_id=business.id,
            business_name=business.name,
            contact_name=str(person.get("name") or business.name),
            contact_email=str(person.get("email") or business.email),
            contact_phone=str(person.get("phone") or business.phone),
        )


@dataclass(frozen=True)
class TaskInfo:
    task_id: str
    title: str
    description: str
    address: str
    urgency: str
    category: str
    amount: float

    @classmethod
    def from_task(cls, task: Task) -> TaskInfo:
        return cls(
            task_id=task.id,
            title=task.title,
            description=task.description,
            address=task.address,
            urgency=str(task.urgency),
            category=str(task.category),
            amount=task.amount,
        )


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: str

    @classmethod
    def from_task(cls, task: Task) -> CustomerInfo:
        return cls(
            name=task.requester_name or "Unknown User",
            email=task.requester_email or "",
            phone=task.requester_phone or "",
        )


def request_payload(
    contact: BusinessContact,
    task_info: TaskInfo,
    customer_info: CustomerInfo,
) -> dict[str, Any]:
    return {
        "type": "business_volunteer_request",
        "business": asdict(contact),
        "task": asdict(task_info),
        "customer": asdict(customer_info),
    }

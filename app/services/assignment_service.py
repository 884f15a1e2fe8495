from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlmodel import Session

from app.adapters.base import Notifier
from app.adapters.factory import build_notifier
from app.adapters.payloads import BusinessContact, CustomerInfo, TaskInfo
from app.domain.models import (
    Business,
    SuitableBusinessRead,
    Task,
    VolunteerAcceptRequest,
    ensure_utc,
    now_utc,
)
from app.domain.state_machine import (
    EscalationState,
    can_escalation_transition,
    escalation_state_of,
)
from app.infra.db import get_engine
from app.infra.events import event_bus
from app.services.business_registry import BusinessRegistry
from app.services.business_registry import NotFoundError as RegistryNotFoundError
from app.services.matching_service import BUSINESS_HOURS_TIMEZONE
from app.services.task_store import NotFoundError as TaskNotFoundError
from app.services.task_store import TaskStore

logger = logging.getLogger(__name__)


class AssignmentError(Exception):
    pass


class NotFoundError(AssignmentError):
    pass


class ConflictError(AssignmentError):
    pass


@dataclass
class ContactOutcome:
    claimed: bool
    task: Task | None = None
    business: Business | None = None
    notified: bool | None = None


class AssignmentService:
    """Applies contact, accept and decline transitions to tasks and business counters."""

    def __init__(
        self,
        notifier: Notifier | None = None,
        *,
        task_store: TaskStore | None = None,
        registry: BusinessRegistry | None = None,
    ) -> None:
        self.notifier = notifier or build_notifier()
        self.task_store = task_store or TaskStore()
        self.registry = registry or BusinessRegistry()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def contact(
        self,
        task_id: str,
        candidates: Sequence[Business],
        *,
        now: datetime,
        record_no_match: bool = True,
        stranded_only: bool = False,
    ) -> ContactOutcome:
        """Reserve the first candidate that still has capacity and claim the task for it.

        With no reservable candidate the task is claimed as a no-match, unless
        ``record_no_match`` is false, in which case nothing is written. ``stranded_only``
        makes the claim fail for a task that no longer needs business contact.
        """
        reserved: Business | None = None
        with self._session() as session:
            for business in candidates:
                if self.registry.try_reserve(session, business.id, now=now):
                    reserved = business
                    break
                logger.info("business %s lost its spare capacity, trying next candidate", business.id)

            if reserved is None and not record_no_match:
                session.rollback()
                return ContactOutcome(claimed=False)

            claimed = self.task_store.try_mark_contacted(
                session,
                task_id,
                now=now,
                business_id=reserved.id if reserved is not None else None,
                stranded_only=stranded_only,
            )
            if not claimed:
                session.rollback()
                return ContactOutcome(claimed=False)
            session.commit()

            task = session.get(Task, task_id)
            if task is not None:
                session.refresh(task)
            business = None
            if reserved is not None:
                business = session.get(Business, reserved.id)
                if business is not None:
                    session.refresh(business)

        if business is not None:
            event_bus.publish_dict(
                "escalation.business_contacted",
                {
                    "task_id": task_id,
                    "business_id": business.id,
                    "business_name": business.name,
                    "current_load": business.current_load,
                },
            )
        else:
            event_bus.publish_dict("escalation.no_match", {"task_id": task_id})
        return ContactOutcome(claimed=True, task=task, business=business)

    async def notify_business(self, task: Task, business: Business) -> bool:
        try:
            sent = await self.notifier.send_business_volunteer_request(
                BusinessContact.from_business(business),
                TaskInfo.from_task(task),
                CustomerInfo.from_task(task),
            )
        except Exception:
            logger.warning(
                "notifier failed for task %s business %s; assignment kept",
                task.id,
                business.id,
                exc_info=True,
            )
            return False
        if not sent:
            logger.warning("notifier did not deliver request for task %s to business %s", task.id, business.id)
        return bool(sent)

    def _load_pair(self, business_id: str, task_id: str) -> tuple[Business, Task]:
        try:
            business = self.registry.get(business_id)
            task = self.task_store.get(task_id)
        except (RegistryNotFoundError, TaskNotFoundError) as exc:
            raise NotFoundError("business or task not found") from exc
        return business, task

    async def manual_contact(
        self,
        business_id: str,
        task_id: str,
        *,
        now: datetime | None = None,
    ) -> ContactOutcome:
        stamp = now or now_utc()
        business, task = self._load_pair(business_id, task_id)
        if not can_escalation_transition(escalation_state_of(task), EscalationState.CONTACTED_ASSIGNED):
            raise ConflictError("Task already contacted")
        if not business.can_handle_task(str(task.category), task.lat, task.lng):
            raise ConflictError("Business cannot handle this task")

        outcome = self.contact(task_id, [business], now=stamp, record_no_match=False)
        if not outcome.claimed:
            latest = self.task_store.get(task_id)
            if latest.contacted:
                raise ConflictError("Task already contacted")
            raise ConflictError("Business has no spare capacity")
        if outcome.task is None or outcome.business is None:
            raise NotFoundError("business or task not found")
        outcome.notified = await self.notify_business(outcome.task, outcome.business)
        return outcome

    def accept(
        self,
        business_id: str,
        task_id: str,
        volunteer: VolunteerAcceptRequest,
        *,
        now: datetime | None = None,
    ) -> Task:
        stamp = now or now_utc()
        with self._session() as session:
            business = session.get(Business, business_id)
            task = session.get(Task, task_id)
            if business is None or task is None:
                raise NotFoundError("business or task not found")
            if task.assigned_business_id != business.id:
                raise ConflictError("This business is not assigned to this task")
            if not can_escalation_transition(escalation_state_of(task), EscalationState.FINALIZED):
                raise ConflictError("Volunteer already confirmed for this task")

            task.business_volunteer_info = {
                "volunteer_name": volunteer.volunteer_name,
                "volunteer_phone": volunteer.volunteer_phone,
                "volunteer_email": volunteer.volunteer_email,
                "estimated_arrival": (
                    volunteer.estimated_arrival.isoformat() if volunteer.estimated_arrival else None
                ),
                "assigned_at": stamp.isoformat(),
                "business_name": business.name,
                "business_contact": str((business.contact_person or {}).get("phone") or business.phone),
            }
            task.updated_at = stamp
            session.add(task)
            self.registry.record_success(session, business.id, now=stamp)
            session.commit()
            session.refresh(task)

        event_bus.publish_dict(
            "escalation.accepted",
            {
                "task_id": task.id,
                "business_id": business_id,
                "volunteer_name": volunteer.volunteer_name,
            },
        )
        return task

    def decline(
        self,
        business_id: str,
        task_id: str,
        reason: str | None = None,
        *,
        now: datetime | None = None,
    ) -> Task:
        stamp = now or now_utc()
        with self._session() as session:
            business = session.get(Business, business_id)
            task = session.get(Task, task_id)
            if business is None or task is None:
                raise NotFoundError("business or task not found")
            if task.assigned_business_id != business.id:
                raise ConflictError("This business is not assigned to this task")
            if not can_escalation_transition(escalation_state_of(task), EscalationState.OPEN):
                raise ConflictError("Task assignment can no longer be declined")

            if not self.task_store.reset_contact(session, task.id, business_id=business.id, now=stamp):
                session.rollback()
                raise ConflictError("This business is not assigned to this task")
            self.registry.release(session, business.id, now=stamp)
            session.commit()
            session.refresh(task)

        logger.info("business %s declined task %s: %s", business_id, task_id, reason or "no reason given")
        event_bus.publish_dict(
            "escalation.declined",
            {"task_id": task_id, "business_id": business_id, "reason": reason},
        )
        return task

    def suitable_businesses(self, task_id: str, *, now: datetime | None = None) -> list[SuitableBusinessRead]:
        try:
            task = self.task_store.get(task_id)
        except TaskNotFoundError as exc:
            raise NotFoundError("task not found") from exc
        local_now = ensure_utc(now or now_utc()).astimezone(ZoneInfo(BUSINESS_HOURS_TIMEZONE))

        items: list[SuitableBusinessRead] = []
        for business in self.registry.find_offering(str(task.category)):
            if not business.can_handle_task(str(task.category), task.lat, task.lng):
                continue
            items.append(
                SuitableBusinessRead(
                    id=business.id,
                    name=business.name,
                    email=business.email,
                    phone=business.phone,
                    services=business.services,
                    coverage_radius_km=business.coverage_radius_km,
                    avg_response_time_hours=business.avg_response_time_hours,
                    reliability=business.reliability,
                    success_rate=business.success_rate(),
                    distance_km=round(business.distance_to(task.lat, task.lng), 2),
                    is_open_now=business.is_open_at(local_now),
                    available_capacity=max(0, business.capacity - business.current_load),
                )
            )
        return items

from __future__ import annotations

import logging
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import false, func, or_
from sqlmodel import Session, col, select

from app.domain.models import Task, TaskCreate, escalation_deadline_for, now_utc
from app.infra.db import get_engine

logger = logging.getLogger(__name__)


class TaskStoreError(Exception):
    pass


class NotFoundError(TaskStoreError):
    pass


class TaskStore:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    @staticmethod
    def _escalation_filters(now: datetime) -> list[sa.ColumnElement[bool]]:
        return [
            col(Task.escalation_deadline) <= now,
            col(Task.accepted_volunteer_count) == 0,
            col(Task.contacted) == false(),
            or_(col(Task.end_time).is_(None), col(Task.end_time) > now),
        ]

    def create(self, payload: TaskCreate, *, now: datetime | None = None) -> Task:
        created_at = now or now_utc()
        task = Task(
            title=payload.title,
            description=payload.description,
            category=payload.category,
            urgency=payload.urgency,
            address=payload.address,
            lat=payload.lat,
            lng=payload.lng,
            amount=payload.amount,
            people_needed=payload.people_needed,
            requester_name=payload.requester_name,
            requester_email=payload.requester_email,
            requester_phone=payload.requester_phone,
            end_time=payload.end_time,
            created_at=created_at,
            updated_at=created_at,
            escalation_deadline=escalation_deadline_for(created_at, payload.urgency),
        )
        return self.save(task)

    def get(self, task_id: str) -> Task:
        with self._session() as session:
            task = session.get(Task, task_id)
            if task is None:
                raise NotFoundError("task not found")
            return task

    def save(self, task: Task) -> Task:
        with self._session() as session:
            task.updated_at = now_utc()
            session.add(task)
            session.commit()
            session.refresh(task)
        return task

    def find_escalation_candidates(self, now: datetime) -> list[Task]:
        with self._session() as session:
            statement = (
                select(Task)
                .where(*self._escalation_filters(now))
                .order_by(col(Task.escalation_deadline), col(Task.created_at))
            )
            return list(session.exec(statement).all())

    def count_escalation_candidates(self, now: datetime) -> int:
        with self._session() as session:
            statement = select(func.count()).select_from(Task).where(*self._escalation_filters(now))
            return int(session.exec(statement).one())

    def try_mark_contacted(
        self,
        session: Session,
        task_id: str,
        *,
        now: datetime,
        business_id: str | None,
        stranded_only: bool = False,
    ) -> bool:
        """Flip ``contacted`` false -> true; False when another writer got there first.

        With ``stranded_only`` the whole escalation predicate is re-checked at write time,
        so a task that gained a volunteer or ended since it was read is left alone.
        Runs inside the caller's transaction so a business reservation made in the same
        session rolls back with it.
        """
        guards = self._escalation_filters(now) if stranded_only else [col(Task.contacted) == false()]
        result = session.execute(
            sa.update(Task)
            .where(col(Task.id) == task_id)
            .where(*guards)
            .values(
                contacted=True,
                contacted_at=now,
                assigned_business_id=business_id,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        claimed = int(getattr(result, "rowcount", 0) or 0) == 1
        if not claimed:
            logger.info("task %s was not claimed; already contacted or no longer stranded", task_id)
        return claimed

    def reset_contact(self, session: Session, task_id: str, *, business_id: str, now: datetime) -> bool:
        result = session.execute(
            sa.update(Task)
            .where(col(Task.id) == task_id)
            .where(col(Task.assigned_business_id) == business_id)
            .values(
                contacted=False,
                contacted_at=None,
                assigned_business_id=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return int(getattr(result, "rowcount", 0) or 0) == 1

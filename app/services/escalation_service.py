from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from app.adapters.base import Notifier
from app.domain.models import (
    ContactResultRead,
    EscalationStatsRead,
    SweepRunRead,
    Task,
    ensure_utc,
    now_utc,
)
from app.infra.events import event_bus
from app.services.assignment_service import AssignmentService
from app.services.business_registry import BusinessRegistry
from app.services.matching_service import MatchingEngine
from app.services.task_store import TaskStore

logger = logging.getLogger(__name__)

ESCALATION_BATCH_SIZE = int(os.getenv("ESCALATION_BATCH_SIZE", "5"))
ESCALATION_BATCH_PAUSE_SECONDS = float(os.getenv("ESCALATION_BATCH_PAUSE_SECONDS", "2.0"))

NO_MATCH_MESSAGE = "No suitable businesses found in the area"
ALREADY_CONTACTED_MESSAGE = "Task already contacted"
NO_LONGER_STRANDED_MESSAGE = "Task no longer needs business contact"


@dataclass(frozen=True)
class ContactResult:
    task_id: str
    business_id: str | None
    success: bool
    message: str

    def to_read(self) -> ContactResultRead:
        return ContactResultRead(
            task_id=self.task_id,
            business_id=self.business_id,
            success=self.success,
            message=self.message,
        )


@dataclass
class SweepReport:
    results: list[ContactResult] = field(default_factory=list)
    stopped_early: bool = False

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for item in self.results if item.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    def to_read(self) -> SweepRunRead:
        return SweepRunRead(
            total_processed=self.total,
            successful=self.successful,
            failed=self.failed,
            details=[item.to_read() for item in self.results],
        )


class EscalationService:
    def __init__(
        self,
        notifier: Notifier | None = None,
        *,
        task_store: TaskStore | None = None,
        registry: BusinessRegistry | None = None,
        matching: MatchingEngine | None = None,
        assignment: AssignmentService | None = None,
        now_fn: Callable[[], datetime] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        batch_size: int | None = None,
        batch_pause_seconds: float | None = None,
    ) -> None:
        self.task_store = task_store or TaskStore()
        self.registry = registry or BusinessRegistry()
        self.matching = matching or MatchingEngine(self.registry)
        self.assignment = assignment or AssignmentService(
            notifier,
            task_store=self.task_store,
            registry=self.registry,
        )
        self.now_fn = now_fn or now_utc
        self.sleep_fn = sleep_fn or asyncio.sleep
        self.batch_size = max(1, batch_size if batch_size is not None else ESCALATION_BATCH_SIZE)
        self.batch_pause_seconds = (
            batch_pause_seconds if batch_pause_seconds is not None else ESCALATION_BATCH_PAUSE_SECONDS
        )

    def _now(self) -> datetime:
        return ensure_utc(self.now_fn())

    async def run_sweep(self, should_continue: Callable[[], bool] | None = None) -> SweepReport:
        """One pass over every stranded task.

        A failing candidate query propagates; failures inside a single task become
        results. ``should_continue`` is checked between tasks.
        """
        tasks = self.task_store.find_escalation_candidates(self._now())
        logger.info("escalation sweep started: %d task(s) need business contact", len(tasks))

        report = SweepReport()
        for index, task in enumerate(tasks):
            if should_continue is not None and not should_continue():
                report.stopped_early = True
                logger.info("escalation sweep stopped after %d task(s)", report.total)
                break
            report.results.append(await self.process_task(task))
            processed = index + 1
            if processed % self.batch_size == 0 and processed < len(tasks):
                await self.sleep_fn(self.batch_pause_seconds)

        logger.info(
            "escalation sweep finished: processed=%d successful=%d failed=%d",
            report.total,
            report.successful,
            report.failed,
        )
        event_bus.publish_dict(
            "escalation.sweep_completed",
            {
                "total_processed": report.total,
                "successful": report.successful,
                "failed": report.failed,
                "stopped_early": report.stopped_early,
            },
        )
        return report

    async def process_task(self, task: Task) -> ContactResult:
        try:
            now = self._now()
            businesses = self.matching.find_businesses(task, now)
            outcome = self.assignment.contact(task.id, businesses, now=now, stranded_only=True)
            if not outcome.claimed:
                if self.task_store.get(task.id).contacted:
                    logger.info("task %s skipped: already contacted", task.id)
                    return ContactResult(task.id, None, False, ALREADY_CONTACTED_MESSAGE)
                logger.info("task %s skipped: picked up or ended since the sweep started", task.id)
                return ContactResult(task.id, None, False, NO_LONGER_STRANDED_MESSAGE)
            if outcome.business is None or outcome.task is None:
                logger.info("task %s: no suitable business in range", task.id)
                return ContactResult(task.id, None, False, NO_MATCH_MESSAGE)

            await self.assignment.notify_business(outcome.task, outcome.business)
            logger.info("task %s assigned to business %s", task.id, outcome.business.id)
            return ContactResult(
                task.id,
                outcome.business.id,
                True,
                f"Contacted {outcome.business.name} successfully",
            )
        except Exception as exc:
            logger.exception("error processing task %s", task.id)
            return ContactResult(task.id, None, False, f"Error processing task: {exc}")

    def reset_daily_load(self) -> int:
        count = self.registry.reset_daily_load(now=self._now())
        logger.info("reset daily load for %d business(es)", count)
        event_bus.publish_dict("business.load_reset", {"businesses_reset": count})
        return count

    def get_stats(self) -> EscalationStatsRead:
        now = self._now()
        awaiting = self.task_store.count_escalation_candidates(now)
        active = self.registry.count_active()
        assigned = self.registry.list_with_assignments()

        avg_response = 0.0
        if assigned:
            avg_response = sum(item.avg_response_time_hours for item in assigned) / len(assigned)
        total_assigned = sum(item.total_assigned for item in assigned)
        total_successful = sum(item.successful_assignments for item in assigned)
        success_rate = total_successful / total_assigned * 100 if total_assigned > 0 else 100.0

        return EscalationStatsRead(
            tasks_awaiting_business_contact=awaiting,
            businesses_active=active,
            average_response_time=round(avg_response, 1),
            success_rate=round(success_rate, 1),
        )

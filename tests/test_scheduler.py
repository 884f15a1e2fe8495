from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlmodel import SQLModel, create_engine

from app.adapters.fake_notifier import RecordingNotifier
from app.domain.models import BusinessCreate, TaskCategory, TaskCreate, Urgency
from app.infra import db, events
from app.services.business_registry import BusinessRegistry
from app.services.escalation_scheduler import EscalationScheduler
from app.services.escalation_service import EscalationService
from app.services.task_store import TaskStore

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _isolated_db(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'scheduler_test.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)
    monkeypatch.setattr(events, "engine", test_engine)


def _seed(task_count: int = 1) -> None:
    registry = BusinessRegistry()
    for index in range(task_count):
        registry.register(
            BusinessCreate(
                name=f"biz-{index}",
                email=f"biz-{index}@example.com",
                phone="555-0100",
                lat=0.0,
                lng=0.01,
                services=[TaskCategory.GENERAL],
                coverage_radius_km=5,
                contact_person={"name": "Lead", "email": f"lead-{index}@example.com"},
            )
        )
        TaskStore().create(
            TaskCreate(
                title=f"task-{index}",
                category=TaskCategory.GENERAL,
                urgency=Urgency.EMERGENCY,
                lat=0.0,
                lng=0.0,
            ),
            now=NOW - timedelta(hours=2),
        )


def _factory(notifier: RecordingNotifier):
    async def _no_sleep(_seconds: float) -> None:
        return None

    def build() -> EscalationService:
        return EscalationService(notifier, now_fn=lambda: NOW, sleep_fn=_no_sleep)

    return build


async def _wait_until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not reached")


def test_run_once_is_single_flight() -> None:
    _seed()

    async def scenario() -> None:
        release = asyncio.Event()
        notifier = RecordingNotifier(release=release)
        scheduler = EscalationScheduler(_factory(notifier))

        first = asyncio.create_task(scheduler.run_once())
        await _wait_until(lambda: scheduler.in_flight)

        assert await scheduler.run_once() is None

        release.set()
        report = await first
        assert report is not None
        assert report.successful == 1
        assert scheduler.in_flight is False
        assert len(notifier.sent) == 1

        # The slot is free again once the first sweep is done.
        again = await scheduler.run_once()
        assert again is not None and again.total == 0

    asyncio.run(scenario())


def test_start_runs_sweep_and_stop_ends_loop() -> None:
    _seed()

    async def scenario() -> None:
        scheduler = EscalationScheduler(_factory(RecordingNotifier()), interval_seconds=3600)
        scheduler.start()
        assert scheduler.running is True

        await _wait_until(lambda: scheduler.last_report is not None)
        await scheduler.stop()

        assert scheduler.running is False
        assert scheduler.last_report is not None
        assert scheduler.last_report.successful == 1

    asyncio.run(scenario())


def test_stop_lets_current_task_finish_and_skips_the_rest() -> None:
    _seed(task_count=3)

    async def scenario() -> None:
        release = asyncio.Event()
        notifier = RecordingNotifier(release=release)
        scheduler = EscalationScheduler(_factory(notifier), interval_seconds=3600)
        scheduler.start()
        await _wait_until(lambda: scheduler.in_flight)

        stopping = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0)
        release.set()
        await stopping

        report = scheduler.last_report
        assert report is not None
        assert report.total == 1
        assert report.successful == 1
        assert report.stopped_early is True

    asyncio.run(scenario())
    assert TaskStore().count_escalation_candidates(NOW) == 2

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import suppress

from app.services.escalation_service import EscalationService, SweepReport

logger = logging.getLogger(__name__)

ESCALATION_INTERVAL_SECONDS = float(os.getenv("ESCALATION_INTERVAL_SECONDS", "1800"))


class EscalationScheduler:
    """Owns the periodic sweep: explicit start/stop and at most one sweep in flight."""

    def __init__(
        self,
        service_factory: Callable[[], EscalationService] | None = None,
        *,
        interval_seconds: float | None = None,
    ) -> None:
        self._service_factory = service_factory or EscalationService
        self.interval_seconds = interval_seconds if interval_seconds is not None else ESCALATION_INTERVAL_SECONDS
        self._sweep_lock = asyncio.Lock()
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.last_report: SweepReport | None = None

    @property
    def in_flight(self) -> bool:
        return self._sweep_lock.locked()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> SweepReport | None:
        """Run one sweep now, or return None when another sweep holds the slot."""
        if self._sweep_lock.locked():
            logger.info("escalation sweep already in flight, skipping")
            return None
        async with self._sweep_lock:
            service = self._service_factory()
            report = await service.run_sweep(should_continue=lambda: not self._stopping.is_set())
            self.last_report = report
            return report

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("scheduled escalation sweep failed")
            with suppress(TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info("escalation scheduler started, interval=%ss", self.interval_seconds)

    async def stop(self) -> None:
        self._stopping.set()
        task = self._task
        self._task = None
        if task is not None:
            # The in-flight task finishes its transition; the sweep exits before the next one.
            await task
        logger.info("escalation scheduler stopped")

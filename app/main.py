from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from app.api.routers import business, escalation, tasks
from app.infra.audit import AuditMiddleware
from app.infra.db import check_db_ready
from app.infra.logging_setup import setup_logging
from app.services.escalation_scheduler import EscalationScheduler

logger = logging.getLogger(__name__)

ESCALATION_SCHEDULER_ENABLED = os.getenv("ESCALATION_SCHEDULER_ENABLED", "false").lower() in {"1", "true", "yes"}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    scheduler = EscalationScheduler(escalation.get_escalation_service)
    app.state.escalation_scheduler = scheduler
    if ESCALATION_SCHEDULER_ENABLED:
        scheduler.start()
    else:
        logger.info("escalation scheduler disabled; sweeps run only on demand")
    try:
        yield
    finally:
        await scheduler.stop()


app = FastAPI(
    title="helpbridge-escalation",
    description="Escalates stranded volunteer tasks to business partners.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(AuditMiddleware)

app.include_router(business.router, prefix="/api/business", tags=["business"])
app.include_router(escalation.router, prefix="/api/escalation", tags=["escalation"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    checks = {"db": "ok" if db_ok else "fail"}
    if not db_ok:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.domain.models import EscalationStatsRead, LoadResetRead, SweepRunRead
from app.infra.audit import set_audit_context
from app.services.escalation_scheduler import EscalationScheduler
from app.services.escalation_service import EscalationService

router = APIRouter()


def get_escalation_service() -> EscalationService:
    return EscalationService()


def get_escalation_scheduler(request: Request) -> EscalationScheduler:
    scheduler = getattr(request.app.state, "escalation_scheduler", None)
    if scheduler is None:
        scheduler = EscalationScheduler(get_escalation_service)
        request.app.state.escalation_scheduler = scheduler
    return scheduler


Service = Annotated[EscalationService, Depends(get_escalation_service)]
Scheduler = Annotated[EscalationScheduler, Depends(get_escalation_scheduler)]


@router.post("/run", response_model=SweepRunRead)
async def run_sweep(request: Request, scheduler: Scheduler) -> SweepRunRead:
    report = await scheduler.run_once()
    if report is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="escalation sweep already in progress",
        )
    set_audit_context(
        request,
        action="escalation.run",
        resource="escalation:sweep",
        detail={"what": {"total_processed": report.total, "successful": report.successful}},
    )
    return report.to_read()


@router.get("/stats", response_model=EscalationStatsRead)
def get_stats(service: Service) -> EscalationStatsRead:
    return service.get_stats()


@router.post("/reset-daily-load", response_model=LoadResetRead)
def reset_daily_load(request: Request, service: Service) -> LoadResetRead:
    count = service.reset_daily_load()
    set_audit_context(
        request,
        action="escalation.reset_daily_load",
        resource="business:*",
        detail={"what": {"businesses_reset": count}},
    )
    return LoadResetRead(businesses_reset=count)

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.domain.models import (
    BusinessCreate,
    BusinessPageRead,
    BusinessRead,
    BusinessUpdate,
    ContactResultRead,
    DeclineRequest,
    SuitableBusinessRead,
    TaskCategory,
    TaskRead,
    VolunteerAcceptRequest,
)
from app.infra.audit import set_audit_context
from app.services import assignment_service, business_registry
from app.services.assignment_service import AssignmentService
from app.services.business_registry import BusinessRegistry

router = APIRouter()


def get_business_registry() -> BusinessRegistry:
    return BusinessRegistry()


def get_assignment_service() -> AssignmentService:
    return AssignmentService()


Registry = Annotated[BusinessRegistry, Depends(get_business_registry)]
Assignment = Annotated[AssignmentService, Depends(get_assignment_service)]

_NOT_FOUND = (business_registry.NotFoundError, assignment_service.NotFoundError)
_CONFLICT = (business_registry.ConflictError, assignment_service.ConflictError)


def _handle_business_error(exc: Exception) -> None:
    if isinstance(exc, _NOT_FOUND):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, _CONFLICT):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    raise exc


@router.post("", response_model=BusinessRead, status_code=status.HTTP_201_CREATED)
def register_business(payload: BusinessCreate, request: Request, registry: Registry) -> BusinessRead:
    try:
        business = registry.register(payload)
    except business_registry.RegistryError as exc:
        _handle_business_error(exc)
        raise
    set_audit_context(request, action="business.register", resource=f"business:{business.id}")
    return BusinessRead.model_validate(business)


@router.get("", response_model=BusinessPageRead)
def list_businesses(
    registry: Registry,
    service: TaskCategory | None = None,
    city: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> BusinessPageRead:
    rows, total = registry.list_businesses(
        service=service.value if service is not None else None,
        city=city,
        page=page,
        limit=limit,
    )
    return BusinessPageRead(
        items=[BusinessRead.model_validate(item) for item in rows],
        page=page,
        total_pages=registry.total_pages(total, limit),
        total=total,
    )


@router.get("/suitable/{task_id}", response_model=list[SuitableBusinessRead])
def list_suitable_businesses(task_id: str, assignment: Assignment) -> list[SuitableBusinessRead]:
    try:
        return assignment.suitable_businesses(task_id)
    except assignment_service.AssignmentError as exc:
        _handle_business_error(exc)
        raise


@router.get("/{business_id}", response_model=BusinessRead)
def get_business(business_id: str, registry: Registry) -> BusinessRead:
    try:
        return BusinessRead.model_validate(registry.get(business_id))
    except business_registry.RegistryError as exc:
        _handle_business_error(exc)
        raise


@router.put("/{business_id}", response_model=BusinessRead)
def update_business(
    business_id: str,
    payload: BusinessUpdate,
    request: Request,
    registry: Registry,
) -> BusinessRead:
    set_audit_context(request, action="business.update", resource=f"business:{business_id}")
    try:
        return BusinessRead.model_validate(registry.update(business_id, payload))
    except business_registry.RegistryError as exc:
        _handle_business_error(exc)
        raise


@router.post("/{business_id}/tasks/{task_id}/contact", response_model=ContactResultRead)
async def contact_business(
    business_id: str,
    task_id: str,
    request: Request,
    assignment: Assignment,
) -> ContactResultRead:
    set_audit_context(
        request,
        action="escalation.manual_contact",
        resource=f"task:{task_id}",
        detail={"what": {"business_id": business_id}},
    )
    try:
        outcome = await assignment.manual_contact(business_id, task_id)
    except assignment_service.AssignmentError as exc:
        _handle_business_error(exc)
        raise
    name = outcome.business.name if outcome.business is not None else business_id
    return ContactResultRead(
        task_id=task_id,
        business_id=business_id,
        success=True,
        message=f"Contacted {name} successfully",
    )


@router.post("/{business_id}/tasks/{task_id}/accept", response_model=TaskRead)
def accept_task(
    business_id: str,
    task_id: str,
    payload: VolunteerAcceptRequest,
    request: Request,
    assignment: Assignment,
) -> TaskRead:
    set_audit_context(
        request,
        action="escalation.accept",
        resource=f"task:{task_id}",
        detail={"what": {"business_id": business_id}},
    )
    try:
        return TaskRead.model_validate(assignment.accept(business_id, task_id, payload))
    except assignment_service.AssignmentError as exc:
        _handle_business_error(exc)
        raise


@router.post("/{business_id}/tasks/{task_id}/decline", response_model=TaskRead)
def decline_task(
    business_id: str,
    task_id: str,
    payload: DeclineRequest,
    request: Request,
    assignment: Assignment,
) -> TaskRead:
    set_audit_context(
        request,
        action="escalation.decline",
        resource=f"task:{task_id}",
        detail={"what": {"business_id": business_id, "reason": payload.reason}},
    )
    try:
        return TaskRead.model_validate(assignment.decline(business_id, task_id, payload.reason))
    except assignment_service.AssignmentError as exc:
        _handle_business_error(exc)
        raise

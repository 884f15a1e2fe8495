from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.domain.models import TaskCreate, TaskRead
from app.infra.audit import set_audit_context
from app.services.task_store import NotFoundError, TaskStore

router = APIRouter()


def get_task_store() -> TaskStore:
    return TaskStore()


Store = Annotated[TaskStore, Depends(get_task_store)]


def _handle_task_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    raise exc


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(payload: TaskCreate, request: Request, store: Store) -> TaskRead:
    task = store.create(payload)
    set_audit_context(
        request,
        action="task.create",
        resource=f"task:{task.id}",
        detail={"what": {"urgency": str(task.urgency), "category": str(task.category)}},
    )
    return TaskRead.model_validate(task)


@router.get("/{task_id}", response_model=TaskRead)
def get_task(task_id: str, store: Store) -> TaskRead:
    try:
        return TaskRead.model_validate(store.get(task_id))
    except NotFoundError as exc:
        _handle_task_error(exc)
        raise

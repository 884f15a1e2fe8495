from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlmodel import Session
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.domain.models import AuditLog, now_utc
from app.infra.db import engine

logger = logging.getLogger(__name__)

AUDITED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
REQUEST_ID_HEADER = "x-request-id"


@dataclass
class AuditContext:
    action: str | None = None
    resource: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


def _merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in extra.items():
        current = merged.get(key)
        merged[key] = _merge(current, value) if isinstance(current, dict) and isinstance(value, dict) else value
    return merged


def _context_of(request: Request) -> AuditContext:
    context = getattr(request.state, "audit", None)
    if not isinstance(context, AuditContext):
        context = AuditContext()
        request.state.audit = context
    return context


def set_audit_context(
    request: Request,
    *,
    action: str | None = None,
    resource: str | None = None,
    detail: dict[str, Any] | None = None,
) -> None:
    context = _context_of(request)
    if action is not None:
        context.action = action
    if resource is not None:
        context.resource = resource
    if detail:
        context.detail = _merge(context.detail, detail)


def _default_resource(request: Request) -> str:
    params = request.path_params
    if "task_id" in params:
        return f"task:{params['task_id']}"
    if "business_id" in params:
        return f"business:{params['business_id']}"
    return request.url.path


def _outcome(status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code == 404:
        return "not_found"
    if status_code == 409:
        return "conflict"
    if status_code >= 400:
        return "rejected"
    return "success"


def write_audit_log(
    *,
    action: str,
    resource: str,
    method: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> None:
    with Session(engine) as session:
        session.add(
            AuditLog(
                action=action,
                resource=resource,
                method=method,
                status_code=status_code,
                detail=detail or {},
            )
        )
        session.commit()


class AuditMiddleware(BaseHTTPMiddleware):
    """Writes one audit row per state-changing request once the response is known."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        if request.method not in AUDITED_METHODS:
            return response

        context = _context_of(request)
        route = request.scope.get("route")
        detail = _merge(
            {
                "request": {
                    "ts": now_utc().isoformat(),
                    "path": request.url.path,
                    "route": getattr(route, "path", request.url.path),
                    "client_ip": request.client.host if request.client is not None else None,
                    "request_id": request.headers.get(REQUEST_ID_HEADER),
                },
                "result": {
                    "status_code": response.status_code,
                    "outcome": _outcome(response.status_code),
                },
            },
            context.detail,
        )
        action = context.action or f"{request.method}:{request.url.path}"

        try:
            write_audit_log(
                action=action,
                resource=context.resource or _default_resource(request),
                method=request.method,
                status_code=response.status_code,
                detail=detail,
            )
        except Exception:
            logger.warning("audit log write failed action=%s", action, exc_info=True)
        return response

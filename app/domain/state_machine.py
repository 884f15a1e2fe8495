from __future__ import annotations

from enum import StrEnum
from typing import Any, Protocol


class EscalationState(StrEnum):
    OPEN = "OPEN"
    CONTACTED_NO_MATCH = "CONTACTED_NO_MATCH"
    CONTACTED_ASSIGNED = "CONTACTED_ASSIGNED"
    FINALIZED = "FINALIZED"


# A decline moves CONTACTED_ASSIGNED straight back to OPEN.
ESCALATION_ALLOWED_TRANSITIONS: dict[EscalationState, set[EscalationState]] = {
    EscalationState.OPEN: {
        EscalationState.CONTACTED_NO_MATCH,
        EscalationState.CONTACTED_ASSIGNED,
    },
    EscalationState.CONTACTED_NO_MATCH: set(),
    EscalationState.CONTACTED_ASSIGNED: {
        EscalationState.OPEN,
        EscalationState.FINALIZED,
    },
    EscalationState.FINALIZED: set(),
}


class EscalationFields(Protocol):
    contacted: bool
    assigned_business_id: str | None
    business_volunteer_info: dict[str, Any] | None


def can_escalation_transition(source: EscalationState, target: EscalationState) -> bool:
    return target in ESCALATION_ALLOWED_TRANSITIONS.get(source, set())


def escalation_state_of(task: EscalationFields) -> EscalationState:
    if not task.contacted:
        return EscalationState.OPEN
    if task.assigned_business_id is None:
        return EscalationState.CONTACTED_NO_MATCH
    if task.business_volunteer_info:
        return EscalationState.FINALIZED
    return EscalationState.CONTACTED_ASSIGNED

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from sqlmodel import Session

from app.domain.models import EventEnvelope, EventRecord
from app.infra.db import engine

logger = logging.getLogger(__name__)

EventHandler = Callable[[EventEnvelope], None]
WILDCARD = "*"


class EventBus:
    """Persists domain events to ``events`` and fans them out to in-process subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._subscribers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def _handlers_for(self, event_type: str) -> list[EventHandler]:
        return [*self._subscribers.get(event_type, []), *self._subscribers.get(WILDCARD, [])]

    @staticmethod
    def _record_of(event: EventEnvelope) -> EventRecord:
        return EventRecord(
            event_id=event.event_id,
            event_type=event.event_type,
            ts=event.ts,
            correlation_id=event.correlation_id,
            payload=event.payload,
        )

    def publish(self, event: EventEnvelope, session: Session | None = None) -> None:
        if session is not None:
            # Caller owns the transaction.
            session.add(self._record_of(event))
        else:
            with Session(engine) as own_session:
                own_session.add(self._record_of(event))
                own_session.commit()

        logger.debug("event %s id=%s payload=%s", event.event_type, event.event_id, event.payload)
        for handler in self._handlers_for(event.event_type):
            handler(event)

    def publish_dict(
        self,
        event_type: str,
        payload: dict[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> EventEnvelope:
        event = EventEnvelope(event_type=event_type, correlation_id=correlation_id, payload=payload)
        self.publish(event)
        return event


event_bus = EventBus()

"""
NightPlan Backend — Plan Event Emission
=========================================

What:  Builds plan lifecycle events and hands them to the configured publisher.
Why:   Plan writes must never fail because the event channel is down; the
       event is best-effort, the write is not.
How:   build_event() validates (errors propagate to the caller), then the
       publisher is awaited and any publish failure is logged and swallowed.
Who:   Called by the plan write paths after their transaction succeeds.
"""

import logging
from typing import Any, Optional, Union

from app.config import settings
from app.exceptions import NightPlanError
from app.schemas.plan_events import PlanEventBase, PlanEventKind
from app.services.event_contract import build_event
from app.services.memory_publisher import InMemoryEventPublisher
from app.services.publisher_base import EventPublisher
from app.services.redis_publisher import RedisEventPublisher

logger = logging.getLogger(__name__)


def create_publisher(backend: Optional[str] = None) -> EventPublisher:
    """Publisher for the configured EVENT_BACKEND (redis or memory)."""
    backend = (backend or settings.event_backend).lower()
    if backend == "memory":
        return InMemoryEventPublisher()
    if backend == "redis":
        return RedisEventPublisher()
    raise ValueError(f"Unknown event backend '{backend}'")


class PlanEventService:
    """Fire-and-forget emitter for plan events."""

    def __init__(self, publisher: EventPublisher):
        self.publisher = publisher

    async def emit(self, kind: Union[PlanEventKind, str], **fields: Any) -> PlanEventBase:
        """
        Build and publish one event.

        Returns:
            The built event, whether or not publishing succeeded.

        Raises:
            ValidationError: The payload is incomplete or ill-typed. Nothing
                is published in that case.
        """
        event = build_event(kind, fields)

        try:
            receivers = await self.publisher.publish(event)
        except NightPlanError as e:
            logger.error(
                "Dropped %s event %s: %s",
                event.kind,
                event.event_id,
                e.message,
                extra={"context": e.context},
            )
            return event

        logger.info(
            "Emitted %s event %s for plan %s (%d receivers)",
            event.kind,
            event.event_id,
            event.plan_id,
            receivers,
        )
        return event


# Singletons wired from settings
event_publisher = create_publisher()
plan_event_service = PlanEventService(event_publisher)

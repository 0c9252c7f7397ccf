"""
NightPlan Backend — In-Process Event Publisher
================================================

What:  EventPublisher that keeps events in process.
Why:   Local development and tests run without Redis but still exercise the
       exact wire payloads consumers receive.
How:   Each published event is serialized with to_wire(), recorded, and handed
       to the subscribers of its channel in registration order. Subscriber
       failures surface as one EventPublishError after all have run.
"""

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Union

from app.exceptions import EventPublishError
from app.schemas.plan_events import PlanEventBase, PlanEventKind
from app.services.event_contract import channel_for, resolve_kind, to_wire
from app.services.publisher_base import EventPublisher

logger = logging.getLogger(__name__)

Subscriber = Callable[[str], Any]


class InMemoryEventPublisher(EventPublisher):
    """Publish/subscribe over an in-process channel map."""

    def __init__(self) -> None:
        self.published: List[PlanEventBase] = []
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)

    def subscribe(self, kind: Union[PlanEventKind, str], handler: Subscriber) -> None:
        """Register a handler (sync or async) that receives raw wire payloads."""
        self._subscribers[channel_for(resolve_kind(kind))].append(handler)

    async def publish(self, event: PlanEventBase) -> int:
        channel = channel_for(event)
        payload = to_wire(event)
        self.published.append(event)

        handlers = self._subscribers.get(channel, [])
        failed = 0
        for handler in handlers:
            # Every subscriber runs even if an earlier one raised
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                failed += 1
                logger.error(
                    "In-process subscriber %r failed on %s event %s",
                    handler,
                    event.kind,
                    event.event_id,
                    exc_info=True,
                )

        if failed:
            raise EventPublishError(
                message=f"{failed} of {len(handlers)} in-process subscribers failed",
                context={"event_id": str(event.event_id), "channel": channel},
            )

        logger.debug("Delivered %s to %d in-process subscribers", event.event_id, len(handlers))
        return len(handlers)

    async def health_check(self) -> bool:
        return True

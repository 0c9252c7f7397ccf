"""
NightPlan Backend — Idempotent Plan Event Consumer
====================================================

What:  Decodes delivered plan events and dispatches them to handlers, once.
Why:   Notification, trending and analytics listeners share the same
       at-least-once channel and must all tolerate redelivery.
How:   parse_event() → claim the eventId → run the kind's handlers. If a
       handler raises, the claim is released so the redelivery retries it.

Example:
    consumer = PlanEventConsumer(InMemoryIdempotencyStore())
    consumer.register(PlanEventKind.SAVED, bump_saved_counter)
    await consumer.handle(raw_payload)
"""

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from app.config import settings
from app.schemas.plan_events import PlanEventBase, PlanEventKind
from app.services.event_contract import parse_event, resolve_kind
from app.services.idempotency import IdempotencyStore

logger = logging.getLogger(__name__)

Handler = Callable[[PlanEventBase], Any]


class PlanEventConsumer:
    """Routes decoded events to the handlers registered for their kind."""

    def __init__(self, store: IdempotencyStore, ttl_seconds: Optional[int] = None):
        self.store = store
        self.ttl_seconds = ttl_seconds or settings.idempotency_ttl_seconds
        self._handlers: Dict[PlanEventKind, List[Handler]] = defaultdict(list)

    def register(self, kind: Union[PlanEventKind, str], handler: Handler) -> None:
        """Add a handler (sync or async) for one event kind."""
        self._handlers[resolve_kind(kind)].append(handler)

    async def handle(self, raw: Union[str, bytes, Mapping[str, Any]]) -> bool:
        """
        Process one delivered payload.

        Returns:
            True if the event was dispatched, False if its eventId was
            already processed (a redelivery).

        Raises:
            ValidationError: The payload is not a valid plan event.
            Exception: Whatever a handler raised; the claim is released first.
        """
        event = parse_event(raw)
        event_id = str(event.event_id)

        if not await self.store.claim(event_id, self.ttl_seconds):
            logger.info("Skipping duplicate %s event %s", event.kind, event_id)
            return False

        try:
            for handler in self._handlers.get(PlanEventKind(event.kind), []):
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
        except Exception:
            logger.error("Handler failed for %s event %s", event.kind, event_id, exc_info=True)
            await self.store.release(event_id)
            raise

        logger.debug("Processed %s event %s", event.kind, event_id)
        return True

"""
NightPlan Backend — Abstract Event Publisher Interface
========================================================

What:  Abstract base class defining the contract for event channel publishers.
Why:   The write path should not know whether events go to Redis or stay in
       process (development, tests). This is the Strategy design pattern.
How:   Concrete implementations inherit from EventPublisher.
Who:   Called by PlanEventService after an event has been built.
"""

from abc import ABC, abstractmethod

from app.schemas.plan_events import PlanEventBase


class EventPublisher(ABC):
    """
    Abstract interface for publishing plan events.

    Contract:
        - publish() sends one already-validated event on its channel
        - Delivery is at-least-once; consumers deduplicate on eventId
        - Implementations handle their own retry logic and wrap transport
          errors in EventPublishError
    """

    @abstractmethod
    async def publish(self, event: PlanEventBase) -> int:
        """
        Publish one event.

        Returns:
            int: Number of subscribers that received the event, as reported
                 by the channel (0 is a successful publish with no listeners).

        Raises:
            EventPublishError: The channel failed after all retries.
            CircuitBreakerOpenError: Too many consecutive failures; the
                channel is being given time to recover.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the channel is reachable. Never raises."""
        ...

    async def close(self) -> None:
        """Release connections. Default: nothing to release."""
        return None

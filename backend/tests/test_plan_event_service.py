"""
NightPlan Backend — Plan Event Emission Tests
================================================

What:  Tests for PlanEventService.emit().
Why:   Invalid events must never be published, and a failing channel must
       never fail the plan write that triggered the event.
"""

from unittest.mock import AsyncMock

import pytest

from app.exceptions import CircuitBreakerOpenError, EventPublishError, ValidationError
from app.schemas.plan_events import PlanCreated, PlanEventKind
from app.services.memory_publisher import InMemoryEventPublisher
from app.services.plan_event_service import PlanEventService


class TestEmit:

    def setup_method(self):
        self.publisher = InMemoryEventPublisher()
        self.service = PlanEventService(self.publisher)

    @pytest.mark.asyncio
    async def test_emit_builds_and_publishes(self):
        event = await self.service.emit(
            PlanEventKind.CREATED,
            planId="plan-7",
            creatorId="user-3",
            cityId="city-1",
            startDate="2026-12-31T22:00:00+01:00",
        )

        assert isinstance(event, PlanCreated)
        assert self.publisher.published == [event]
        assert event.start_date.isoformat() == "2026-12-31T21:00:00+00:00"

    @pytest.mark.asyncio
    async def test_invalid_event_is_not_published(self):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.emit("plan.created", planId="plan-7", creatorId="user-3", cityId="c")

        assert exc_info.value.field == "startDate"
        assert self.publisher.published == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        EventPublishError(message="redis down"),
        CircuitBreakerOpenError(recovery_time=12),
    ])
    async def test_publish_failures_are_swallowed(self, error):
        publisher = AsyncMock()
        publisher.publish.side_effect = error
        service = PlanEventService(publisher)

        event = await service.emit("plan.viewed", planId="plan-7", cityId="city-1")

        assert event.kind == "plan.viewed"
        publisher.publish.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_unexpected_publisher_errors_propagate(self):
        publisher = AsyncMock()
        publisher.publish.side_effect = RuntimeError("bug")
        service = PlanEventService(publisher)

        with pytest.raises(RuntimeError):
            await service.emit("plan.viewed", planId="plan-7", cityId="city-1")

    @pytest.mark.asyncio
    async def test_crashing_in_process_subscriber_does_not_fail_emit(self):
        delivered = []

        def crash(payload):
            raise RuntimeError("subscriber crashed")

        self.publisher.subscribe("plan.saved", crash)
        self.publisher.subscribe("plan.saved", delivered.append)

        event = await self.service.emit("plan.saved", planId="p", userId="u", cityId="c")

        assert self.publisher.published == [event]
        assert len(delivered) == 1

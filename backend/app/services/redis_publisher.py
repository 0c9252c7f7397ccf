"""
NightPlan Backend — Redis Pub/Sub Event Publisher
===================================================

What:  Publishes plan events to Redis channels (one channel per event kind).
Why:   Plan lifecycle changes fan out asynchronously to notification, trending
       and analytics consumers without slowing down the write path.
How:   JSON payload via PUBLISH, wrapped in tenacity retries and a circuit
       breaker so a Redis outage degrades to fast failures instead of stalls.
Who:   Instantiated once at startup when EVENT_BACKEND=redis.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient errors
    2. Circuit breaker to stop hammering Redis while it is down
    3. Detailed logging with the eventId for tracing a publish end-to-end
"""

import logging
import time
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings
from app.exceptions import CircuitBreakerOpenError, EventPublishError
from app.schemas.plan_events import PlanEventBase
from app.services.event_contract import channel_for, to_wire
from app.services.publisher_base import EventPublisher

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Implements the circuit breaker pattern to prevent cascade failures.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; one instance is shared by the coroutines of one process.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 30):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a call is allowed through the circuit breaker.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        """Record a successful call. Resets the circuit breaker to CLOSED."""
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (channel recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        """Record a failed call. May trigger CLOSED → OPEN transition."""
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test publish failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Redis Publisher
# ══════════════════════════════════════════════════════════════════════════

class RedisEventPublisher(EventPublisher):
    """
    Redis pub/sub implementation of EventPublisher.

    Error Handling Chain:
        PUBLISH fails → tenacity retries (publish_max_attempts, with backoff)
        → All retries fail → record circuit breaker failure → EventPublishError
        → Threshold reached → future publishes rejected instantly
        → Recovery timeout → one test publish (HALF_OPEN)
    """

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url or settings.redis_url
        # Connections are opened lazily on the first command
        self._client = client
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        logger.info(
            "RedisEventPublisher initialized, circuit_breaker(threshold=%d, recovery=%ds)",
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(self.redis_url, decode_responses=True)
        return self._client

    async def publish(self, event: PlanEventBase) -> int:
        """
        Publish one event on its kind's channel.

        Flow:
            1. Check circuit breaker → may raise CircuitBreakerOpenError
            2. Serialize to the wire format
            3. PUBLISH with retry logic
            4. Record success/failure in circuit breaker
        """
        self.circuit_breaker.can_execute()

        channel = channel_for(event)
        payload = to_wire(event)

        try:
            receivers = await self._publish_with_retry(channel, payload, str(event.event_id))
        except RedisError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "Publishing %s event %s failed after %d attempts: %s",
                event.kind,
                event.event_id,
                settings.publish_max_attempts,
                str(e),
            )
            raise EventPublishError(
                message=f"Could not publish {event.kind} event",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={
                    "event_id": str(event.event_id),
                    "channel": channel,
                    "attempts": settings.publish_max_attempts,
                    "error_type": type(e).__name__,
                },
            ) from e

        self.circuit_breaker.record_success()
        return receivers

    @retry(
        # Only transport errors are worth retrying; serialization bugs are not
        retry=retry_if_exception_type(RedisError),
        stop=stop_after_attempt(settings.publish_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.publish_min_wait,
            max=settings.publish_max_wait,
            jitter=settings.publish_min_wait,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _publish_with_retry(self, channel: str, payload: str, event_id: str) -> int:
        """
        Makes the actual PUBLISH call with retry decoration.

        Kept separate from publish() so the circuit breaker check is not
        retried along with the network call.
        """
        start_time = time.perf_counter()
        try:
            receivers = await self.client.publish(channel, payload)
        except RedisError as e:
            logger.warning(
                "[%s] PUBLISH to %s failed after %.1fms: %s",
                event_id,
                channel,
                (time.perf_counter() - start_time) * 1000,
                str(e),
            )
            raise

        logger.debug(
            "[%s] Published to %s in %.1fms (%d receivers)",
            event_id,
            channel,
            (time.perf_counter() - start_time) * 1000,
            receivers,
        )
        return int(receivers)

    async def health_check(self) -> bool:
        """PING Redis; False on any transport error."""
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as e:
            logger.warning("Event channel health check failed: %s", str(e))
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

"""
NightPlan Backend — Health Checks
===================================

What:  Probes the database and the event channel and aggregates a status.
Why:   Orchestrators route traffic away from instances that cannot serve it.
How:   Lightweight checks only: SELECT 1 and a channel ping (or the circuit
       breaker state, which avoids pinging a channel known to be failing).

Status levels:
    - healthy:   database and event channel operational
    - degraded:  event channel down; preference reads/writes still work
    - unhealthy: database unreachable
"""

import logging
import time
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from app import __version__
from app.config import settings
from app.schemas.health import HealthResponse
from app.services.publisher_base import EventPublisher

logger = logging.getLogger(__name__)

_start_time = time.time()


async def check_database(engine: AsyncEngine) -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health check: database unreachable: %s", str(e))
        return "disconnected"
    return "connected"


async def check_event_channel(publisher: EventPublisher) -> str:
    breaker = getattr(publisher, "circuit_breaker", None)
    if breaker is not None and breaker.state == breaker.OPEN:
        return "circuit_open"
    if await publisher.health_check():
        return "available"
    return "unavailable"


async def check_health(
    engine: Optional[AsyncEngine] = None,
    publisher: Optional[EventPublisher] = None,
) -> HealthResponse:
    """
    Check the database and event channel.

    Defaults to the application's engine and publisher singletons.
    """
    if engine is None:
        from app.database import engine
    if publisher is None:
        from app.services.plan_event_service import event_publisher as publisher

    db_status = await check_database(engine)
    channel_status = await check_event_channel(publisher)

    overall = "healthy"
    if db_status != "connected":
        overall = "unhealthy"
    elif channel_status != "available":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        event_channel=channel_status,
        event_backend=settings.event_backend,
        uptime_seconds=round(time.time() - _start_time, 2),
    )

"""
NightPlan Backend — Process Lifecycle
=======================================

What:  Logging setup plus the startup/shutdown sequence for the embedding host.
Why:   The contracts here are hosted by an API process or a worker; both need
       the same logging, configuration checks and resource cleanup.
How:   `lifespan()` is an async context manager; pass it to the host framework
       (it accepts and ignores the host app argument) or use it directly:

           async with lifespan():
               await run_worker()

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, not fatal)
    3. Probe the event channel

    Shutdown:
    1. Close the event publisher's connections
    2. Dispose database engine (close all connections)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from app import __version__
from app.config import settings
from app.database import dispose_engine

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    When:   Called once during startup, before anything else logs.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # containers capture stdout
        ],
        force=True,
    )

    # These log every statement / command at INFO or DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: Any = None) -> AsyncGenerator[None, None]:
    """
    Run startup before the host starts serving and cleanup after it stops.
    """
    from app.services.plan_event_service import event_publisher

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("NightPlan backend %s starting up (event backend: %s)", __version__, settings.event_backend)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: the host can still answer health checks and report it
        logger.error("Configuration error: %s", str(e))

    if await event_publisher.health_check():
        logger.info("Event channel reachable")
    else:
        logger.warning("Event channel unreachable; plan events will be dropped until it recovers")

    try:
        yield
    finally:
        # ── Shutdown ──────────────────────────────────────────────────────
        logger.info("NightPlan backend shutting down...")
        await event_publisher.close()
        await dispose_engine()
        logger.info("Shutdown complete.")

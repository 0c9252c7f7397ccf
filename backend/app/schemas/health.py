"""
NightPlan Backend — Health Report Schema
=========================================

What:  Shape of the health report returned by app.services.health_service.
Who:   Serialized by the embedding host's health endpoint.
"""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """
    What:  Service and dependency status.

    Why check dependencies:
        A process that can't reach its database is effectively down. A process
        whose event channel is down still serves reads and writes, only the
        fan-out is lost, so it reports degraded.
    """
    status: str = Field(description="Overall status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    event_channel: str = Field(description="Event channel: available, unavailable, circuit_open")
    event_backend: str = Field(description="Configured publisher: redis, memory")
    uptime_seconds: float = Field(description="Seconds since the module was loaded")

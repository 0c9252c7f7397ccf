"""
NightPlan Backend — Custom Exception Hierarchy
================================================

What:  Defines application-specific exceptions for the contract layer.
Why:   Callers (an HTTP host, a worker) map these to responses or retries
       without inspecting library-specific errors (pydantic, SQLAlchemy, redis).
How:   Each exception class carries a message and optional context dict.
Who:   Raised by services and publishers; caught by the embedding host.

Exception Hierarchy:
    NightPlanError (base)
    ├── ValidationError          → caller input violates a field constraint
    ├── NotFoundError            → no record and creation not requested
    ├── ConflictError            → concurrent creation race (recovered internally)
    ├── DatabaseError            → unexpected persistence failure
    ├── EventPublishError        → publish channel failed after retries
    └── CircuitBreakerOpenError  → publish channel short-circuited
"""

from typing import Any, Dict, Optional


class NightPlanError(Exception):
    """
    Base exception for all NightPlan application errors.

    Attributes:
        message:  Caller-facing error description (safe to return to clients)
        context:  Additional debug info (logged, not meant for clients)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NightPlanError):
    """
    Raised when caller input fails validation.

    When:    Missing required event field, malformed date, out-of-range
             search radius, unknown enum member, unknown field.
    Policy:  Always surfaced to the caller; values are never silently coerced.

    `field` holds the wire (camelCase) name of the first offending field, and
    `context["errors"]` lists every failure when more than one was found.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(NightPlanError):
    """Raised when a requested resource does not exist."""

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} for ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(NightPlanError):
    """
    Raised when an insert lost a race against a concurrent insert of the same key.

    Internal and recoverable: the preference service catches it, re-reads the
    row the other request created and returns that instead.
    """

    def __init__(
        self,
        resource: str = "resource",
        key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if key:
            ctx["key"] = key
        super().__init__(
            message=f"{resource} was created concurrently",
            context=ctx,
        )


class DatabaseError(NightPlanError):
    """
    Raised when database operations fail unexpectedly.

    The message is always generic. The original error type is kept in
    `context` for server-side logs only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class EventPublishError(NightPlanError):
    """Raised when an event could not be published after all retry attempts."""

    def __init__(
        self,
        message: str = "Event could not be published",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(NightPlanError):
    """
    Raised when the publish circuit breaker is OPEN.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all publishes for M seconds)
        → After M seconds → HALF-OPEN (allow one test publish)
        → If test succeeds → CLOSED; if it fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 30,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Event channel is temporarily unavailable due to repeated failures. "
            f"Publishing will be retried in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time

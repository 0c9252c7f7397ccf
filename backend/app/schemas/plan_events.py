"""
NightPlan Backend — Plan Lifecycle Event Payloads
===================================================

What:  Pydantic models for the events published when plans change.
Why:   Consumers (notification fan-out, trending counters, search indexing)
       depend on a stable wire shape; an event that leaves this process is
       always complete and well-typed.
How:   Five frozen variants share an envelope carrying `eventId` and form a
       closed tagged union discriminated by `kind`.

Wire Format (JSON, camelCase):
    {
        "eventId": "6f1c0f0e-6a4f-4b53-9d0e-0d5c3f1a2b7e",
        "kind": "plan.created",
        "planId": "...", "creatorId": "...", "cityId": "...",
        "startDate": "2026-10-31T21:00:00Z"
    }

Idempotency:
    `eventId` is a random UUID4 generated once, when the payload is built.
    Delivery is at-least-once, so consumers treat a repeated `eventId` as
    already processed (see app.services.idempotency).
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Type, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel


class PlanEventKind(str, enum.Enum):
    """Event tags; also the channel names events are published on."""

    CREATED = "plan.created"
    DELETED = "plan.deleted"
    SAVED = "plan.saved"
    UNSAVED = "plan.unsaved"
    VIEWED = "plan.viewed"


def _stringify_uuid(value: Any) -> Any:
    # Entity ids are UUIDs upstream; accept the object or its string form
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _non_blank(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("must not be blank")
    return stripped


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


EntityId = Annotated[
    str,
    BeforeValidator(_stringify_uuid),
    StringConstraints(strict=True, max_length=64),
    AfterValidator(_non_blank),
]

PointInTime = Annotated[datetime, AfterValidator(_as_utc)]


class PlanEventBase(BaseModel):
    """
    Envelope shared by every plan event.

    Frozen: a built event is never mutated, so the eventId a consumer
    deduplicates on always describes the same payload.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)


class PlanCreated(PlanEventBase):
    """Fired after a new plan is persisted."""

    kind: Literal["plan.created"] = "plan.created"
    plan_id: EntityId
    creator_id: EntityId
    city_id: EntityId
    start_date: PointInTime
    venue_id: Optional[EntityId] = None
    end_date: Optional[PointInTime] = None

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: Optional[datetime], info: ValidationInfo) -> Optional[datetime]:
        """A plan cannot end before it starts."""
        start = info.data.get("start_date")
        if v is not None and start is not None and v < start:
            raise ValueError("endDate must not be earlier than startDate")
        return v


class PlanDeleted(PlanEventBase):
    """Fired after a plan is deleted by its creator."""

    kind: Literal["plan.deleted"] = "plan.deleted"
    plan_id: EntityId
    creator_id: EntityId
    city_id: EntityId
    venue_id: Optional[EntityId] = None


class PlanSaved(PlanEventBase):
    """Fired when a user saves (bookmarks) a plan."""

    kind: Literal["plan.saved"] = "plan.saved"
    plan_id: EntityId
    user_id: EntityId
    city_id: EntityId


class PlanUnsaved(PlanEventBase):
    """Fired when a user removes a plan from their saved plans."""

    kind: Literal["plan.unsaved"] = "plan.unsaved"
    plan_id: EntityId
    user_id: EntityId
    city_id: EntityId


class PlanViewed(PlanEventBase):
    """Fired when a plan is viewed; the viewer is included when known."""

    kind: Literal["plan.viewed"] = "plan.viewed"
    plan_id: EntityId
    city_id: EntityId
    user_id: Optional[EntityId] = None


PlanEvent = Annotated[
    Union[PlanCreated, PlanDeleted, PlanSaved, PlanUnsaved, PlanViewed],
    Field(discriminator="kind"),
]

EVENT_TYPES: Dict[PlanEventKind, Type[PlanEventBase]] = {
    PlanEventKind.CREATED: PlanCreated,
    PlanEventKind.DELETED: PlanDeleted,
    PlanEventKind.SAVED: PlanSaved,
    PlanEventKind.UNSAVED: PlanUnsaved,
    PlanEventKind.VIEWED: PlanViewed,
}

"""
NightPlan Backend — Plan Event Contract
=========================================

What:  Builds, decodes and serializes plan lifecycle events.
Why:   The write path and the consumers must agree on one validated shape.
How:   Thin functions over the pydantic variants in app.schemas.plan_events;
       every pydantic failure is translated into app.exceptions.ValidationError.
Who:   PlanEventService (build + publish), publishers (serialize),
       PlanEventConsumer (decode).

This layer is pure: no I/O, no retries, no state beyond identifier generation.
"""

import logging
from typing import Any, Mapping, Union

import pydantic
import pydantic_core
from pydantic import TypeAdapter

from app.config import settings
from app.exceptions import ValidationError
from app.schemas.errors import to_validation_error
from app.schemas.plan_events import EVENT_TYPES, PlanEvent, PlanEventBase, PlanEventKind

logger = logging.getLogger(__name__)

_event_adapter: TypeAdapter = TypeAdapter(PlanEvent)

# Assigned by build_event itself, never taken from the caller
_RESERVED_FIELDS = {"eventId", "event_id", "kind"}

# "PlanCreated" → PlanEventKind.CREATED, alongside the wire tags themselves
_KIND_BY_NAME = {model.__name__: kind for kind, model in EVENT_TYPES.items()}


def resolve_kind(kind: Union[PlanEventKind, str]) -> PlanEventKind:
    """
    Accepts a PlanEventKind, a wire tag ("plan.created") or a variant name
    ("PlanCreated").

    Raises:
        ValidationError: citing `kind` when it names no known event.
    """
    if isinstance(kind, PlanEventKind):
        return kind
    if isinstance(kind, str):
        if kind in _KIND_BY_NAME:
            return _KIND_BY_NAME[kind]
        try:
            return PlanEventKind(kind)
        except ValueError:
            pass
    raise ValidationError(
        message=f"Unknown event kind '{kind}'",
        field="kind",
        context={"allowed": sorted(k.value for k in PlanEventKind)},
    )


def build_event(kind: Union[PlanEventKind, str], fields: Mapping[str, Any]) -> PlanEventBase:
    """
    Construct one plan event with a freshly generated eventId.

    Args:
        kind:   Which variant to build (see resolve_kind for accepted forms).
        fields: Payload fields by wire name (planId) or Python name (plan_id).

    Returns:
        A frozen PlanCreated / PlanDeleted / PlanSaved / PlanUnsaved / PlanViewed.

    Raises:
        ValidationError: a required field is missing, a value has the wrong
            semantic type (e.g. startDate is not a point in time), an unknown
            field is present, or the caller supplied eventId/kind.
    """
    event_kind = resolve_kind(kind)
    model = EVENT_TYPES[event_kind]

    reserved = _RESERVED_FIELDS.intersection(fields)
    if reserved:
        name = sorted(reserved)[0]
        raise ValidationError(
            message=f"'{name}' is assigned when the event is built and cannot be supplied",
            field="eventId" if name == "event_id" else name,
        )

    try:
        return model.model_validate(dict(fields))
    except pydantic.ValidationError as exc:
        error = to_validation_error(exc, models=[model])
        logger.debug("Rejected %s payload: %s", event_kind.value, error.message)
        raise error from exc


def parse_event(raw: Union[str, bytes, Mapping[str, Any]]) -> PlanEventBase:
    """
    Decode a delivered payload back into its variant, keeping its eventId.

    Unlike build_event, a missing eventId is an error here: a fresh one would
    defeat consumer deduplication.

    Raises:
        ValidationError: malformed JSON, missing eventId, unknown/missing
            kind, or a field that violates the variant's constraints.
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            data = pydantic_core.from_json(raw)
        except ValueError as exc:
            raise ValidationError(message=f"Malformed event payload: {exc}") from exc
    elif isinstance(raw, Mapping):
        data = dict(raw)
    else:
        data = raw

    if not isinstance(data, dict):
        raise ValidationError(message="An event payload must be a JSON object")
    if "eventId" not in data and "event_id" not in data:
        raise ValidationError(message="Delivered event has no eventId", field="eventId")

    tags = [k.value for k in PlanEventKind]
    try:
        return _event_adapter.validate_python(data)
    except pydantic.ValidationError as exc:
        raise to_validation_error(exc, models=EVENT_TYPES.values(), skip_loc=tags) from exc


def to_wire(event: PlanEventBase) -> str:
    """
    Serialize an event as JSON with camelCase keys.

    Optional fields that are unset are omitted rather than sent as null.
    """
    return event.model_dump_json(by_alias=True, exclude_none=True)


def channel_for(event: Union[PlanEventBase, PlanEventKind]) -> str:
    """Channel an event is published on: configured prefix + kind tag."""
    kind = event if isinstance(event, PlanEventKind) else PlanEventKind(event.kind)
    return f"{settings.event_channel_prefix}{kind.value}"

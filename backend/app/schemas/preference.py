"""
NightPlan Backend — Preference Request/Response Schemas
=========================================================

What:  Pydantic models for partial preference updates and preference records.
Why:   Explicit validation before any merge touches the database; values are
       checked, never coerced ("50" is not a radius, "yes" is not a boolean).
How:   PreferenceUpdate forbids unknown keys and tracks which keys were sent
       (model_fields_set), which is exactly the set of fields a merge overlays.
Who:   Used by PreferenceService; an HTTP host can reuse them as body/response models.

Wire names are camelCase (searchRadiusMi); snake_case names are accepted too.
"""

import uuid
from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.user_preference import (
    SEARCH_RADIUS_MAX_MI,
    SEARCH_RADIUS_MIN_MI,
    DistanceUnit,
    NotificationType,
    ThemeMode,
)

# Primary language subtag plus optional region/script/variant subtags
LANGUAGE_TAG_PATTERN = r"^[a-zA-Z]{2,3}(-[a-zA-Z0-9]{2,8})*$"


class PreferenceUpdate(BaseModel):
    """
    A partial preference update. Only keys present in the input are applied.

    Every field defaults to None and defaults are not validated, so an absent
    key stays out of `changes()`. An explicit null fails the field's type
    check: a merge can change a value but never blank it.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    notification_events_nearby: bool = Field(default=None, strict=True)
    notification_friend_activity: bool = Field(default=None, strict=True)
    notification_promotions: bool = Field(default=None, strict=True)
    notification_type: NotificationType = Field(default=None)
    distance_unit: DistanceUnit = Field(default=None)
    theme_mode: ThemeMode = Field(default=None)
    language: str = Field(
        default=None,
        strict=True,
        max_length=35,
        pattern=LANGUAGE_TAG_PATTERN,
    )
    auto_checkin: bool = Field(default=None, strict=True)
    search_radius_mi: int = Field(
        default=None,
        strict=True,
        ge=SEARCH_RADIUS_MIN_MI,
        le=SEARCH_RADIUS_MAX_MI,
    )

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly present in the update, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


class PreferenceResponse(BaseModel):
    """
    What:  Full representation of a user's stored preferences.
    Who:   Returned by every PreferenceService read/write operation.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: uuid.UUID
    user_id: uuid.UUID
    notification_events_nearby: bool
    notification_friend_activity: bool
    notification_promotions: bool
    notification_type: NotificationType
    distance_unit: DistanceUnit
    theme_mode: ThemeMode
    language: str
    auto_checkin: bool
    search_radius_mi: int
    created_at: datetime
    updated_at: datetime

    def preference_values(self) -> Dict[str, Any]:
        """The user-editable values only (no keys or timestamps)."""
        return self.model_dump(
            exclude={"id", "user_id", "created_at", "updated_at"},
        )

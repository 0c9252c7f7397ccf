"""
NightPlan Backend — UserPreference SQLAlchemy Model
=====================================================

What:  ORM model representing the `user_preferences` table.
Why:   Maps Python objects to database rows for type-safe database operations.
How:   Inherits from SQLAlchemy's DeclarativeBase; Alembic reads this for migrations.
Who:   Used by PreferenceService for lookup-or-create and partial merges.

Table Design Rationale:
    - One row per user: UNIQUE(user_id) is the storage-level guarantee behind
      insert-if-absent. Two concurrent first accesses cannot create two rows.
    - user_id references the users table owned by the auth service; the row
      is removed by that service's cascade, never by this package.
    - Enum columns use PostgreSQL enum types (plain VARCHAR on SQLite).
    - search_radius_mi carries a CHECK so out-of-range values written by other
      clients are rejected by the database as well.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class NotificationType(str, enum.Enum):
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"


class ThemeMode(str, enum.Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class DistanceUnit(str, enum.Enum):
    MILES = "miles"
    KILOMETERS = "kilometers"


SEARCH_RADIUS_MIN_MI = 1
SEARCH_RADIUS_MAX_MI = 100

# Domain defaults for a freshly created record. Notifications are opt-in by
# default, auto check-in is opt-out.
PREFERENCE_DEFAULTS = {
    "notification_events_nearby": True,
    "notification_friend_activity": True,
    "notification_promotions": True,
    "notification_type": NotificationType.PUSH,
    "distance_unit": DistanceUnit.MILES,
    "theme_mode": ThemeMode.SYSTEM,
    "language": "en",
    "auto_checkin": False,
    "search_radius_mi": 10,
}


def _enum_values(enum_cls):
    # Persist the lowercase values ("push"), not the member names ("PUSH")
    return [member.value for member in enum_cls]


class UserPreference(Base):
    """
    Per-user preference record.

    Lifecycle:
        1. Created lazily on first read, or explicitly at onboarding
        2. Mutated only via partial merge (absent fields untouched)
        3. Deleted only by the user-deletion cascade (external)

    Query Patterns:
        - Lookup by user: SELECT ... WHERE user_id = :user_id
          → Uses uq_user_preferences_user_id unique index
        - Merge: SELECT ... WHERE user_id = :user_id FOR UPDATE
          → Row lock serializes concurrent partial updates for one user
    """

    __tablename__ = "user_preferences"

    # ── Keys ──────────────────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Surrogate key",
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        comment="Owning user; exactly one preference row per user",
    )

    # ── Notifications ─────────────────────────────────────────────────────
    notification_events_nearby: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=PREFERENCE_DEFAULTS["notification_events_nearby"]
    )
    notification_friend_activity: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=PREFERENCE_DEFAULTS["notification_friend_activity"]
    )
    notification_promotions: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=PREFERENCE_DEFAULTS["notification_promotions"]
    )
    notification_type: Mapped[NotificationType] = mapped_column(
        Enum(
            NotificationType,
            name="notification_type_enum",
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=PREFERENCE_DEFAULTS["notification_type"],
    )

    # ── Display ───────────────────────────────────────────────────────────
    distance_unit: Mapped[DistanceUnit] = mapped_column(
        Enum(
            DistanceUnit,
            native_enum=False,
            length=20,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=PREFERENCE_DEFAULTS["distance_unit"],
    )
    theme_mode: Mapped[ThemeMode] = mapped_column(
        Enum(
            ThemeMode,
            name="theme_mode_enum",
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=PREFERENCE_DEFAULTS["theme_mode"],
    )
    language: Mapped[str] = mapped_column(
        String(35),  # longest practical BCP 47 tag
        nullable=False,
        default=PREFERENCE_DEFAULTS["language"],
    )

    # ── Discovery ─────────────────────────────────────────────────────────
    auto_checkin: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=PREFERENCE_DEFAULTS["auto_checkin"]
    )
    search_radius_mi: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=PREFERENCE_DEFAULTS["search_radius_mi"],
        comment="Discovery radius in miles, 1-100",
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        # The insert-if-absent path targets this index: ON CONFLICT (user_id) DO NOTHING
        Index("uq_user_preferences_user_id", "user_id", unique=True),
        CheckConstraint(
            f"search_radius_mi BETWEEN {SEARCH_RADIUS_MIN_MI} AND {SEARCH_RADIUS_MAX_MI}",
            name="ck_user_preferences_search_radius",
        ),
        {"comment": "One preference record per user"},
    )

    def __repr__(self) -> str:
        return (
            f"<UserPreference(user_id={self.user_id}, "
            f"theme_mode='{self.theme_mode}', radius={self.search_radius_mi})>"
        )


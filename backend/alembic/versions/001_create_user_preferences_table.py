"""Create user_preferences table

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates `user_preferences`, one row per user, with the enum types it uses.
How:   Native enum types on PostgreSQL (notification_type_enum, theme_mode_enum);
       distance_unit is a VARCHAR. Unique index on user_id backs the
       insert-if-absent path; a CHECK keeps search_radius_mi within 1-100.

Rollback: downgrade() drops the table and both enum types.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

notification_type_enum = sa.Enum("push", "email", "sms", name="notification_type_enum")
theme_mode_enum = sa.Enum("light", "dark", "system", name="theme_mode_enum")


def upgrade() -> None:
    """Create the user_preferences table, its unique index and check constraint."""
    op.create_table(
        "user_preferences",

        sa.Column("id", sa.Uuid(), nullable=False, comment="Surrogate key"),
        sa.Column(
            "user_id",
            sa.Uuid(),
            nullable=False,
            comment="Owning user; exactly one preference row per user",
        ),

        # Notifications: opted in by default
        sa.Column("notification_events_nearby", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notification_friend_activity", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notification_promotions", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "notification_type",
            notification_type_enum,
            nullable=False,
            server_default="push",
        ),

        # Display
        sa.Column(
            "distance_unit",
            sa.Enum("miles", "kilometers", native_enum=False, length=20),
            nullable=False,
            server_default="miles",
        ),
        sa.Column(
            "theme_mode",
            theme_mode_enum,
            nullable=False,
            server_default="system",
        ),
        sa.Column("language", sa.String(35), nullable=False, server_default="en"),

        # Discovery
        sa.Column("auto_checkin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "search_radius_mi",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("10"),
            comment="Discovery radius in miles, 1-100",
        ),

        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),

        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "search_radius_mi BETWEEN 1 AND 100",
            name="ck_user_preferences_search_radius",
        ),
        comment="One preference record per user",
    )

    # Target of INSERT ... ON CONFLICT (user_id) DO NOTHING
    op.create_index(
        "uq_user_preferences_user_id",
        "user_preferences",
        ["user_id"],
        unique=True,
    )


def downgrade() -> None:
    """
    Drop the table and its enum types.

    WARNING: destructive, every user's preferences are lost. Users get fresh
    defaults on their next access.
    """
    op.drop_index("uq_user_preferences_user_id", table_name="user_preferences")
    op.drop_table("user_preferences")
    bind = op.get_bind()
    theme_mode_enum.drop(bind, checkfirst=True)
    notification_type_enum.drop(bind, checkfirst=True)

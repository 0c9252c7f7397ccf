"""
NightPlan Backend — Preference Service (Merge Contract)
=========================================================

What:  Lookup-or-create and partial merge of per-user preference records.
Why:   Every user has exactly one preference record; clients send only the
       fields they change, and concurrent first accesses must not create
       duplicates or surface errors.
How:   Validation through PreferenceUpdate before any database access,
       insert-if-absent backed by the unique user_id index, and
       read-modify-write under a row lock.
Who:   Called by the embedding host (profile screens, onboarding) with a
       request-scoped AsyncSession from app.database.get_db_session.
When:  On every preference read/update and once during onboarding.

Operation Flow (merge):
    ┌───────────┐    ┌────────────┐    ┌───────────────┐    ┌─────────┐
    │ Validate  │───▶│ SELECT ... │───▶│ Overlay only  │───▶│  Flush  │
    │ (no I/O)  │    │ FOR UPDATE │    │ present keys  │    │         │
    └───────────┘    └────────────┘    └───────────────┘    └─────────┘

    A failed validation never reaches the database. Commit/rollback belongs
    to the session owner, so a failure after the flush leaves no trace either.

Concurrency:
    get_or_create issues INSERT ... ON CONFLICT (user_id) DO NOTHING. If the
    insert affected no row another request created the record first; that is
    a ConflictError internally, recovered by re-reading the winner's row.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

import pydantic
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    ConflictError,
    DatabaseError,
    NightPlanError,
    NotFoundError,
    ValidationError,
)
from app.models.user_preference import PREFERENCE_DEFAULTS, UserPreference
from app.schemas.errors import to_validation_error
from app.schemas.preference import PreferenceResponse, PreferenceUpdate

logger = logging.getLogger(__name__)

RESOURCE = "user preferences"

# Dialects whose INSERT supports ON CONFLICT DO NOTHING
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _coerce_user_id(user_id: Union[uuid.UUID, str]) -> uuid.UUID:
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except (TypeError, ValueError):
        raise ValidationError(
            message=f"Invalid user id '{user_id}'",
            field="userId",
        )


def validate_update(partial_update: Union[PreferenceUpdate, Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Validate a partial update and return the present fields by attribute name.

    Raises:
        ValidationError: citing the first offending field by wire name.
    """
    if isinstance(partial_update, PreferenceUpdate):
        return partial_update.changes()
    if not isinstance(partial_update, Mapping):
        raise ValidationError(message="A preference update must be an object of fields")
    try:
        return PreferenceUpdate.model_validate(dict(partial_update)).changes()
    except pydantic.ValidationError as exc:
        raise to_validation_error(exc, models=[PreferenceUpdate]) from exc


class PreferenceService:
    """
    Business logic layer for user preferences.

    Responsibilities:
        - get_or_create(): existing record, or a new one with defaults
        - merge(): validated partial overlay of the present fields
        - exists(): side-effect free presence check
        - init_preferences(): onboarding entry point (create + optional merge)

    Stateless: every call receives its session, so one instance is shared.
    """

    # ── Queries ──────────────────────────────────────────────────────────

    async def _find(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[UserPreference]:
        query = select(UserPreference).where(UserPreference.user_id == user_id)
        if for_update:
            # SQLite ignores FOR UPDATE; its writes are serialized anyway
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def _insert_if_absent(self, db: AsyncSession, user_id: uuid.UUID) -> UserPreference:
        """
        Insert a default record unless one exists.

        Raises:
            ConflictError: the insert was a no-op because a concurrent
                request created the record first.
        """
        now = datetime.now(timezone.utc)
        values = dict(
            PREFERENCE_DEFAULTS,
            id=uuid.uuid4(),
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )

        insert_fn = _UPSERT_INSERTS.get(db.bind.dialect.name)
        if insert_fn is not None:
            stmt = (
                insert_fn(UserPreference)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["user_id"])
            )
            result = await db.execute(stmt)
            if result.rowcount == 0:
                raise ConflictError(RESOURCE, key=str(user_id))
        else:
            # No ON CONFLICT support: a savepoint keeps the outer transaction
            # usable when the unique index rejects the row
            try:
                async with db.begin_nested():
                    db.add(UserPreference(**values))
            except IntegrityError as e:
                raise ConflictError(RESOURCE, key=str(user_id)) from e

        created = await self._find(db, user_id)
        if created is None:
            raise DatabaseError(context={"operation": "insert_if_absent", "user_id": str(user_id)})
        logger.info("Created default preferences for user %s", user_id)
        return created

    async def _get_or_create_row(self, db: AsyncSession, user_id: uuid.UUID) -> UserPreference:
        pref = await self._find(db, user_id)
        if pref is not None:
            return pref

        try:
            return await self._insert_if_absent(db, user_id)
        except ConflictError as e:
            logger.warning(
                "Concurrent creation of preferences for user %s; using existing record",
                user_id,
            )
            pref = await self._find(db, user_id)
            if pref is None:
                # The winner's row is not visible: it rolled back after inserting
                raise DatabaseError(context={"operation": "get_or_create", **e.context}) from e
            return pref

    # ── Operations ───────────────────────────────────────────────────────

    async def get_or_create(
        self,
        db: AsyncSession,
        user_id: Union[uuid.UUID, str],
    ) -> PreferenceResponse:
        """
        Return the user's preferences, creating the default record if absent.

        Idempotent: repeated calls return the same record (same id). Two
        concurrent first calls both return the single record that exists
        afterwards.

        Raises:
            ValidationError: user_id is not a UUID
            DatabaseError: Unexpected persistence failure
        """
        uid = _coerce_user_id(user_id)
        try:
            pref = await self._get_or_create_row(db, uid)
            return self._to_response(pref)
        except NightPlanError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error in get_or_create: %s", str(e), exc_info=True)
            raise DatabaseError(
                context={"operation": "get_or_create", "original_error": type(e).__name__}
            ) from e

    async def get_preferences(
        self,
        db: AsyncSession,
        user_id: Union[uuid.UUID, str],
    ) -> PreferenceResponse:
        """
        Return the user's preferences without creating them.

        Raises:
            NotFoundError: No record exists for user_id
        """
        uid = _coerce_user_id(user_id)
        try:
            pref = await self._find(db, uid)
        except SQLAlchemyError as e:
            logger.error("Database error in get_preferences: %s", str(e), exc_info=True)
            raise DatabaseError(
                context={"operation": "get_preferences", "original_error": type(e).__name__}
            ) from e
        if pref is None:
            raise NotFoundError(resource=RESOURCE, resource_id=str(uid))
        return self._to_response(pref)

    async def merge(
        self,
        db: AsyncSession,
        user_id: Union[uuid.UUID, str],
        partial_update: Union[PreferenceUpdate, Mapping[str, Any]],
        create_if_missing: bool = False,
    ) -> PreferenceResponse:
        """
        Overlay the fields present in partial_update onto the stored record.

        Absent fields keep their stored values; an empty update is a no-op
        that returns the current record.

        Args:
            db: Async database session (the caller commits)
            user_id: Owning user
            partial_update: Wire (camelCase) or attribute (snake_case) keys
            create_if_missing: Create the default record first when absent

        Raises:
            ValidationError: A present field violates its constraint. Raised
                before any database access.
            NotFoundError: No record and create_if_missing is False
            DatabaseError: Unexpected persistence failure
        """
        changes = validate_update(partial_update)
        uid = _coerce_user_id(user_id)

        try:
            pref = await self._find(db, uid, for_update=True)
            if pref is None:
                if not create_if_missing:
                    raise NotFoundError(resource=RESOURCE, resource_id=str(uid))
                await self._get_or_create_row(db, uid)
                pref = await self._find(db, uid, for_update=True)
                if pref is None:
                    raise DatabaseError(context={"operation": "merge", "user_id": str(uid)})

            for name, value in changes.items():
                setattr(pref, name, value)
            if changes:
                await db.flush()
                logger.info(
                    "Merged preferences for user %s: %s",
                    uid,
                    ", ".join(sorted(changes)),
                )
            return self._to_response(pref)

        except NightPlanError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error in merge: %s", str(e), exc_info=True)
            raise DatabaseError(
                context={"operation": "merge", "original_error": type(e).__name__}
            ) from e

    async def exists(self, db: AsyncSession, user_id: Union[uuid.UUID, str]) -> bool:
        """True if a record exists for user_id. Never creates one."""
        uid = _coerce_user_id(user_id)
        try:
            result = await db.execute(
                select(UserPreference.id).where(UserPreference.user_id == uid)
            )
            return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            logger.error("Database error in exists: %s", str(e), exc_info=True)
            raise DatabaseError(
                context={"operation": "exists", "original_error": type(e).__name__}
            ) from e

    async def init_preferences(
        self,
        db: AsyncSession,
        user_id: Union[uuid.UUID, str],
        initial: Optional[Union[PreferenceUpdate, Mapping[str, Any]]] = None,
    ) -> PreferenceResponse:
        """
        Onboarding: make sure the record exists and apply any chosen values.

        Safe to call more than once; a second call only re-applies `initial`.
        """
        if initial is None:
            return await self.get_or_create(db, user_id)
        return await self.merge(db, user_id, initial, create_if_missing=True)

    # ── Mapping ──────────────────────────────────────────────────────────

    @staticmethod
    def _to_response(pref: UserPreference) -> PreferenceResponse:
        return PreferenceResponse(
            id=pref.id,
            user_id=pref.user_id,
            notification_events_nearby=pref.notification_events_nearby,
            notification_friend_activity=pref.notification_friend_activity,
            notification_promotions=pref.notification_promotions,
            notification_type=pref.notification_type,
            distance_unit=pref.distance_unit,
            theme_mode=pref.theme_mode,
            language=pref.language,
            auto_checkin=pref.auto_checkin,
            search_radius_mi=pref.search_radius_mi,
            created_at=pref.created_at,
            updated_at=pref.updated_at,
        )


# Module-level singleton
preference_service = PreferenceService()

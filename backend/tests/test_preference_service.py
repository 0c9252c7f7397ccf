"""
NightPlan Backend — Preference Service Unit Tests
====================================================

What:  Tests for PreferenceService logic (get_or_create, merge, exists).
Why:   Lost updates, duplicate records or silently coerced values would all
       reach users' settings screens.
How:   Uses a mock DB session (see conftest.py); statement order is scripted
       with execute.side_effect.

What we test:
    ✅ Existing record is returned without an insert
    ✅ Lost insert race is recovered by re-reading (no error surfaced)
    ✅ Validation failures cite the field and never touch the database
    ✅ Merge overlays only present fields
    ✅ Missing record → NotFoundError unless create_if_missing
    ✅ SQLAlchemy errors are wrapped in DatabaseError
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.exceptions import DatabaseError, NotFoundError, ValidationError
from app.models.user_preference import DistanceUnit, ThemeMode
from app.schemas.preference import PreferenceUpdate
from app.services.preference_service import PreferenceService, validate_update


def scalar_result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def insert_result(rowcount):
    result = MagicMock()
    result.rowcount = rowcount
    return result


class TestValidateUpdate:
    """Tests for partial update validation (no database involved)."""

    def test_only_present_fields_are_returned(self):
        assert validate_update({"searchRadiusMi": 50}) == {"search_radius_mi": 50}

    def test_snake_case_keys_are_accepted(self):
        assert validate_update({"theme_mode": "dark"}) == {"theme_mode": ThemeMode.DARK}

    def test_empty_update_has_no_changes(self):
        assert validate_update({}) == {}

    def test_model_instance_is_accepted(self):
        update = PreferenceUpdate(distance_unit="kilometers")
        assert validate_update(update) == {"distance_unit": DistanceUnit.KILOMETERS}

    @pytest.mark.parametrize("payload,field", [
        ({"searchRadiusMi": 150}, "searchRadiusMi"),
        ({"searchRadiusMi": 0}, "searchRadiusMi"),
        ({"searchRadiusMi": "50"}, "searchRadiusMi"),
        ({"searchRadiusMi": 12.5}, "searchRadiusMi"),
        ({"autoCheckin": "yes"}, "autoCheckin"),
        ({"notificationPromotions": 1}, "notificationPromotions"),
        ({"themeMode": "sepia"}, "themeMode"),
        ({"notificationType": "pigeon"}, "notificationType"),
        ({"distanceUnit": "furlongs"}, "distanceUnit"),
        ({"language": "not a language"}, "language"),
        ({"themeMode": None}, "themeMode"),
        ({"favouriteColour": "teal"}, "favouriteColour"),
    ])
    def test_invalid_values_cite_field(self, payload, field):
        with pytest.raises(ValidationError) as exc_info:
            validate_update(payload)
        assert exc_info.value.field == field

    def test_language_tags_with_region_are_accepted(self):
        assert validate_update({"language": "pt-BR"}) == {"language": "pt-BR"}

    def test_non_mapping_is_rejected(self):
        with pytest.raises(ValidationError):
            validate_update(["searchRadiusMi", 50])


class TestGetOrCreate:
    """Tests for lookup-or-create."""

    def setup_method(self):
        self.service = PreferenceService()

    @pytest.mark.asyncio
    async def test_existing_record_is_returned(self, mock_db_session, make_preference):
        pref = make_preference(theme_mode=ThemeMode.DARK)
        mock_db_session.execute.return_value = scalar_result(pref)

        result = await self.service.get_or_create(mock_db_session, pref.user_id)

        assert result.id == pref.id
        assert result.theme_mode == ThemeMode.DARK
        assert mock_db_session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_record_is_created_with_defaults(self, mock_db_session, make_preference):
        user_id = uuid.uuid4()
        created = make_preference(user_id=user_id)
        mock_db_session.execute.side_effect = [
            scalar_result(None),   # initial lookup
            insert_result(1),      # INSERT ... ON CONFLICT DO NOTHING
            scalar_result(created),
        ]

        result = await self.service.get_or_create(mock_db_session, str(user_id))

        assert result.user_id == user_id
        assert result.search_radius_mi == 10
        assert result.language == "en"
        assert result.auto_checkin is False

        insert_stmt = mock_db_session.execute.await_args_list[1].args[0]
        compiled = str(insert_stmt.compile(dialect=_postgres_dialect()))
        assert "ON CONFLICT (user_id) DO NOTHING" in compiled

    @pytest.mark.asyncio
    async def test_lost_race_returns_winner_record(self, mock_db_session, make_preference):
        """A no-op insert means another request won; its row is returned."""
        user_id = uuid.uuid4()
        winner = make_preference(user_id=user_id)
        mock_db_session.execute.side_effect = [
            scalar_result(None),
            insert_result(0),
            scalar_result(winner),
        ]

        result = await self.service.get_or_create(mock_db_session, user_id)

        assert result.id == winner.id

    @pytest.mark.asyncio
    async def test_savepoint_path_for_other_dialects(self, mock_db_session, make_preference):
        """Without ON CONFLICT support, a unique violation in a savepoint is a lost race."""
        user_id = uuid.uuid4()
        winner = make_preference(user_id=user_id)
        mock_db_session.bind.dialect.name = "mysql"
        mock_db_session.begin_nested = MagicMock()
        mock_db_session.begin_nested.return_value.__aexit__.side_effect = IntegrityError(
            "INSERT", {}, Exception("duplicate key")
        )
        mock_db_session.execute.side_effect = [scalar_result(None), scalar_result(winner)]

        result = await self.service.get_or_create(mock_db_session, user_id)

        assert result.id == winner.id
        mock_db_session.add.assert_called_once()

    @pytest.mark.asyncio
    async def test_invalid_user_id(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.get_or_create(mock_db_session, "not-a-uuid")
        assert exc_info.value.field == "userId"
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_failure_is_wrapped(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(DatabaseError) as exc_info:
            await self.service.get_or_create(mock_db_session, uuid.uuid4())

        assert exc_info.value.context["original_error"] == "OperationalError"


class TestMerge:
    """Tests for partial merge."""

    def setup_method(self):
        self.service = PreferenceService()

    @pytest.mark.asyncio
    async def test_out_of_range_radius_fails_before_database(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.merge(mock_db_session, uuid.uuid4(), {"searchRadiusMi": 150})

        assert exc_info.value.field == "searchRadiusMi"
        mock_db_session.execute.assert_not_awaited()
        mock_db_session.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_merge_overlays_only_present_fields(self, mock_db_session, make_preference):
        pref = make_preference(theme_mode=ThemeMode.DARK, language="de")
        before = {
            "notification_events_nearby": pref.notification_events_nearby,
            "notification_type": pref.notification_type,
            "theme_mode": pref.theme_mode,
            "language": pref.language,
        }
        mock_db_session.execute.return_value = scalar_result(pref)

        result = await self.service.merge(mock_db_session, pref.user_id, {"searchRadiusMi": 50})

        assert result.search_radius_mi == 50
        for name, value in before.items():
            assert getattr(result, name) == value
        mock_db_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_merge_reads_with_row_lock(self, mock_db_session, make_preference):
        pref = make_preference()
        mock_db_session.execute.return_value = scalar_result(pref)

        await self.service.merge(mock_db_session, pref.user_id, {"autoCheckin": True})

        query = mock_db_session.execute.await_args_list[0].args[0]
        assert "FOR UPDATE" in str(query.compile(dialect=_postgres_dialect()))

    @pytest.mark.asyncio
    async def test_empty_merge_does_not_flush(self, mock_db_session, make_preference):
        pref = make_preference()
        mock_db_session.execute.return_value = scalar_result(pref)

        result = await self.service.merge(mock_db_session, pref.user_id, {})

        assert result.id == pref.id
        mock_db_session.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_record_raises_not_found(self, mock_db_session):
        mock_db_session.execute.return_value = scalar_result(None)

        with pytest.raises(NotFoundError):
            await self.service.merge(mock_db_session, uuid.uuid4(), {"themeMode": "light"})

        mock_db_session.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_if_missing(self, mock_db_session, make_preference):
        user_id = uuid.uuid4()
        created = make_preference(user_id=user_id)
        mock_db_session.execute.side_effect = [
            scalar_result(None),     # locked lookup
            scalar_result(None),     # get_or_create lookup
            insert_result(1),
            scalar_result(created),  # read back after insert
            scalar_result(created),  # locked re-read
        ]

        result = await self.service.merge(
            mock_db_session, user_id, {"themeMode": "light"}, create_if_missing=True
        )

        assert result.theme_mode == ThemeMode.LIGHT
        assert result.search_radius_mi == 10

    @pytest.mark.asyncio
    async def test_flush_failure_is_wrapped(self, mock_db_session, make_preference):
        pref = make_preference()
        mock_db_session.execute.return_value = scalar_result(pref)
        mock_db_session.flush = AsyncMock(
            side_effect=IntegrityError("UPDATE", {}, Exception("check constraint"))
        )

        with pytest.raises(DatabaseError):
            await self.service.merge(mock_db_session, pref.user_id, {"language": "fr"})


class TestExistsAndGet:

    def setup_method(self):
        self.service = PreferenceService()

    @pytest.mark.asyncio
    async def test_exists(self, mock_db_session):
        mock_db_session.execute.return_value = scalar_result(uuid.uuid4())
        assert await self.service.exists(mock_db_session, uuid.uuid4()) is True

        mock_db_session.execute.return_value = scalar_result(None)
        assert await self.service.exists(mock_db_session, uuid.uuid4()) is False
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_preferences_not_found(self, mock_db_session):
        mock_db_session.execute.return_value = scalar_result(None)
        with pytest.raises(NotFoundError):
            await self.service.get_preferences(mock_db_session, uuid.uuid4())


def _postgres_dialect():
    from sqlalchemy.dialects import postgresql
    return postgresql.dialect()

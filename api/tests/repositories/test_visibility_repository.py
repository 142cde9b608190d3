"""Tests for VisibilityRepository.

Runs against in-memory SQLite, which exercises the same
INSERT ... ON CONFLICT DO UPDATE path as PostgreSQL.
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import EntityType, VisibilitySetting
from repositories.visibility_repository import VisibilityRepository
from schemas import VisibilitySettingCreate
from tests.factories import (
    MilestoneVisibilityFactory,
    ObjectiveVisibilityFactory,
    VisibilitySettingFactory,
    create_async,
)

pytestmark = pytest.mark.integration


def journey_setting(slug: str, is_public: bool = True, admin: str = "admin_1"):
    return VisibilitySettingCreate(
        entity_type=EntityType.JOURNEY,
        entity_id=slug,
        is_public=is_public,
        updated_by=admin,
    )


class TestVisibilityRepositoryGet:
    """Tests for VisibilityRepository.get()."""

    async def test_returns_setting_when_exists(self, db_session: AsyncSession):
        row = await create_async(
            VisibilitySettingFactory, db_session, entity_id="js-basics", is_public=True
        )
        repo = VisibilityRepository(db_session)

        result = await repo.get(EntityType.JOURNEY, "js-basics")

        assert result is not None
        assert result.id == row.id
        assert result.is_public is True
        assert result.updated_by == row.updated_by

    async def test_returns_none_when_missing(self, db_session: AsyncSession):
        repo = VisibilityRepository(db_session)

        assert await repo.get(EntityType.JOURNEY, "nope") is None

    async def test_key_includes_entity_type(self, db_session: AsyncSession):
        """Same entity_id under another type is a different record."""
        await create_async(
            VisibilitySettingFactory, db_session, entity_id="shared-id", is_public=True
        )
        repo = VisibilityRepository(db_session)

        assert await repo.get(EntityType.MILESTONE, "shared-id") is None


class TestVisibilityRepositoryGetBatch:
    """Tests for VisibilityRepository.get_batch()."""

    async def test_returns_only_found_ids(self, db_session: AsyncSession):
        await create_async(VisibilitySettingFactory, db_session, entity_id="a")
        await create_async(VisibilitySettingFactory, db_session, entity_id="b")
        repo = VisibilityRepository(db_session)

        result = await repo.get_batch(EntityType.JOURNEY, ["a", "b", "missing"])

        assert set(result) == {"a", "b"}
        assert result["a"].entity_id == "a"

    async def test_empty_input_skips_query(self, db_session: AsyncSession):
        repo = VisibilityRepository(db_session)

        with patch.object(
            db_session, "execute", new_callable=AsyncMock
        ) as mock_execute:
            result = await repo.get_batch(EntityType.JOURNEY, [])

        assert result == {}
        mock_execute.assert_not_called()


class TestVisibilityRepositorySet:
    """Tests for VisibilityRepository.set()."""

    async def test_creates_new_record(self, db_session: AsyncSession):
        repo = VisibilityRepository(db_session)

        result = await repo.set(journey_setting("js-basics"))

        assert result.entity_type == EntityType.JOURNEY
        assert result.entity_id == "js-basics"
        assert result.is_public is True
        assert result.updated_by == "admin_1"
        assert result.id
        assert result.created_at is not None

    async def test_round_trip_matches_written_fields(self, db_session: AsyncSession):
        repo = VisibilityRepository(db_session)
        setting = VisibilitySettingCreate(
            entity_type=EntityType.OBJECTIVE,
            entity_id="m1-objective-0",
            is_public=True,
            parent_journey_slug="js-basics",
            parent_milestone_id="m1",
            content_public=True,
            updated_by="admin_1",
        )

        await repo.set(setting)
        result = await repo.get(EntityType.OBJECTIVE, "m1-objective-0")

        assert result is not None
        assert result.model_dump(
            exclude={"id", "created_at", "updated_at"}
        ) == setting.model_dump()

    async def test_upsert_keeps_id_and_created_at(self, db_session: AsyncSession):
        repo = VisibilityRepository(db_session)
        first = await repo.set(journey_setting("js-basics", is_public=True))

        second = await repo.set(
            journey_setting("js-basics", is_public=False, admin="admin_2")
        )

        assert second.id == first.id
        assert second.created_at == first.created_at
        assert second.updated_at >= first.updated_at
        assert second.is_public is False
        assert second.updated_by == "admin_2"

    async def test_exactly_one_record_per_key(self, db_session: AsyncSession):
        repo = VisibilityRepository(db_session)

        for is_public in (True, False, True):
            await repo.set(journey_setting("js-basics", is_public=is_public))

        count = await db_session.scalar(
            select(func.count()).select_from(VisibilitySetting)
        )
        assert count == 1


class TestVisibilityRepositorySetBatch:
    """Tests for VisibilityRepository.set_batch()."""

    async def test_empty_input_returns_empty_list(self, db_session: AsyncSession):
        repo = VisibilityRepository(db_session)

        assert await repo.set_batch([]) == []

    async def test_writes_all_in_input_order(self, db_session: AsyncSession):
        repo = VisibilityRepository(db_session)
        await repo.set(journey_setting("b", is_public=False))

        results = await repo.set_batch(
            [journey_setting("c"), journey_setting("b"), journey_setting("a")]
        )

        assert [r.entity_id for r in results] == ["c", "b", "a"]
        assert all(r.is_public for r in results)

    async def test_duplicate_keys_last_wins(self, db_session: AsyncSession):
        repo = VisibilityRepository(db_session)

        results = await repo.set_batch(
            [
                journey_setting("a", is_public=True),
                journey_setting("a", is_public=False),
            ]
        )

        assert len(results) == 1
        assert results[0].is_public is False


class TestVisibilityRepositoryFindPublic:
    """Tests for VisibilityRepository.find_public()."""

    async def test_returns_directly_public_ids_of_type(self, db_session: AsyncSession):
        await create_async(
            VisibilitySettingFactory, db_session, entity_id="public-a", is_public=True
        )
        await create_async(
            VisibilitySettingFactory, db_session, entity_id="private-b", is_public=False
        )
        await create_async(
            MilestoneVisibilityFactory, db_session, entity_id="m1", is_public=True
        )
        repo = VisibilityRepository(db_session)

        assert await repo.find_public(EntityType.JOURNEY) == ["public-a"]

    async def test_does_not_resolve_ancestors(self, db_session: AsyncSession):
        """A public milestone under a private journey is still listed."""
        await create_async(
            VisibilitySettingFactory, db_session, entity_id="js-basics", is_public=False
        )
        await create_async(
            MilestoneVisibilityFactory, db_session, entity_id="m1", is_public=True
        )
        repo = VisibilityRepository(db_session)

        assert await repo.find_public(EntityType.MILESTONE) == ["m1"]


class TestVisibilityRepositoryFindByParent:
    """Tests for VisibilityRepository.find_by_parent()."""

    async def test_milestones_scoped_by_journey_slug(self, db_session: AsyncSession):
        await create_async(MilestoneVisibilityFactory, db_session, entity_id="m1")
        await create_async(
            MilestoneVisibilityFactory,
            db_session,
            entity_id="other-m1",
            parent_journey_slug="python-basics",
        )
        repo = VisibilityRepository(db_session)

        result = await repo.find_by_parent(EntityType.MILESTONE, "js-basics")

        assert [s.entity_id for s in result] == ["m1"]

    async def test_objectives_scoped_by_milestone_id(self, db_session: AsyncSession):
        await create_async(
            ObjectiveVisibilityFactory, db_session, entity_id="m1-objective-0"
        )
        await create_async(
            ObjectiveVisibilityFactory,
            db_session,
            entity_id="m2-objective-0",
            parent_milestone_id="m2",
        )
        repo = VisibilityRepository(db_session)

        result = await repo.find_by_parent(EntityType.OBJECTIVE, "m1")

        assert [s.entity_id for s in result] == ["m1-objective-0"]

    async def test_objectives_not_scoped_by_journey_slug(
        self, db_session: AsyncSession
    ):
        """Objectives use the milestone id as parent key, not the journey slug."""
        await create_async(ObjectiveVisibilityFactory, db_session)
        repo = VisibilityRepository(db_session)

        assert await repo.find_by_parent(EntityType.OBJECTIVE, "js-basics") == []

    async def test_journeys_have_no_parent(self, db_session: AsyncSession):
        await create_async(VisibilitySettingFactory, db_session)
        repo = VisibilityRepository(db_session)

        assert await repo.find_by_parent(EntityType.JOURNEY, "anything") == []


class TestVisibilityRepositoryRemoveAndExists:
    """Tests for VisibilityRepository.remove() and exists()."""

    async def test_remove_existing_returns_true(self, db_session: AsyncSession):
        await create_async(VisibilitySettingFactory, db_session, entity_id="gone")
        repo = VisibilityRepository(db_session)

        assert await repo.remove(EntityType.JOURNEY, "gone") is True
        assert await repo.exists(EntityType.JOURNEY, "gone") is False

    async def test_remove_missing_returns_false(self, db_session: AsyncSession):
        repo = VisibilityRepository(db_session)

        assert await repo.remove(EntityType.JOURNEY, "never-there") is False

    async def test_exists(self, db_session: AsyncSession):
        await create_async(VisibilitySettingFactory, db_session, entity_id="here")
        repo = VisibilityRepository(db_session)

        assert await repo.exists(EntityType.JOURNEY, "here") is True
        assert await repo.exists(EntityType.MILESTONE, "here") is False

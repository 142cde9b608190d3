"""Visibility repository: one direct visibility record per (entity_type, entity_id).

The repository knows nothing about the journey hierarchy. Effective visibility
is resolved in services.visibility_service.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import EntityType, VisibilitySetting, new_id
from repositories.utils import dialect_insert, log_slow_query
from schemas import VisibilitySettingCreate, VisibilitySettingData

_UPDATABLE_FIELDS = (
    "is_public",
    "parent_journey_slug",
    "parent_milestone_id",
    "content_public",
    "updated_by",
    "updated_at",
)


def _to_data(row: VisibilitySetting) -> VisibilitySettingData:
    return VisibilitySettingData.model_validate(row)


class VisibilityRepository:
    """Repository for VisibilitySetting database operations.

    Does NOT commit. The caller owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("visibility_get")
    async def get(
        self, entity_type: EntityType, entity_id: str
    ) -> VisibilitySettingData | None:
        """Get the visibility record for one entity."""
        row = await self._get_row(entity_type, entity_id)
        return _to_data(row) if row else None

    @log_slow_query("visibility_get_batch")
    async def get_batch(
        self, entity_type: EntityType, entity_ids: Sequence[str]
    ) -> dict[str, VisibilitySettingData]:
        """Get records for many entities of one type, keyed by entity_id.

        Missing IDs are absent from the result. Empty input skips the query.
        """
        if not entity_ids:
            return {}
        result = await self.db.execute(
            select(VisibilitySetting).where(
                VisibilitySetting.entity_type == entity_type,
                VisibilitySetting.entity_id.in_(set(entity_ids)),
            )
        )
        return {row.entity_id: _to_data(row) for row in result.scalars().all()}

    @log_slow_query("visibility_set")
    async def set(self, setting: VisibilitySettingCreate) -> VisibilitySettingData:
        """Insert or update the record for setting's (entity_type, entity_id).

        On conflict every field except id and created_at is overwritten and
        updated_at is refreshed.
        """
        results = await self._upsert([setting])
        return results[0]

    @log_slow_query("visibility_set_batch")
    async def set_batch(
        self, settings: Sequence[VisibilitySettingCreate]
    ) -> list[VisibilitySettingData]:
        """Upsert many records in one statement.

        Later entries win when the same key appears twice. Cross-record
        atomicity is whatever the surrounding transaction provides; callers
        that need strict consistency re-read with get_batch.
        """
        if not settings:
            return []
        return await self._upsert(settings)

    @log_slow_query("visibility_find_public")
    async def find_public(self, entity_type: EntityType) -> list[str]:
        """Entity IDs of this type whose direct flag is public.

        Does not resolve ancestors.
        """
        result = await self.db.execute(
            select(VisibilitySetting.entity_id)
            .where(
                VisibilitySetting.entity_type == entity_type,
                VisibilitySetting.is_public.is_(True),
            )
            .order_by(VisibilitySetting.entity_id)
        )
        return list(result.scalars().all())

    @log_slow_query("visibility_find_by_parent")
    async def find_by_parent(
        self, entity_type: EntityType, parent_id: str
    ) -> list[VisibilitySettingData]:
        """Records scoped under a parent.

        Milestones are scoped by parent journey slug, objectives by parent
        milestone (node) id. Journeys have no parent and return [].
        """
        if entity_type == EntityType.MILESTONE:
            parent_column = VisibilitySetting.parent_journey_slug
        elif entity_type == EntityType.OBJECTIVE:
            parent_column = VisibilitySetting.parent_milestone_id
        else:
            return []

        result = await self.db.execute(
            select(VisibilitySetting)
            .where(
                VisibilitySetting.entity_type == entity_type,
                parent_column == parent_id,
            )
            .order_by(VisibilitySetting.entity_id)
        )
        return [_to_data(row) for row in result.scalars().all()]

    @log_slow_query("visibility_remove")
    async def remove(self, entity_type: EntityType, entity_id: str) -> bool:
        """Delete the record. Returns True if a record existed."""
        result = await self.db.execute(
            delete(VisibilitySetting).where(
                VisibilitySetting.entity_type == entity_type,
                VisibilitySetting.entity_id == entity_id,
            )
        )
        return (result.rowcount or 0) > 0

    @log_slow_query("visibility_exists")
    async def exists(self, entity_type: EntityType, entity_id: str) -> bool:
        result = await self.db.execute(
            select(func.count())
            .select_from(VisibilitySetting)
            .where(
                VisibilitySetting.entity_type == entity_type,
                VisibilitySetting.entity_id == entity_id,
            )
        )
        return result.scalar_one() > 0

    async def _get_row(
        self, entity_type: EntityType, entity_id: str
    ) -> VisibilitySetting | None:
        result = await self.db.execute(
            select(VisibilitySetting)
            .where(
                VisibilitySetting.entity_type == entity_type,
                VisibilitySetting.entity_id == entity_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _upsert(
        self, settings: Sequence[VisibilitySettingCreate]
    ) -> list[VisibilitySettingData]:
        now = datetime.now(UTC)

        # Postgres rejects ON CONFLICT touching the same row twice in one
        # statement, so collapse duplicates (last one wins).
        deduped: dict[tuple[EntityType, str], VisibilitySettingCreate] = {}
        for setting in settings:
            deduped[(setting.entity_type, setting.entity_id)] = setting

        rows: list[dict[str, Any]] = [
            {
                **setting.model_dump(),
                "id": new_id(),
                "created_at": now,
                "updated_at": now,
            }
            for setting in deduped.values()
        ]

        insert_stmt = dialect_insert(self.db, VisibilitySetting)
        if insert_stmt is not None:
            stmt = insert_stmt.values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=["entity_type", "entity_id"],
                set_={field: stmt.excluded[field] for field in _UPDATABLE_FIELDS},
            )
            await self.db.execute(stmt)
        else:
            for values in rows:
                existing = await self._get_row(
                    values["entity_type"], values["entity_id"]
                )
                if existing is None:
                    self.db.add(VisibilitySetting(**values))
                else:
                    for field in _UPDATABLE_FIELDS:
                        setattr(existing, field, values[field])
            await self.db.flush()

        written = await self._fetch_keys(list(deduped))
        return [written[key] for key in deduped if key in written]

    async def _fetch_keys(
        self, keys: list[tuple[EntityType, str]]
    ) -> dict[tuple[EntityType, str], VisibilitySettingData]:
        ids_by_type: dict[EntityType, list[str]] = {}
        for entity_type, entity_id in keys:
            ids_by_type.setdefault(entity_type, []).append(entity_id)

        result = await self.db.execute(
            select(VisibilitySetting)
            .where(
                or_(
                    *(
                        and_(
                            VisibilitySetting.entity_type == entity_type,
                            VisibilitySetting.entity_id.in_(entity_ids),
                        )
                        for entity_type, entity_ids in ids_by_type.items()
                    )
                )
            )
            .execution_options(populate_existing=True)
        )
        return {
            (row.entity_type, row.entity_id): _to_data(row)
            for row in result.scalars().all()
        }

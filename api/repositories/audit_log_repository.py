"""Audit log repository for database operations."""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import AuditLog, EntityType
from repositories.utils import log_slow_query


class AuditLogRepository:
    """Repository for AuditLog database operations.

    Entries are append-only: there is no update method, and delete exists
    only for the retention job.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("audit_log_add")
    async def add(
        self,
        action: str,
        admin_user_id: str,
        *,
        target_user_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Insert one entry inside a SAVEPOINT.

        A failed insert rolls back only the savepoint, leaving the caller's
        transaction usable.
        """
        entry = AuditLog(
            action=action,
            admin_user_id=admin_user_id,
            target_user_id=target_user_id,
            details=details,
        )
        async with self.db.begin_nested():
            self.db.add(entry)
            await self.db.flush()
        return entry

    @log_slow_query("audit_log_query")
    async def query(
        self,
        *,
        action: str | None = None,
        admin_user_id: str | None = None,
        target_user_id: str | None = None,
        entity_type: EntityType | None = None,
        entity_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[AuditLog]:
        """Entries matching every given filter, newest first.

        entity_type/entity_id match keys inside details, so they only
        narrow visibility_change entries.
        """
        stmt = select(AuditLog)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if admin_user_id:
            stmt = stmt.where(AuditLog.admin_user_id == admin_user_id)
        if target_user_id:
            stmt = stmt.where(AuditLog.target_user_id == target_user_id)
        if entity_type:
            stmt = stmt.where(
                AuditLog.details["entity_type"].as_string() == entity_type.value
            )
        if entity_id:
            stmt = stmt.where(AuditLog.details["entity_id"].as_string() == entity_id)
        if start_date:
            stmt = stmt.where(AuditLog.created_at >= start_date)
        if end_date:
            stmt = stmt.where(AuditLog.created_at <= end_date)

        stmt = (
            stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @log_slow_query("audit_log_delete_older_than")
    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete entries created before cutoff. Returns the number removed."""
        result = await self.db.execute(
            delete(AuditLog).where(AuditLog.created_at < cutoff)
        )
        return result.rowcount or 0

"""Admin audit log.

Every write is best-effort: a failed audit insert is logged and recorded on
the wide event but never raised, so an audit outage cannot block the admin
action being audited. The insert runs in a SAVEPOINT, so a failure leaves
the caller's transaction intact.

Retention is a storage concern (see scripts/purge_audit_logs.py).
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger
from core.wide_event import set_wide_event_fields
from models import EntityType
from repositories.audit_log_repository import AuditLogRepository
from schemas import (
    VISIBILITY_CHANGE_ACTION,
    AuditLogEntry,
    AuditLogQuery,
    VisibilityChangeLogEntry,
)

logger = get_logger(__name__)

SYSTEM_ACTOR = "SYSTEM"


async def _record(
    db: AsyncSession,
    action: str,
    admin_user_id: str,
    target_user_id: str | None,
    details: dict[str, Any] | None,
) -> None:
    try:
        await AuditLogRepository(db).add(
            action,
            admin_user_id,
            target_user_id=target_user_id,
            details=details,
        )
    except Exception as e:
        logger.exception(
            "audit_log.write_failed",
            audit_action=action,
            admin_user_id=admin_user_id,
            target_user_id=target_user_id,
        )
        set_wide_event_fields(
            audit_log_write_failed=True,
            audit_log_error_type=type(e).__name__,
        )


async def log_admin_action(
    db: AsyncSession,
    action: str,
    admin_user_id: str,
    target_user_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Record an admin action. Never raises."""
    await _record(db, action, admin_user_id, target_user_id, details)


async def log_system_action(
    db: AsyncSession,
    action: str,
    target_user_id: str,
    details: dict[str, Any] | None = None,
) -> None:
    """Record an action taken by the system rather than a person. Never raises."""
    await _record(db, action, SYSTEM_ACTOR, target_user_id, details)


async def log_visibility_change(
    db: AsyncSession,
    admin_id: str,
    entity_type: EntityType,
    entity_id: str,
    old_value: bool | None,
    new_value: bool,
    parent_journey_slug: str | None = None,
    parent_milestone_id: str | None = None,
) -> None:
    """Record one visibility change. Never raises.

    old_value is None when no setting existed before. Parent keys are left
    out of details when not supplied.
    """
    details: dict[str, Any] = {
        "entity_type": entity_type.value,
        "entity_id": entity_id,
        "old_value": old_value,
        "new_value": new_value,
    }
    if parent_journey_slug:
        details["parent_journey_slug"] = parent_journey_slug
    if parent_milestone_id:
        details["parent_milestone_id"] = parent_milestone_id

    await _record(db, VISIBILITY_CHANGE_ACTION, admin_id, None, details)


async def query_audit_logs(
    db: AsyncSession, filters: AuditLogQuery
) -> list[AuditLogEntry]:
    """Audit entries of any action, newest first."""
    rows = await AuditLogRepository(db).query(
        action=filters.action,
        admin_user_id=filters.admin_user_id,
        target_user_id=filters.target_user_id,
        entity_type=filters.entity_type,
        entity_id=filters.entity_id,
        start_date=filters.start_date,
        end_date=filters.end_date,
        skip=filters.skip,
        limit=filters.limit,
    )
    return [AuditLogEntry.model_validate(row) for row in rows]


async def query_visibility_change_logs(
    db: AsyncSession, filters: AuditLogQuery
) -> list[VisibilityChangeLogEntry]:
    """Visibility change entries, newest first. filters.action is ignored."""
    rows = await AuditLogRepository(db).query(
        action=VISIBILITY_CHANGE_ACTION,
        admin_user_id=filters.admin_user_id,
        entity_type=filters.entity_type,
        entity_id=filters.entity_id,
        start_date=filters.start_date,
        end_date=filters.end_date,
        skip=filters.skip,
        limit=filters.limit,
    )
    return [VisibilityChangeLogEntry.model_validate(row) for row in rows]

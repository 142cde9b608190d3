"""Delete audit log entries older than the retention window.

PostgreSQL has no TTL index, so expiry runs as a scheduled job rather than
in the application:

    cd api
    python -m cli purge-audit-logs            # uses AUDIT_LOG_RETENTION_DAYS
    python -m cli purge-audit-logs --days 30 --dry-run
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func, select

from core.config import get_settings
from core.database import create_engine, create_session_maker, dispose_engine
from models import AuditLog, utcnow
from repositories.audit_log_repository import AuditLogRepository


def retention_cutoff(retention_days: int, now: datetime | None = None) -> datetime:
    """Entries created before this moment are past retention."""
    if retention_days < 1:
        raise ValueError("retention_days must be at least 1")
    return (now or utcnow()) - timedelta(days=retention_days)


async def purge_audit_logs(
    retention_days: int | None = None, *, dry_run: bool = False
) -> int:
    """Delete (or with dry_run, count) entries past retention.

    Returns the number of entries affected.
    """
    if retention_days is None:
        retention_days = get_settings().audit_log_retention_days
    cutoff = retention_cutoff(retention_days)

    engine = create_engine()
    session_maker = create_session_maker(engine)
    try:
        async with session_maker() as session:
            if dry_run:
                result = await session.execute(
                    select(func.count())
                    .select_from(AuditLog)
                    .where(AuditLog.created_at < cutoff)
                )
                return result.scalar_one()

            removed = await AuditLogRepository(session).delete_older_than(cutoff)
            await session.commit()
            return removed
    finally:
        await dispose_engine(engine)

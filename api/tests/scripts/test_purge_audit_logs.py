"""Tests for the audit log retention purge job."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.config import clear_settings_cache
from models import AuditLog
from scripts.purge_audit_logs import purge_audit_logs, retention_cutoff
from tests.factories import AuditLogFactory, create_async

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.mark.unit
class TestRetentionCutoff:
    def test_subtracts_days(self):
        assert retention_cutoff(30, now=NOW) == datetime(2026, 1, 30, 12, 0, tzinfo=UTC)

    @pytest.mark.parametrize("days", [0, -5])
    def test_rejects_non_positive(self, days):
        with pytest.raises(ValueError, match="at least 1"):
            retention_cutoff(days, now=NOW)


async def _seed_ages(
    session_maker: async_sessionmaker[AsyncSession], ages_in_days: list[int]
) -> None:
    now = datetime.now(UTC)
    async with session_maker() as session:
        for age in ages_in_days:
            await create_async(
                AuditLogFactory, session, created_at=now - timedelta(days=age)
            )
        await session.commit()


async def _count(session_maker: async_sessionmaker[AsyncSession]) -> int:
    async with session_maker() as session:
        result = await session.execute(select(func.count()).select_from(AuditLog))
        return result.scalar_one()


@pytest.mark.integration
class TestPurgeAuditLogs:
    """Runs the job against the test database instead of a fresh engine."""

    @pytest.fixture(autouse=True)
    def _use_test_engine(self, test_engine: AsyncEngine):
        with (
            patch(
                "scripts.purge_audit_logs.create_engine", return_value=test_engine
            ),
            patch("scripts.purge_audit_logs.dispose_engine", new=AsyncMock()),
        ):
            yield

    async def test_deletes_only_expired_entries(
        self, session_maker: async_sessionmaker[AsyncSession]
    ):
        await _seed_ages(session_maker, [1, 10, 45, 100])

        removed = await purge_audit_logs(30)

        assert removed == 2
        assert await _count(session_maker) == 2

    async def test_dry_run_counts_without_deleting(
        self, session_maker: async_sessionmaker[AsyncSession]
    ):
        await _seed_ages(session_maker, [1, 45, 100])

        would_remove = await purge_audit_logs(30, dry_run=True)

        assert would_remove == 2
        assert await _count(session_maker) == 3

    async def test_defaults_to_configured_retention(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        monkeypatch: pytest.MonkeyPatch,
    ):
        monkeypatch.setenv("AUDIT_LOG_RETENTION_DAYS", "7")
        clear_settings_cache()
        await _seed_ages(session_maker, [1, 8])

        removed = await purge_audit_logs()

        assert removed == 1

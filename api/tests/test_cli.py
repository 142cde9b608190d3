"""Unit tests for the management CLI."""

from unittest.mock import AsyncMock, patch

import pytest

import cli


@pytest.mark.unit
class TestCliDispatch:
    def test_no_command_prints_help(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.argv", ["cli"])

        assert cli.main() == 1
        assert "purge-audit-logs" in capsys.readouterr().out

    def test_migrate_runs_alembic_upgrade(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["cli", "migrate"])

        with patch("alembic.command.upgrade") as mock_upgrade:
            assert cli.main() == 0

        cfg, revision = mock_upgrade.call_args[0]
        assert revision == "head"
        assert cfg.get_main_option("script_location").endswith("alembic")

    def test_purge_passes_options(self, monkeypatch):
        monkeypatch.setattr(
            "sys.argv", ["cli", "purge-audit-logs", "--days", "30", "--dry-run"]
        )
        mock_purge = AsyncMock(return_value=4)

        with patch("scripts.purge_audit_logs.purge_audit_logs", mock_purge):
            assert cli.main() == 0

        mock_purge.assert_awaited_once_with(30, dry_run=True)

    def test_purge_defaults(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["cli", "purge-audit-logs"])
        mock_purge = AsyncMock(return_value=0)

        with patch("scripts.purge_audit_logs.purge_audit_logs", mock_purge):
            assert cli.main() == 0

        mock_purge.assert_awaited_once_with(None, dry_run=False)

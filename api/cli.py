#!/usr/bin/env python3
"""CLI for journey visibility API management tasks.

Usage:
    python -m cli <command>

Commands:
    migrate            Run database migrations
    purge-audit-logs   Delete audit entries older than the retention window
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def get_alembic_config():
    """Alembic config with paths resolved against this directory."""
    from alembic.config import Config

    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(api_dir / "alembic"))
    return cfg


def cmd_migrate() -> int:
    """Run database migrations."""
    from alembic import command

    logger.info("Running database migrations...")
    cfg = get_alembic_config()
    command.upgrade(cfg, "head")
    logger.info("Migrations complete")
    return 0


def cmd_purge_audit_logs(retention_days: int | None, dry_run: bool) -> int:
    """Delete audit entries past retention. Meant to run on a daily schedule."""
    from scripts.purge_audit_logs import purge_audit_logs

    removed = asyncio.run(purge_audit_logs(retention_days, dry_run=dry_run))
    verb = "Would delete" if dry_run else "Deleted"
    logger.info(f"{verb} {removed} audit log entries")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Journey Visibility API CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "migrate",
        help="Run database migrations",
    )
    purge = subparsers.add_parser(
        "purge-audit-logs",
        help="Delete audit entries older than the retention window",
    )
    purge.add_argument(
        "--days",
        type=int,
        default=None,
        help="Retention window in days (default: AUDIT_LOG_RETENTION_DAYS)",
    )
    purge.add_argument(
        "--dry-run",
        action="store_true",
        help="Count matching entries without deleting them",
    )

    args = parser.parse_args()

    if args.command == "migrate":
        return cmd_migrate()
    elif args.command == "purge-audit-logs":
        return cmd_purge_audit_logs(args.days, args.dry_run)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())

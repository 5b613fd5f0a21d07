"""
Out-of-band migration runner.

    securevault-migrate migrate
    securevault-migrate rollback --target 1
    securevault-migrate status
"""

import argparse
import logging
import sys

from securevault.core.config import settings
from securevault.core.database import Database
from securevault.core.logging_setup import setup_logging
from securevault.migrations.engine import MigrationEngine, MigrationError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="securevault-migrate", description="Manage the vault schema")
    sub = parser.add_subparsers(dest="action", required=True)
    sub.add_parser("migrate", help="Apply all pending migrations")
    rollback = sub.add_parser("rollback", help="Roll back to a target version")
    rollback.add_argument("--target", type=int, default=0, help="Version to roll back to (default 0)")
    sub.add_parser("status", help="Show the applied migration ledger")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings.LOG_LEVEL)

    database = Database(settings)
    try:
        engine = MigrationEngine(database.engine)
        if args.action == "migrate":
            engine.migrate()
        elif args.action == "rollback":
            engine.rollback(args.target)
        else:
            for row in engine.status():
                print(f"{row['version']:>4}  {row['name']:<32} {row['executed_at']}")
            print(f"Current version: {engine.current_version()}")
    except MigrationError as e:
        logger.error(str(e))
        return 1
    finally:
        database.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())

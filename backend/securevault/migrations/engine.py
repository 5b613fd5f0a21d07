"""
Versioned schema migrations over an integer ledger.

The ``migrations`` table records which definitions have been applied. Each
step runs its schema change and its ledger write in one transaction, so a
failing step leaves the ledger exactly as it was before that step while
earlier steps of the same run stay committed.

Runs are serialized: a process-wide lock per database URL, plus a
PostgreSQL advisory lock held for the whole run so separate processes can't
both read the same current version and apply a step twice.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from sqlalchemy import delete, func, insert, select, text
from sqlalchemy.engine import Engine

from securevault.migrations.versions import MIGRATIONS, Migration
from securevault.models.migration import MigrationRecord

logger = logging.getLogger(__name__)

# Arbitrary constant shared by every process that migrates this schema
ADVISORY_LOCK_KEY = 727_274_001

_process_locks: dict[str, threading.Lock] = {}
_process_locks_guard = threading.Lock()


class MigrationError(Exception):
    """A migration step failed; steps before it remain applied"""


class MigrationDefinitionError(MigrationError):
    """Definitions are not uniquely and strictly increasingly versioned"""


def validate_definitions(migrations: Sequence[Migration]) -> None:
    previous = 0
    for migration in migrations:
        if migration.version <= previous:
            raise MigrationDefinitionError(
                f"Migration {migration.name!r} has version {migration.version}, "
                f"which does not follow version {previous}"
            )
        previous = migration.version


def _lock_for(url: str) -> threading.Lock:
    with _process_locks_guard:
        return _process_locks.setdefault(url, threading.Lock())


class MigrationEngine:
    def __init__(self, engine: Engine, migrations: Optional[Sequence[Migration]] = None):
        self.engine = engine
        self.migrations = list(MIGRATIONS if migrations is None else migrations)
        validate_definitions(self.migrations)
        self._ledger = MigrationRecord.__table__

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Hold the migration gate for the duration of a run"""
        lock = _lock_for(str(self.engine.url))
        with lock:
            if self.engine.dialect.name != "postgresql":
                yield
                return

            # Session-level advisory lock lives on its own connection so it
            # spans the per-step transactions
            with self.engine.connect() as lock_conn:
                lock_conn.execute(text("SELECT pg_advisory_lock(:key)"), {"key": ADVISORY_LOCK_KEY})
                lock_conn.commit()
                try:
                    yield
                finally:
                    lock_conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": ADVISORY_LOCK_KEY})
                    lock_conn.commit()

    def _ensure_ledger(self) -> None:
        with self.engine.begin() as conn:
            self._ledger.create(conn, checkfirst=True)

    def _read_version(self) -> int:
        with self.engine.connect() as conn:
            version = conn.execute(select(func.max(self._ledger.c.version))).scalar()
        return version or 0

    def current_version(self) -> int:
        """Highest applied version, or 0 when nothing has been applied"""
        self._ensure_ledger()
        return self._read_version()

    def pending(self) -> list[Migration]:
        current = self.current_version()
        return [m for m in self.migrations if m.version > current]

    def migrate(self) -> list[Migration]:
        """
        Apply every pending migration in ascending version order.

        Returns the migrations applied by this call; an empty list means the
        schema was already current. Stops at the first failing step and
        raises MigrationError.
        """
        with self._exclusive():
            self._ensure_ledger()
            current = self._read_version()
            pending = [m for m in self.migrations if m.version > current]

            if not pending:
                logger.info("No pending migrations")
                return []

            logger.info(f"Running {len(pending)} pending migrations...")
            applied = []
            for migration in pending:
                logger.info(f"Running migration {migration.version}: {migration.name}")
                try:
                    with self.engine.begin() as conn:
                        migration.up(conn)
                        conn.execute(
                            insert(self._ledger).values(version=migration.version, name=migration.name)
                        )
                except Exception as e:
                    logger.error(f"Migration {migration.version} ({migration.name}) failed: {e}")
                    raise MigrationError(
                        f"Migration {migration.version} ({migration.name}) failed"
                    ) from e
                applied.append(migration)

            logger.info("All migrations completed successfully")
            return applied

    def rollback(self, target_version: int = 0) -> list[Migration]:
        """
        Roll back applied migrations above ``target_version``, newest first.

        Returns the migrations rolled back; rolling back to a version at or
        above the current one is a no-op.
        """
        if target_version < 0:
            raise MigrationError(f"Invalid rollback target {target_version}")

        with self._exclusive():
            self._ensure_ledger()
            current = self._read_version()

            if current <= target_version:
                logger.info("No migrations to rollback")
                return []

            to_rollback = sorted(
                (m for m in self.migrations if target_version < m.version <= current),
                key=lambda m: m.version,
                reverse=True,
            )

            logger.info(f"Rolling back {len(to_rollback)} migrations...")
            rolled_back = []
            for migration in to_rollback:
                logger.info(f"Rolling back migration {migration.version}: {migration.name}")
                try:
                    with self.engine.begin() as conn:
                        migration.down(conn)
                        conn.execute(
                            delete(self._ledger).where(self._ledger.c.version == migration.version)
                        )
                except Exception as e:
                    logger.error(f"Rollback of migration {migration.version} ({migration.name}) failed: {e}")
                    raise MigrationError(
                        f"Rollback of migration {migration.version} ({migration.name}) failed"
                    ) from e
                rolled_back.append(migration)

            logger.info("Rollback completed successfully")
            return rolled_back

    def status(self) -> list[dict]:
        """Applied ledger rows ordered by version"""
        self._ensure_ledger()
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(
                    self._ledger.c.version,
                    self._ledger.c.name,
                    self._ledger.c.executed_at,
                ).order_by(self._ledger.c.version)
            ).mappings().all()
        return [dict(row) for row in rows]

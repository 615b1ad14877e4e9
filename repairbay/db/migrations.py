"""Versioned schema migrations tracked in the ``__migrations`` table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from repairbay.db.database import Database
from repairbay.exceptions import MigrationError

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = "__migrations"

MigrationAction = Callable[[Database], None]


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    action: MigrationAction


def run_statements(db: Database, *statements: str) -> None:
    """Execute DDL/DML statements one by one (keeps them inside the caller's transaction)."""
    for sql in statements:
        db.execute(sql)


class MigrationEngine:
    """
    Applies registered migrations exactly once, in ascending version order.

    Each migration runs in its own transaction together with the insert into
    the tracking table, so a failure leaves the database at the last
    successfully committed version and the same migration is retried on the
    next run.
    """

    def __init__(self, db: Database, migrations: Optional[Iterable[Migration]] = None):
        self._db = db
        self._migrations: dict[int, Migration] = {}
        self._ensure_table()
        if migrations:
            self.register(migrations)

    def _ensure_table(self) -> None:
        if self._db.table_exists(MIGRATIONS_TABLE):
            return
        self._db.execute(
            f"""CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
                    version    INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )"""
        )

    # -- Registration ----------------------------------------------------------

    def add(self, version: int, description: str, action: MigrationAction) -> None:
        if version in self._migrations:
            raise ValueError(f"Duplicate migration version: {version}")
        if version < 1:
            raise ValueError(f"Migration versions start at 1, got {version}")
        self._migrations[version] = Migration(version, description, action)

    def register(self, migrations: Iterable[Migration]) -> None:
        for m in migrations:
            self.add(m.version, m.description, m.action)

    # -- State -----------------------------------------------------------------

    def current_version(self) -> int:
        value = self._db.execute_scalar(f"SELECT MAX(version) FROM {MIGRATIONS_TABLE}")
        return int(value) if value is not None else 0

    def latest_version(self) -> int:
        return max(self._migrations, default=0)

    def pending(self) -> list[Migration]:
        current = self.current_version()
        return [m for v, m in sorted(self._migrations.items()) if v > current]

    def applied(self) -> list[dict]:
        return self._db.query(
            f"SELECT version, applied_at FROM {MIGRATIONS_TABLE} ORDER BY version"
        )

    # -- Execution -------------------------------------------------------------

    def run(self) -> list[int]:
        """Apply pending migrations; returns the versions applied by this call."""
        applied: list[int] = []
        for migration in self.pending():
            logger.info(
                f"Running migration {migration.version} on {self._db.path.name}: "
                f"{migration.description}"
            )
            try:
                with self._db.transaction():
                    migration.action(self._db)
                    self._db.execute(
                        f"INSERT INTO {MIGRATIONS_TABLE} (version, applied_at) VALUES (?, ?)",
                        (
                            migration.version,
                            datetime.now(timezone.utc).isoformat(),
                        ),
                    )
            except Exception as e:
                logger.error(f"Migration {migration.version} failed: {e}")
                raise MigrationError(
                    migration.version,
                    migration.description,
                    f"Migration {migration.version} ({migration.description}) failed: {e}",
                ) from e
            logger.info(f"Migration {migration.version} completed")
            applied.append(migration.version)
        return applied

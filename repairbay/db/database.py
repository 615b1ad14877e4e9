"""Core database connection with scoped transaction support."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Optional, Sequence

from repairbay.exceptions import (
    ConstraintViolation,
    QueryError,
    StorageConnectionError,
    StorageError,
)

logger = logging.getLogger(__name__)

Params = Sequence[Any]


class Transaction:
    """
    Scoped transaction token.

    Exactly one of ``commit()`` / ``rollback()`` takes effect.  A token that
    is closed (or used as a context manager and left) without either call is
    rolled back.  Tokens opened while another is active are SAVEPOINTs and
    must be completed innermost-first.
    """

    def __init__(self, db: "Database", savepoint: Optional[str]):
        self._db = db
        self._savepoint = savepoint
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def nested(self) -> bool:
        return self._savepoint is not None

    def execute(self, sql: str, params: Params = ()) -> int:
        return self._db.execute(sql, params)

    def commit(self) -> None:
        """Commit; if COMMIT itself fails (e.g. a deferred constraint) the scope is rolled back."""
        if self._completed:
            return
        self._db._check_innermost(self)
        try:
            if self._savepoint:
                self._db._raw(f"RELEASE SAVEPOINT {self._savepoint}")
            else:
                self._db._raw("COMMIT")
        except QueryError:
            self.rollback()
            raise
        self._db._finish(self)
        self._completed = True

    def rollback(self) -> None:
        if self._completed:
            return
        self._db._check_innermost(self)
        try:
            if self._savepoint:
                self._db._raw(f"ROLLBACK TO SAVEPOINT {self._savepoint}")
                self._db._raw(f"RELEASE SAVEPOINT {self._savepoint}")
            else:
                self._db._raw("ROLLBACK")
        finally:
            self._db._finish(self)
            self._completed = True

    def close(self) -> None:
        if not self._completed:
            self.rollback()

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Database:
    """
    SQLite connection handle with explicit transaction control.

    Owns exactly one connection to one on-disk file.  The connection runs in
    autocommit mode and the handle issues BEGIN / COMMIT / ROLLBACK itself,
    so DDL inside a migration is rolled back together with its DML.
    """

    def __init__(self, path: Path | str, journal_mode: str = "WAL"):
        self._conn: Optional[sqlite3.Connection] = None
        self._stack: list[Transaction] = []
        self.path: Path = Path(path)
        self.journal_mode = journal_mode
        self._open()

    # -- connection lifecycle --------------------------------------------------

    def _open(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.path), check_same_thread=False, isolation_level=None
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute(f"PRAGMA journal_mode = {self.journal_mode}")
        except (OSError, sqlite3.Error) as e:
            raise StorageConnectionError(f"Cannot open database at {self.path}: {e}") from e
        self._conn = conn
        logger.debug(f"Opened database {self.path}")

    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError(f"Database {self.path} is closed")
        return self._conn

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        return bool(self._stack)

    @property
    def total_changes(self) -> int:
        """Rows modified since the connection was opened."""
        return self.connection().total_changes

    def close(self) -> None:
        if self._conn is None:
            return
        if self._stack:
            # sqlite discards the uncommitted transaction when the connection closes
            logger.warning(f"Closing {self.path} with an open transaction; rolling back")
            self._stack.clear()
        self._conn.close()
        self._conn = None
        logger.debug(f"Closed database {self.path}")

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self) -> None:
        self.close()

    # -- transaction helpers ---------------------------------------------------

    def begin_transaction(self) -> Transaction:
        """Open a transaction (or a SAVEPOINT when one is already active)."""
        if self._stack:
            savepoint: Optional[str] = f"sp_{len(self._stack)}"
            self._raw(f"SAVEPOINT {savepoint}")
        else:
            savepoint = None
            self._raw("BEGIN")
        tx = Transaction(self, savepoint)
        self._stack.append(tx)
        return tx

    @contextmanager
    def transaction(self) -> Generator[Transaction, None, None]:
        """Unit of work: commits on success, rolls back on exception."""
        tx = self.begin_transaction()
        try:
            yield tx
        except BaseException:
            tx.close()
            raise
        else:
            tx.commit()

    def _check_innermost(self, tx: Transaction) -> None:
        if not self._stack or self._stack[-1] is not tx:
            raise StorageError("Transactions must be completed innermost-first")

    def _finish(self, tx: Transaction) -> None:
        self._check_innermost(tx)
        self._stack.pop()

    def _raw(self, sql: str) -> None:
        try:
            self.connection().execute(sql)
        except sqlite3.Error as e:
            raise QueryError(f"{sql} failed: {e}") from e

    # -- low-level query helpers -----------------------------------------------

    def _cursor(self, sql: str, params: Params) -> sqlite3.Cursor:
        try:
            return self.connection().execute(sql, tuple(params))
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(str(e)) from e
        except sqlite3.Error as e:
            raise QueryError(f"{e} (sql: {' '.join(sql.split())[:120]})") from e

    def execute(self, sql: str, params: Params = ()) -> int:
        """Run a statement and return the number of affected rows."""
        return max(self._cursor(sql, params).rowcount, 0)

    def execute_scalar(self, sql: str, params: Params = ()) -> Any:
        row = self._cursor(sql, params).fetchone()
        return row[0] if row else None

    def query(self, sql: str, params: Params = ()) -> list[dict[str, Any]]:
        rows = self._cursor(sql, params).fetchall()
        return [dict(r) for r in rows]

    def fetchone(self, sql: str, params: Params = ()) -> Optional[dict[str, Any]]:
        row = self._cursor(sql, params).fetchone()
        return dict(row) if row else None

    def table_exists(self, name: str) -> bool:
        return (
            self.execute_scalar(
                "SELECT name FROM sqlite_master WHERE type IN ('table', 'view') AND name = ?",
                (name,),
            )
            is not None
        )

    # -- maintenance -----------------------------------------------------------

    def backup_to(self, target: Path | str) -> Path:
        """Copy the committed database state to *target* using the online backup API."""
        target = Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        dst = sqlite3.connect(str(target))
        try:
            self.connection().backup(dst)
        except sqlite3.Error as e:
            raise QueryError(f"Backup of {self.path} to {target} failed: {e}") from e
        finally:
            dst.close()
        return target

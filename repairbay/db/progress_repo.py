"""Repository for procedure progress, repair history, statistics and preferences."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Any, Iterable, Optional

from repairbay.db.database import Database
from repairbay.db.migrations import MigrationEngine
from repairbay.db.schema import PROGRESS_MIGRATIONS
from repairbay.models.progress import (
    ProgressSummary,
    RepairLogEntry,
    RepairStatistics,
    parse_steps,
    serialize_steps,
)
from repairbay.models.rows import column, format_timestamp, to_utc, utc_now

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes", "on")


class ProgressRepository:
    """
    In-flight progress, append-only repair history and per-procedure statistics.

    ``repair_statistics`` is folded incrementally from ``repair_history``: the
    history insert and the statistics update share one transaction.
    """

    def __init__(self, db: Database):
        self._db = db

    def migrate(self) -> list[int]:
        return MigrationEngine(self._db, PROGRESS_MIGRATIONS).run()

    # -- Progress --------------------------------------------------------------

    def save_progress(self, procedure_id: str, engine_id: str, completed_steps: Iterable[int]) -> None:
        steps = serialize_steps(completed_steps)
        now = utc_now()
        self._db.execute(
            """INSERT INTO procedure_progress
               (procedure_id, engine_id, completed_steps, started_at, last_updated)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(procedure_id, engine_id) DO UPDATE SET
                   completed_steps = excluded.completed_steps,
                   last_updated = excluded.last_updated""",
            (procedure_id, engine_id, steps, now, now),
        )

    def load_progress(self, procedure_id: str, engine_id: str) -> list[int]:
        raw = self._db.execute_scalar(
            """SELECT completed_steps FROM procedure_progress
               WHERE procedure_id = ? AND engine_id = ?""",
            (procedure_id, engine_id),
        )
        return parse_steps(raw)

    def clear_progress(self, procedure_id: str, engine_id: str) -> bool:
        return self._db.execute(
            "DELETE FROM procedure_progress WHERE procedure_id = ? AND engine_id = ?",
            (procedure_id, engine_id),
        ) > 0

    def has_progress(self, procedure_id: str, engine_id: str) -> bool:
        count = self._db.execute_scalar(
            """SELECT COUNT(*) FROM procedure_progress
               WHERE procedure_id = ? AND engine_id = ? AND completed_steps != ''""",
            (procedure_id, engine_id),
        )
        return bool(count)

    def progress_percentage(self, procedure_id: str, engine_id: str, total_steps: int) -> float:
        if total_steps <= 0:
            return 0.0
        done = len(self.load_progress(procedure_id, engine_id))
        return min(done / total_steps, 1.0) * 100.0

    def list_all_progress(self) -> list[ProgressSummary]:
        rows = self._db.query(
            """SELECT * FROM procedure_progress
               WHERE completed_steps != ''
               ORDER BY last_updated DESC, id DESC"""
        )
        return [ProgressSummary.from_row(r) for r in rows]

    # -- Repair history --------------------------------------------------------

    def log_completed_repair(self, entry: RepairLogEntry) -> RepairLogEntry:
        """
        Append *entry* to history and fold it into the statistics for
        (procedure, engine).  Both writes commit together or not at all.
        """
        if to_utc(entry.completed_at) < to_utc(entry.started_at):
            raise ValueError(
                f"Repair for {entry.procedure_id} completes before it starts "
                f"({entry.started_at} > {entry.completed_at})"
            )
        duration = entry.compute_duration_minutes()
        logged = replace(entry, id=entry.id or str(uuid.uuid4()), duration_minutes=duration)
        completed_at = format_timestamp(logged.completed_at)

        with self._db.transaction():
            self._db.execute(
                """INSERT INTO repair_history
                   (id, procedure_id, procedure_name, engine_id, engine_name,
                    started_at, completed_at, duration_minutes, notes, rating)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                logged.to_params(),
            )
            self._db.execute(
                """INSERT INTO repair_statistics
                   (procedure_id, engine_id, times_completed, total_duration_minutes,
                    avg_duration_minutes, last_completed_at)
                   VALUES (?, ?, 1, ?, CAST(? AS REAL), ?)
                   ON CONFLICT(procedure_id, engine_id) DO UPDATE SET
                       times_completed = times_completed + 1,
                       total_duration_minutes = total_duration_minutes + excluded.total_duration_minutes,
                       avg_duration_minutes = CAST(total_duration_minutes + excluded.total_duration_minutes AS REAL)
                                              / (times_completed + 1),
                       last_completed_at = MAX(COALESCE(last_completed_at, ''), excluded.last_completed_at)""",
                (logged.procedure_id, logged.engine_id, duration, duration, completed_at),
            )
        logger.info(
            f"Logged repair {logged.id} ({logged.procedure_id} on {logged.engine_id}, {duration} min)"
        )
        return logged

    def get_history(self, engine_id: Optional[str] = None, limit: int = 50) -> list[RepairLogEntry]:
        clauses: list[str] = []
        params: list[Any] = []
        if engine_id:
            clauses.append("engine_id = ?")
            params.append(engine_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        rows = self._db.query(
            f"SELECT * FROM repair_history{where} ORDER BY completed_at DESC, id LIMIT ?",
            params,
        )
        return [RepairLogEntry.from_row(r) for r in rows]

    def history_for_procedure(
        self, procedure_id: str, engine_id: Optional[str] = None, limit: int = 50
    ) -> list[RepairLogEntry]:
        if engine_id:
            rows = self._db.query(
                """SELECT * FROM repair_history WHERE procedure_id = ? AND engine_id = ?
                   ORDER BY completed_at DESC, id LIMIT ?""",
                (procedure_id, engine_id, limit),
            )
        else:
            rows = self._db.query(
                """SELECT * FROM repair_history WHERE procedure_id = ?
                   ORDER BY completed_at DESC, id LIMIT ?""",
                (procedure_id, limit),
            )
        return [RepairLogEntry.from_row(r) for r in rows]

    def history_count(self) -> int:
        return int(self._db.execute_scalar("SELECT COUNT(*) FROM repair_history") or 0)

    def delete_history_entry(self, entry_id: str) -> bool:
        """
        Remove one history row.  Statistics are left as they are; call
        :meth:`rebuild_statistics` to reconcile them with the remaining history.
        """
        return self._db.execute("DELETE FROM repair_history WHERE id = ?", (entry_id,)) > 0

    # -- Statistics ------------------------------------------------------------

    def get_statistics(self, procedure_id: str, engine_id: str) -> Optional[RepairStatistics]:
        row = self._db.fetchone(
            "SELECT * FROM repair_statistics WHERE procedure_id = ? AND engine_id = ?",
            (procedure_id, engine_id),
        )
        return RepairStatistics.from_row(row) if row else None

    def rebuild_statistics(self) -> int:
        """Recompute every statistic from history; returns the number of (procedure, engine) pairs."""
        with self._db.transaction():
            self._db.execute("DELETE FROM repair_statistics")
            count = self._db.execute(
                """INSERT INTO repair_statistics
                   (procedure_id, engine_id, times_completed, total_duration_minutes,
                    avg_duration_minutes, last_completed_at)
                   SELECT procedure_id, engine_id, COUNT(*), SUM(duration_minutes),
                          CAST(SUM(duration_minutes) AS REAL) / COUNT(*), MAX(completed_at)
                   FROM repair_history
                   GROUP BY procedure_id, engine_id"""
            )
        logger.info(f"Rebuilt statistics for {count} procedure/engine pairs")
        return count

    # -- Preferences -----------------------------------------------------------

    def set_preference(self, key: str, value: Optional[str]) -> None:
        self._db.execute(
            """INSERT INTO preferences (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE
               SET value = excluded.value, updated_at = excluded.updated_at""",
            (key, value, utc_now()),
        )

    def get_preference(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._db.execute_scalar("SELECT value FROM preferences WHERE key = ?", (key,))
        return default if value is None else str(value)

    def get_preference_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_preference(key)
        if not value:
            return default
        return value.strip().lower() in _TRUE_VALUES

    def get_preference_int(self, key: str, default: int = 0) -> int:
        value = self.get_preference(key)
        if not value:
            return default
        try:
            return int(value.strip())
        except ValueError:
            return default

    def get_preference_float(self, key: str, default: float = 0.0) -> float:
        value = self.get_preference(key)
        if not value:
            return default
        try:
            return float(value.strip())
        except ValueError:
            return default

    def delete_preference(self, key: str) -> bool:
        return self._db.execute("DELETE FROM preferences WHERE key = ?", (key,)) > 0

    def get_all_preferences(self) -> dict[str, Optional[str]]:
        rows = self._db.query("SELECT key, value FROM preferences ORDER BY key")
        return {column(r, "key", str): column(r, "value", str, nullable=True) for r in rows}

    # -- Reset -----------------------------------------------------------------

    def clear_all_data(self) -> None:
        """
        Empty progress, history, statistics and preferences.  Each delete
        commits on its own; an interruption can leave the store partially
        cleared.
        """
        for table in ("procedure_progress", "repair_history", "repair_statistics", "preferences"):
            self._db.execute(f"DELETE FROM {table}")
        logger.warning(f"Cleared all progress data in {self._db.path.name}")

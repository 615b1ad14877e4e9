"""Schema migrations for the catalog (parts) and progress stores."""

from __future__ import annotations

from repairbay.db.database import Database
from repairbay.db.migrations import Migration, run_statements


# ==========================================================================
# Catalog store
# ==========================================================================

def _catalog_v1(db: Database) -> None:
    run_statements(
        db,
        """CREATE TABLE IF NOT EXISTS parts (
            id          TEXT PRIMARY KEY,
            name        TEXT NOT NULL,
            description TEXT,
            category    TEXT,
            image_path  TEXT,
            created_at  TEXT NOT NULL,
            updated_at  TEXT NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS part_specs (
            id         INTEGER PRIMARY KEY AUTOINCREMENT,
            part_id    TEXT NOT NULL REFERENCES parts(id) ON DELETE CASCADE,
            spec_key   TEXT NOT NULL,
            spec_value TEXT,
            UNIQUE(part_id, spec_key)
        )""",
        """CREATE TABLE IF NOT EXISTS part_cross_refs (
            id        INTEGER PRIMARY KEY AUTOINCREMENT,
            part_id   TEXT NOT NULL REFERENCES parts(id) ON DELETE CASCADE,
            ref_type  TEXT,
            ref_value TEXT NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS engine_parts (
            engine_id       TEXT NOT NULL,
            part_id         TEXT NOT NULL REFERENCES parts(id) ON DELETE CASCADE,
            model_node_name TEXT,
            PRIMARY KEY (engine_id, part_id)
        )""",
        "CREATE INDEX IF NOT EXISTS idx_parts_category ON parts(category)",
        "CREATE INDEX IF NOT EXISTS idx_parts_name ON parts(name)",
        "CREATE INDEX IF NOT EXISTS idx_part_specs_part ON part_specs(part_id)",
        "CREATE INDEX IF NOT EXISTS idx_part_cross_refs_part ON part_cross_refs(part_id)",
        "CREATE INDEX IF NOT EXISTS idx_engine_parts_part ON engine_parts(part_id)",
    )


def _catalog_v2(db: Database) -> None:
    # Shadow index: written explicitly by the repository on upsert,
    # removed by trigger when the part row goes away.
    run_statements(
        db,
        """CREATE VIRTUAL TABLE IF NOT EXISTS parts_fts USING fts5(
            id,
            name,
            description,
            category
        )""",
        """INSERT INTO parts_fts (id, name, description, category)
           SELECT id, name, COALESCE(description, ''), COALESCE(category, '') FROM parts""",
        """CREATE TRIGGER IF NOT EXISTS parts_fts_ad AFTER DELETE ON parts BEGIN
               DELETE FROM parts_fts WHERE id = old.id;
           END""",
    )


def _catalog_v3(db: Database) -> None:
    run_statements(
        db,
        "CREATE INDEX IF NOT EXISTS idx_part_cross_refs_value ON part_cross_refs(ref_value)",
    )


CATALOG_MIGRATIONS: list[Migration] = [
    Migration(1, "Create parts tables", _catalog_v1),
    Migration(2, "Add full-text search", _catalog_v2),
    Migration(3, "Index cross-reference values", _catalog_v3),
]


# ==========================================================================
# Progress store
# ==========================================================================

def _progress_v1(db: Database) -> None:
    run_statements(
        db,
        """CREATE TABLE IF NOT EXISTS procedure_progress (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            procedure_id    TEXT NOT NULL,
            engine_id       TEXT NOT NULL,
            completed_steps TEXT NOT NULL DEFAULT '',
            started_at      TEXT,
            last_updated    TEXT NOT NULL,
            UNIQUE(procedure_id, engine_id)
        )""",
        """CREATE TABLE IF NOT EXISTS repair_history (
            id               TEXT PRIMARY KEY,
            procedure_id     TEXT NOT NULL,
            procedure_name   TEXT,
            engine_id        TEXT NOT NULL,
            engine_name      TEXT,
            started_at       TEXT NOT NULL,
            completed_at     TEXT NOT NULL,
            duration_minutes INTEGER NOT NULL DEFAULT 0,
            notes            TEXT,
            rating           INTEGER CHECK(rating IS NULL OR (rating >= 1 AND rating <= 5))
        )""",
        """CREATE TABLE IF NOT EXISTS preferences (
            key        TEXT PRIMARY KEY,
            value      TEXT,
            updated_at TEXT NOT NULL
        )""",
        "CREATE INDEX IF NOT EXISTS idx_repair_history_engine ON repair_history(engine_id)",
        "CREATE INDEX IF NOT EXISTS idx_repair_history_date ON repair_history(completed_at DESC)",
    )


def _progress_v2(db: Database) -> None:
    run_statements(
        db,
        """CREATE TABLE IF NOT EXISTS repair_statistics (
            id                     INTEGER PRIMARY KEY AUTOINCREMENT,
            procedure_id           TEXT NOT NULL,
            engine_id              TEXT NOT NULL,
            times_completed        INTEGER NOT NULL DEFAULT 0,
            total_duration_minutes INTEGER NOT NULL DEFAULT 0,
            avg_duration_minutes   REAL NOT NULL DEFAULT 0,
            last_completed_at      TEXT,
            UNIQUE(procedure_id, engine_id)
        )""",
    )


def _progress_v3(db: Database) -> None:
    run_statements(
        db,
        """CREATE INDEX IF NOT EXISTS idx_repair_history_procedure
           ON repair_history(procedure_id, engine_id)""",
    )


PROGRESS_MIGRATIONS: list[Migration] = [
    Migration(1, "Create progress tables", _progress_v1),
    Migration(2, "Add statistics table", _progress_v2),
    Migration(3, "Index history by procedure", _progress_v3),
]

"""Repository for the parts catalog: parts, specs, cross-references, engine links and search."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from repairbay.db.database import Database
from repairbay.db.migrations import MigrationEngine
from repairbay.db.schema import CATALOG_MIGRATIONS
from repairbay.exceptions import ConstraintViolation
from repairbay.models.document import CatalogDocument, PartDocument, load_document, parse_document
from repairbay.models.part import Part
from repairbay.models.rows import column, utc_now

logger = logging.getLogger(__name__)


def build_match_query(text: str) -> str:
    """Turn free text into an FTS5 query: every term required, each as a quoted prefix."""
    terms = text.split()
    return " ".join('"' + t.replace('"', '""') + '"*' for t in terms)


class CatalogRepository:
    """
    Parts catalog persistence.

    ``parts_fts`` is a shadow of ``parts``: every write re-syncs it with a
    delete+insert pair in the same transaction as the part row, and the
    ``parts_fts_ad`` trigger removes it when a part is deleted.
    """

    def __init__(self, db: Database):
        self._db = db

    def migrate(self) -> list[int]:
        return MigrationEngine(self._db, CATALOG_MIGRATIONS).run()

    # -- Write -----------------------------------------------------------------

    def upsert(self, part: Part) -> Part:
        """Insert or update *part*, replacing its specs, cross-references and shadow entry."""
        with self._db.transaction():
            self._save(part, utc_now())
        logger.debug(f"Saved part {part.id}")
        return self.get(part.id)  # type: ignore[return-value]

    def _save(self, part: Part, now: str) -> None:
        self._db.execute(
            """INSERT INTO parts
               (id, name, description, category, image_path, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   name = excluded.name,
                   description = excluded.description,
                   category = excluded.category,
                   image_path = excluded.image_path,
                   updated_at = excluded.updated_at""",
            (part.id, part.name, part.description, part.category, part.image_path, now, now),
        )

        self._db.execute("DELETE FROM part_specs WHERE part_id = ?", (part.id,))
        for key, value in part.specs.items():
            self._db.execute(
                "INSERT INTO part_specs (part_id, spec_key, spec_value) VALUES (?, ?, ?)",
                (part.id, key, value),
            )

        self._db.execute("DELETE FROM part_cross_refs WHERE part_id = ?", (part.id,))
        for ref in part.cross_references:
            self._db.execute(
                "INSERT INTO part_cross_refs (part_id, ref_value) VALUES (?, ?)",
                (part.id, ref),
            )

        self._db.execute("DELETE FROM parts_fts WHERE id = ?", (part.id,))
        self._db.execute(
            "INSERT INTO parts_fts (id, name, description, category) VALUES (?, ?, ?, ?)",
            part.shadow_fields(),
        )

    def bulk_import(
        self,
        parts: Iterable[Part],
        engine_links: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> int:
        """
        Upsert every part (and its engine links) in one transaction.

        All-or-nothing: a failure on any part, including a part id repeated
        within the batch, rolls back the whole batch.
        """
        links = engine_links or {}
        seen: set[str] = set()
        now = utc_now()
        with self._db.transaction():
            for part in parts:
                if part.id in seen:
                    raise ConstraintViolation(f"Duplicate part id in import batch: {part.id}")
                seen.add(part.id)
                with self._db.transaction():
                    self._save(part, now)
                    for engine_id in links.get(part.id, ()):
                        self.associate(part.id, engine_id)
        logger.info(f"Imported {len(seen)} parts into {self._db.path.name}")
        return len(seen)

    def import_document(self, document: CatalogDocument | dict[str, Any]) -> int:
        """Validate a catalog document and apply it with :meth:`bulk_import`."""
        doc = parse_document(document)
        parts = [p.to_part() for p in doc.parts]
        links = {p.id: list(p.engines) for p in doc.parts if p.engines}
        return self.bulk_import(parts, links)

    def import_file(self, path: Path | str) -> int:
        return self.import_document(load_document(path))

    def associate(self, part_id: str, engine_id: str, model_node_name: Optional[str] = None) -> None:
        self._db.execute(
            """INSERT INTO engine_parts (engine_id, part_id, model_node_name)
               VALUES (?, ?, ?)
               ON CONFLICT(engine_id, part_id) DO UPDATE SET
                   model_node_name = excluded.model_node_name""",
            (engine_id, part_id, model_node_name),
        )

    def dissociate(self, part_id: str, engine_id: str) -> bool:
        return self._db.execute(
            "DELETE FROM engine_parts WHERE part_id = ? AND engine_id = ?",
            (part_id, engine_id),
        ) > 0

    def delete(self, part_id: str) -> bool:
        """Delete a part; specs, cross-refs, engine links and the shadow entry go with it."""
        with self._db.transaction():
            deleted = self._db.execute("DELETE FROM parts WHERE id = ?", (part_id,))
        if deleted:
            logger.debug(f"Deleted part {part_id}")
        return deleted > 0

    # -- Read ------------------------------------------------------------------

    def get(self, part_id: str) -> Optional[Part]:
        row = self._db.fetchone("SELECT * FROM parts WHERE id = ?", (part_id,))
        if row is None:
            return None
        part = Part.from_row(row)
        for spec in self._db.query(
            "SELECT spec_key, spec_value FROM part_specs WHERE part_id = ? ORDER BY id",
            (part_id,),
        ):
            part.specs[column(spec, "spec_key", str)] = column(spec, "spec_value", str, nullable=True)
        part.cross_references = [
            column(r, "ref_value", str)
            for r in self._db.query(
                "SELECT ref_value FROM part_cross_refs WHERE part_id = ? ORDER BY id",
                (part_id,),
            )
        ]
        return part

    def list_all(self) -> list[Part]:
        rows = self._db.query("SELECT * FROM parts ORDER BY name, id")
        return [Part.from_row(r) for r in rows]

    def search(self, query: str, limit: Optional[int] = None) -> list[Part]:
        """Prefix full-text search over id, name, description and category, best match first."""
        if not query or not query.strip():
            return []
        sql = """SELECT p.* FROM parts_fts
                 JOIN parts p ON p.id = parts_fts.id
                 WHERE parts_fts MATCH ?
                 ORDER BY parts_fts.rank, p.name"""
        params: list[Any] = [build_match_query(query)]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [Part.from_row(r) for r in self._db.query(sql, params)]

    def list_by_engine(self, engine_id: str) -> list[Part]:
        rows = self._db.query(
            """SELECT p.*, ep.model_node_name
               FROM parts p
               JOIN engine_parts ep ON p.id = ep.part_id
               WHERE ep.engine_id = ?
               ORDER BY p.name, p.id""",
            (engine_id,),
        )
        return [Part.from_row(r) for r in rows]

    def list_by_category(self, category: str) -> list[Part]:
        rows = self._db.query(
            "SELECT * FROM parts WHERE category = ? ORDER BY name, id", (category,)
        )
        return [Part.from_row(r) for r in rows]

    def list_categories(self) -> list[str]:
        rows = self._db.query(
            "SELECT DISTINCT category FROM parts WHERE category IS NOT NULL ORDER BY category"
        )
        return [column(r, "category", str) for r in rows]

    def engines_for_part(self, part_id: str) -> list[str]:
        rows = self._db.query(
            "SELECT engine_id FROM engine_parts WHERE part_id = ? ORDER BY engine_id",
            (part_id,),
        )
        return [column(r, "engine_id", str) for r in rows]

    def find_by_cross_reference(self, ref_value: str) -> list[Part]:
        """Parts listing *ref_value* as an alternate part number (exact match)."""
        rows = self._db.query(
            """SELECT DISTINCT p.* FROM parts p
               JOIN part_cross_refs r ON r.part_id = p.id
               WHERE r.ref_value = ?
               ORDER BY p.name, p.id""",
            (ref_value,),
        )
        return [Part.from_row(r) for r in rows]

    def count(self) -> int:
        return int(self._db.execute_scalar("SELECT COUNT(*) FROM parts") or 0)

    # -- Export ----------------------------------------------------------------

    def export_document(self) -> dict[str, Any]:
        """Whole catalog in the import document format."""
        docs: list[PartDocument] = []
        for summary in self.list_all():
            part = self.get(summary.id)
            if part is None:
                continue
            docs.append(PartDocument.from_part(part, self.engines_for_part(part.id)))
        return CatalogDocument(parts=docs).to_dict()

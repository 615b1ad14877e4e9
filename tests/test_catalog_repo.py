"""Unit tests for the catalog store: parts, search shadow, engine links, bulk import."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from repairbay.db.catalog_repo import CatalogRepository, build_match_query
from repairbay.db.database import Database
from repairbay.db.schema import CATALOG_MIGRATIONS
from repairbay.exceptions import ConstraintViolation, ImportDocumentError
from repairbay.models.document import parse_document
from repairbay.models.part import Part


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _sample_part(**overrides) -> Part:
    defaults = dict(
        id="wp-ls1",
        name="Water Pump",
        description="Mechanical water pump with gasket",
        category="Cooling",
        image_path="parts/wp.png",
        specs={"bolts": "6", "torque": "11 Nm"},
        cross_references=["GM-12345", "ACDelco-252-845"],
    )
    defaults.update(overrides)
    return Part(**defaults)


SAMPLE_DOCUMENT = {
    "parts": [
        {
            "id": "wp-ls1",
            "name": "Water Pump",
            "description": "Mechanical water pump",
            "category": "Cooling",
            "imagePath": "parts/wp.png",
            "specs": [{"key": "bolts", "value": 6}],
            "crossReferences": ["GM-12345"],
            "engines": ["ls1", "ls2"],
        },
        {
            "id": "tb-ls1",
            "name": "Thermostat",
            "category": "Cooling",
            "specs": {"opening_temp": "82C"},
            "engines": ["ls1"],
        },
        {
            "id": "sp-ls1",
            "name": "Spark Plug",
            "category": "Ignition",
        },
    ]
}


class _CatalogCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        self.db = Database(self.dir / "parts.db")
        self.repo = CatalogRepository(self.db)
        self.repo.migrate()

    def tearDown(self):
        self.db.close()
        self._tmp.cleanup()

    def _fts_rows(self, part_id: str) -> int:
        return self.db.execute_scalar("SELECT COUNT(*) FROM parts_fts WHERE id = ?", (part_id,))


# ===========================================================================
# 1. Schema
# ===========================================================================

class TestCatalogSchema(_CatalogCase):
    def test_tables_created(self):
        for name in ("parts", "part_specs", "part_cross_refs", "engine_parts", "parts_fts"):
            self.assertTrue(self.db.table_exists(name), name)

    def test_migrated_to_latest(self):
        version = self.db.execute_scalar("SELECT MAX(version) FROM __migrations")
        self.assertEqual(version, CATALOG_MIGRATIONS[-1].version)
        self.assertEqual(self.repo.migrate(), [])


# ===========================================================================
# 2. Upsert / get / delete
# ===========================================================================

class TestPartCrud(_CatalogCase):
    def test_upsert_and_get(self):
        saved = self.repo.upsert(_sample_part())
        self.assertEqual(saved.name, "Water Pump")
        self.assertEqual(saved.specs, {"bolts": "6", "torque": "11 Nm"})
        self.assertEqual(saved.cross_references, ["GM-12345", "ACDelco-252-845"])
        self.assertTrue(saved.created_at)
        self.assertEqual(self.repo.count(), 1)

    def test_get_missing_returns_none(self):
        self.assertIsNone(self.repo.get("nope"))

    def test_upsert_replaces_relations_and_keeps_created_at(self):
        first = self.repo.upsert(_sample_part())
        second = self.repo.upsert(
            _sample_part(name="Water Pump HD", specs={"bolts": "8"}, cross_references=["X-1"])
        )
        self.assertEqual(second.name, "Water Pump HD")
        self.assertEqual(second.specs, {"bolts": "8"})
        self.assertEqual(second.cross_references, ["X-1"])
        self.assertEqual(second.created_at, first.created_at)
        self.assertGreaterEqual(second.updated_at, first.updated_at)

    def test_upsert_keeps_exactly_one_shadow_entry(self):
        for i in range(3):
            self.repo.upsert(_sample_part(name=f"Pump {i}"))
        self.assertEqual(self._fts_rows("wp-ls1"), 1)
        self.assertEqual([p.name for p in self.repo.search("pump")], ["Pump 2"])

    def test_failed_update_keeps_previous_state(self):
        self.repo.upsert(_sample_part())
        with patch.object(Part, "shadow_fields", side_effect=RuntimeError("shadow write failed")):
            with self.assertRaises(RuntimeError):
                self.repo.upsert(
                    _sample_part(name="Water Pump HD", specs={"bolts": "8"}, cross_references=["X-1"])
                )
        self._assert_original_pump()

    def test_constraint_failure_on_update_keeps_previous_state(self):
        self.repo.upsert(_sample_part())
        with self.assertRaises(ConstraintViolation):
            self.repo.upsert(_sample_part(name=None, specs={"bolts": "8"}))
        self._assert_original_pump()

    def _assert_original_pump(self):
        part = self.repo.get("wp-ls1")
        self.assertEqual(part.name, "Water Pump")
        self.assertEqual(part.specs, {"bolts": "6", "torque": "11 Nm"})
        self.assertEqual(part.cross_references, ["GM-12345", "ACDelco-252-845"])
        self.assertEqual(self._fts_rows("wp-ls1"), 1)
        self.assertEqual(
            self.db.execute_scalar("SELECT name FROM parts_fts WHERE id = ?", ("wp-ls1",)),
            "Water Pump",
        )
        self.assertFalse(self.db.in_transaction)

    def test_delete_cascades(self):
        self.repo.upsert(_sample_part())
        self.repo.associate("wp-ls1", "ls1", "water_pump_mesh")
        self.assertTrue(self.repo.delete("wp-ls1"))
        self.assertIsNone(self.repo.get("wp-ls1"))
        for table in ("part_specs", "part_cross_refs", "engine_parts"):
            count = self.db.execute_scalar(f"SELECT COUNT(*) FROM {table} WHERE part_id = 'wp-ls1'")
            self.assertEqual(count, 0, table)
        self.assertEqual(self._fts_rows("wp-ls1"), 0)

    def test_delete_missing_returns_false(self):
        self.assertFalse(self.repo.delete("nope"))

    def test_list_all_ordered_by_name(self):
        self.repo.upsert(_sample_part(id="b", name="Thermostat"))
        self.repo.upsert(_sample_part(id="a", name="Alternator"))
        self.assertEqual([p.name for p in self.repo.list_all()], ["Alternator", "Thermostat"])

    def test_find_by_cross_reference(self):
        self.repo.upsert(_sample_part())
        self.assertEqual([p.id for p in self.repo.find_by_cross_reference("GM-12345")], ["wp-ls1"])
        self.assertEqual(self.repo.find_by_cross_reference("GM-1"), [])


# ===========================================================================
# 3. Search
# ===========================================================================

class TestSearch(_CatalogCase):
    def setUp(self):
        super().setUp()
        self.repo.upsert(_sample_part())
        self.repo.upsert(_sample_part(
            id="tb-ls1", name="Thermostat", description="Opens at 82C", category="Cooling",
            specs={}, cross_references=[],
        ))
        self.repo.upsert(_sample_part(
            id="sp-ls1", name="Spark Plug", description=None, category="Ignition",
            specs={}, cross_references=[],
        ))

    def test_empty_query_returns_nothing(self):
        self.assertEqual(self.repo.search(""), [])
        self.assertEqual(self.repo.search("   "), [])

    def test_prefix_match(self):
        self.assertEqual([p.id for p in self.repo.search("therm")], ["tb-ls1"])

    def test_all_terms_required(self):
        self.assertEqual([p.id for p in self.repo.search("water gasket")], ["wp-ls1"])
        self.assertEqual(self.repo.search("water thermostat"), [])

    def test_matches_category(self):
        self.assertEqual({p.id for p in self.repo.search("cooling")}, {"wp-ls1", "tb-ls1"})

    def test_limit(self):
        self.assertEqual(len(self.repo.search("cool", limit=1)), 1)

    def test_search_reflects_delete(self):
        self.repo.delete("sp-ls1")
        self.assertEqual(self.repo.search("spark"), [])

    def test_quotes_in_query_are_escaped(self):
        self.assertEqual(build_match_query('pump "hd'), '"pump"* """hd"*')
        self.assertEqual([p.id for p in self.repo.search('"water')], ["wp-ls1"])


# ===========================================================================
# 4. Engine links and categories
# ===========================================================================

class TestEngineLinks(_CatalogCase):
    def setUp(self):
        super().setUp()
        self.repo.upsert(_sample_part())
        self.repo.upsert(_sample_part(id="tb-ls1", name="Thermostat", category="Cooling"))
        self.repo.upsert(_sample_part(id="sp-ls1", name="Spark Plug", category="Ignition"))

    def test_list_by_engine_carries_label(self):
        self.repo.associate("wp-ls1", "ls1", "pump_mesh")
        self.repo.associate("sp-ls1", "ls1")
        parts = self.repo.list_by_engine("ls1")
        self.assertEqual([p.id for p in parts], ["sp-ls1", "wp-ls1"])
        self.assertIsNone(parts[0].model_node_name)
        self.assertEqual(parts[1].model_node_name, "pump_mesh")

    def test_associate_overwrites_label(self):
        self.repo.associate("wp-ls1", "ls1", "old")
        self.repo.associate("wp-ls1", "ls1", "new")
        parts = self.repo.list_by_engine("ls1")
        self.assertEqual(len(parts), 1)
        self.assertEqual(parts[0].model_node_name, "new")

    def test_associate_unknown_part_violates_foreign_key(self):
        with self.assertRaises(ConstraintViolation):
            self.repo.associate("ghost", "ls1")

    def test_dissociate(self):
        self.repo.associate("wp-ls1", "ls1")
        self.repo.associate("wp-ls1", "ls2")
        self.assertTrue(self.repo.dissociate("wp-ls1", "ls1"))
        self.assertFalse(self.repo.dissociate("wp-ls1", "ls1"))
        self.assertEqual(self.repo.engines_for_part("wp-ls1"), ["ls2"])

    def test_categories(self):
        self.assertEqual(self.repo.list_categories(), ["Cooling", "Ignition"])
        self.assertEqual(
            [p.id for p in self.repo.list_by_category("Cooling")], ["tb-ls1", "wp-ls1"]
        )


# ===========================================================================
# 5. Bulk import / documents
# ===========================================================================

class TestBulkImport(_CatalogCase):
    def test_imports_batch(self):
        parts = [_sample_part(id=f"p{i}", name=f"Part {i}") for i in range(10)]
        self.assertEqual(self.repo.bulk_import(parts, {"p0": ["ls1"]}), 10)
        self.assertEqual(self.repo.count(), 10)
        self.assertEqual(self.repo.engines_for_part("p0"), ["ls1"])

    def test_duplicate_id_rolls_back_whole_batch(self):
        parts = [_sample_part(id=f"p{i}", name=f"Part {i}") for i in range(10)]
        parts[6] = _sample_part(id="p2", name="Duplicate")
        with self.assertRaises(ConstraintViolation):
            self.repo.bulk_import(parts)
        self.assertEqual(self.repo.count(), 0)
        self.assertEqual(self.db.execute_scalar("SELECT COUNT(*) FROM parts_fts"), 0)
        self.assertFalse(self.db.in_transaction)

    def test_failing_part_rolls_back_batch(self):
        parts = [_sample_part(id="p0"), _sample_part(id="p1", name=None), _sample_part(id="p2")]
        with self.assertRaises(ConstraintViolation):
            self.repo.bulk_import(parts, {"p0": ["ls1"]})
        self.assertEqual(self.repo.count(), 0)
        self.assertEqual(self.repo.engines_for_part("p0"), [])

    def test_import_document(self):
        self.assertEqual(self.repo.import_document(SAMPLE_DOCUMENT), 3)
        pump = self.repo.get("wp-ls1")
        self.assertEqual(pump.image_path, "parts/wp.png")
        self.assertEqual(pump.specs, {"bolts": "6"})
        self.assertEqual(pump.cross_references, ["GM-12345"])
        self.assertEqual(self.repo.get("tb-ls1").specs, {"opening_temp": "82C"})
        self.assertEqual(self.repo.engines_for_part("wp-ls1"), ["ls1", "ls2"])

    def test_malformed_document_writes_nothing(self):
        with self.assertRaises(ImportDocumentError):
            self.repo.import_document({"parts": [{"id": "x"}]})
        with self.assertRaises(ImportDocumentError):
            self.repo.import_document(["not", "a", "mapping"])
        self.assertEqual(self.repo.count(), 0)

    def test_import_json_and_yaml_files(self):
        json_path = self.dir / "parts.json"
        json_path.write_text(json.dumps(SAMPLE_DOCUMENT), encoding="utf-8")
        yaml_path = self.dir / "more.yaml"
        yaml_path.write_text(
            "parts:\n"
            "  - id: alt-ls1\n"
            "    name: Alternator\n"
            "    category: Electrical\n"
            "    image_path: parts/alt.png\n"
            "    cross_references: [AC-1]\n",
            encoding="utf-8",
        )
        self.assertEqual(self.repo.import_file(json_path), 3)
        self.assertEqual(self.repo.import_file(yaml_path), 1)
        alt = self.repo.get("alt-ls1")
        self.assertEqual(alt.image_path, "parts/alt.png")
        self.assertEqual(alt.cross_references, ["AC-1"])

    def test_unparseable_file(self):
        bad = self.dir / "bad.json"
        bad.write_text("{ not json", encoding="utf-8")
        with self.assertRaises(ImportDocumentError):
            self.repo.import_file(bad)

    def test_non_utf8_file(self):
        for name in ("latin.json", "latin.yaml"):
            bad = self.dir / name
            bad.write_bytes(b"\xff\xfe{\"parts\": []}")
            with self.assertRaises(ImportDocumentError):
                self.repo.import_file(bad)
        self.assertEqual(self.repo.count(), 0)

    def test_export_matches_import_format(self):
        self.repo.import_document(SAMPLE_DOCUMENT)
        exported = self.repo.export_document()
        doc = parse_document(exported)
        by_id = {p.id: p for p in doc.parts}
        self.assertEqual(set(by_id), {"wp-ls1", "tb-ls1", "sp-ls1"})
        self.assertEqual(by_id["wp-ls1"].engines, ["ls1", "ls2"])
        self.assertEqual(by_id["wp-ls1"].cross_references, ["GM-12345"])
        self.assertIn("imagePath", exported["parts"][0])


if __name__ == "__main__":
    unittest.main()

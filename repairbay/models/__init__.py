"""Domain models for the parts catalog and repair progress stores."""

from repairbay.models.part import Part
from repairbay.models.progress import (
    ProgressSummary,
    RepairLogEntry,
    RepairStatistics,
    parse_steps,
    serialize_steps,
)
from repairbay.models.document import CatalogDocument, PartDocument, load_document, parse_document

__all__ = [
    "Part",
    "ProgressSummary", "RepairLogEntry", "RepairStatistics",
    "parse_steps", "serialize_steps",
    "CatalogDocument", "PartDocument", "load_document", "parse_document",
]

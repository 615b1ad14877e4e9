"""Catalog import/export document (JSON or YAML)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from repairbay.exceptions import ImportDocumentError
from repairbay.models.part import Part


class SpecItem(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    key: str = Field(min_length=1)
    value: Optional[str] = None


class PartDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    image_path: Optional[str] = Field(default=None, alias="imagePath")
    specs: list[SpecItem] = Field(default_factory=list)
    cross_references: list[str] = Field(default_factory=list, alias="crossReferences")
    engines: list[str] = Field(default_factory=list)

    @field_validator("specs", mode="before")
    @classmethod
    def _specs_from_mapping(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, dict):
            return [{"key": k, "value": val} for k, val in v.items()]
        return v

    @field_validator("cross_references", "engines", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_part(self) -> Part:
        return Part(
            id=self.id,
            name=self.name,
            description=self.description,
            category=self.category,
            image_path=self.image_path,
            specs={s.key: s.value for s in self.specs},
            cross_references=list(self.cross_references),
        )

    @classmethod
    def from_part(cls, part: Part, engines: list[str]) -> "PartDocument":
        return cls(
            id=part.id,
            name=part.name,
            description=part.description,
            category=part.category,
            image_path=part.image_path,
            specs=[SpecItem(key=k, value=v) for k, v in part.specs.items()],
            cross_references=list(part.cross_references),
            engines=engines,
        )


class CatalogDocument(BaseModel):
    parts: list[PartDocument]

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def parse_document(data: Any) -> CatalogDocument:
    """Validate raw (already decoded) document data."""
    if isinstance(data, CatalogDocument):
        return data
    if not isinstance(data, dict):
        raise ImportDocumentError("Catalog document must be a mapping with a 'parts' list")
    try:
        return CatalogDocument.model_validate(data)
    except ValidationError as e:
        raise ImportDocumentError(f"Invalid catalog document: {e}") from e


def load_document(path: Path | str) -> CatalogDocument:
    """Read a ``.json``, ``.yaml`` or ``.yml`` catalog document."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (json.JSONDecodeError, yaml.YAMLError, UnicodeDecodeError) as e:
        raise ImportDocumentError(f"Cannot parse {path}: {e}") from e
    return parse_document(data)

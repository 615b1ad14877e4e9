"""Part domain model: catalog entry with specs and alternate part numbers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from repairbay.models.rows import column


@dataclass
class Part:
    """A catalog part.  ``specs`` and ``cross_references`` are only loaded by single-part reads."""

    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    image_path: Optional[str] = None
    specs: dict[str, Optional[str]] = field(default_factory=dict)
    cross_references: list[str] = field(default_factory=list)
    # Set when the part is read through an engine link
    model_node_name: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def get_spec(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.specs.get(key)
        return default if value is None else value

    def formatted_specs(self) -> str:
        return "\n".join(f"{k}: {v if v is not None else ''}" for k, v in self.specs.items())

    def shadow_fields(self) -> tuple[str, str, str, str]:
        """Projection stored in the full-text index."""
        return (self.id, self.name, self.description or "", self.category or "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "image_path": self.image_path,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Part":
        return cls(
            id=column(row, "id", str),
            name=column(row, "name", str),
            description=column(row, "description", str, nullable=True),
            category=column(row, "category", str, nullable=True),
            image_path=column(row, "image_path", str, nullable=True),
            model_node_name=(
                column(row, "model_node_name", str, nullable=True)
                if "model_node_name" in row
                else None
            ),
            created_at=column(row, "created_at", str),
            updated_at=column(row, "updated_at", str),
        )

"""Progress, repair history and statistics models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from repairbay.models.rows import column, format_timestamp, parse_timestamp, to_utc


# -- Step set serialisation ------------------------------------------------------

def serialize_steps(steps: Iterable[int]) -> str:
    """Canonical form: ascending, unique, comma-joined.  Empty set is ``""``."""
    return ",".join(str(s) for s in sorted({int(s) for s in steps}))


def parse_steps(raw: Optional[str]) -> list[int]:
    """Inverse of :func:`serialize_steps`; malformed tokens are skipped."""
    if not raw:
        return []
    steps: set[int] = set()
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            steps.add(int(token))
        except ValueError:
            continue
    return sorted(steps)


@dataclass
class ProgressSummary:
    procedure_id: str
    engine_id: str
    completed_step_count: int
    last_updated: Optional[datetime]
    started_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ProgressSummary":
        return cls(
            procedure_id=column(row, "procedure_id", str),
            engine_id=column(row, "engine_id", str),
            completed_step_count=len(parse_steps(column(row, "completed_steps", str))),
            last_updated=parse_timestamp(column(row, "last_updated", str)),
            started_at=parse_timestamp(column(row, "started_at", str, nullable=True)),
        )


@dataclass
class RepairLogEntry:
    """One completed repair.  Immutable once logged."""

    procedure_id: str
    engine_id: str
    started_at: datetime
    completed_at: datetime
    id: Optional[str] = None
    procedure_name: Optional[str] = None
    engine_name: Optional[str] = None
    notes: Optional[str] = None
    rating: Optional[int] = None
    duration_minutes: int = 0

    def compute_duration_minutes(self) -> int:
        """Whole minutes between start and completion, truncated toward zero."""
        seconds = (to_utc(self.completed_at) - to_utc(self.started_at)).total_seconds()
        return int(seconds / 60)

    def to_params(self) -> tuple:
        return (
            self.id,
            self.procedure_id,
            self.procedure_name,
            self.engine_id,
            self.engine_name,
            format_timestamp(self.started_at),
            format_timestamp(self.completed_at),
            self.duration_minutes,
            self.notes,
            self.rating,
        )

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RepairLogEntry":
        return cls(
            id=column(row, "id", str),
            procedure_id=column(row, "procedure_id", str),
            procedure_name=column(row, "procedure_name", str, nullable=True),
            engine_id=column(row, "engine_id", str),
            engine_name=column(row, "engine_name", str, nullable=True),
            started_at=parse_timestamp(column(row, "started_at", str)),  # type: ignore[arg-type]
            completed_at=parse_timestamp(column(row, "completed_at", str)),  # type: ignore[arg-type]
            duration_minutes=column(row, "duration_minutes", int),
            notes=column(row, "notes", str, nullable=True),
            rating=column(row, "rating", int, nullable=True),
        )


@dataclass
class RepairStatistics:
    procedure_id: str
    engine_id: str
    times_completed: int
    total_duration_minutes: int
    average_duration_minutes: float
    last_completed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RepairStatistics":
        return cls(
            procedure_id=column(row, "procedure_id", str),
            engine_id=column(row, "engine_id", str),
            times_completed=column(row, "times_completed", int),
            total_duration_minutes=column(row, "total_duration_minutes", int),
            average_duration_minutes=column(row, "avg_duration_minutes", float),
            last_completed_at=parse_timestamp(
                column(row, "last_completed_at", str, nullable=True)
            ),
        )

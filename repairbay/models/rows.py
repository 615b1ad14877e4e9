"""Schema-aware row mapping and timestamp helpers shared by the domain models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from repairbay.exceptions import RowMappingError

ColumnType = Union[type, tuple[type, ...]]


def column(row: Mapping[str, Any], name: str, kind: ColumnType, *, nullable: bool = False) -> Any:
    """
    Read *name* from *row*, checking presence and type.

    Integers are accepted for ``float`` columns (SQLite stores ``REAL`` values
    without a fractional part as integers).
    """
    if name not in row:
        raise RowMappingError(f"Row is missing column {name!r}")
    value = row[name]
    if value is None:
        if nullable:
            return None
        raise RowMappingError(f"Column {name!r} is NULL")
    if kind is float and isinstance(value, int):
        return float(value)
    if not isinstance(value, kind):
        raise RowMappingError(
            f"Column {name!r} has type {type(value).__name__}, expected {_type_name(kind)}"
        )
    return value


def _type_name(kind: ColumnType) -> str:
    if isinstance(kind, tuple):
        return " | ".join(k.__name__ for k in kind)
    return kind.__name__


# -- Timestamps ----------------------------------------------------------------

def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return to_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_utc(datetime.fromisoformat(text))
    except ValueError as e:
        raise RowMappingError(f"Unparseable timestamp {raw!r}") from e

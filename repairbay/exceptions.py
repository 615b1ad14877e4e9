"""Storage exception hierarchy."""

from __future__ import annotations

from typing import Optional


class StorageError(Exception):
    """Base exception for all storage errors."""


class StorageConnectionError(StorageError):
    """Raised when a database file cannot be opened or created."""


class QueryError(StorageError):
    """Raised when a statement fails (malformed SQL, engine error)."""


class ConstraintViolation(QueryError):
    """Raised on a uniqueness or foreign-key failure."""


class RowMappingError(StorageError):
    """Raised when a row is missing a column or holds a value of the wrong type."""


class ImportDocumentError(StorageError):
    """Raised when a catalog import document is malformed."""


class MigrationError(StorageError):
    """Raised when a migration step fails; the schema stays at the last good version."""

    def __init__(self, version: int, description: str, message: Optional[str] = None):
        self.version = version
        self.description = description
        super().__init__(message or f"Migration {version} ({description}) failed")

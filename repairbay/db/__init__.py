"""Database layer: SQLite handles with nested transactions, migrations and repositories."""

from repairbay.db.database import Database, Transaction
from repairbay.db.migrations import Migration, MigrationEngine
from repairbay.db.schema import CATALOG_MIGRATIONS, PROGRESS_MIGRATIONS
from repairbay.db.catalog_repo import CatalogRepository
from repairbay.db.progress_repo import ProgressRepository

__all__ = [
    "Database", "Transaction",
    "Migration", "MigrationEngine",
    "CATALOG_MIGRATIONS", "PROGRESS_MIGRATIONS",
    "CatalogRepository", "ProgressRepository",
]

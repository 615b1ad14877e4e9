"""
Store lifecycle: open both databases, migrate them, seed the catalog on
first run, and handle backup / restore / reset.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from repairbay.config import StorageConfig, get_storage_config
from repairbay.db.catalog_repo import CatalogRepository
from repairbay.db.database import Database
from repairbay.db.progress_repo import ProgressRepository
from repairbay.exceptions import StorageError

logger = logging.getLogger(__name__)

# sqlite keeps these next to the main file in WAL mode
_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


@dataclass
class StoreStats:
    part_count: int
    category_count: int
    in_progress: int
    completed_repairs: int


class DataStores:
    """
    Owns the catalog and progress handles for one data directory.

    Construct with :meth:`open`; nothing here is global, so several instances
    (e.g. one per test) can coexist as long as they use different directories.
    """

    def __init__(self, config: StorageConfig):
        self.config = config
        self.catalog_db: Optional[Database] = None
        self.progress_db: Optional[Database] = None
        self.catalog: Optional[CatalogRepository] = None
        self.progress: Optional[ProgressRepository] = None

    @classmethod
    def open(cls, config: Optional[StorageConfig] = None) -> "DataStores":
        stores = cls(config or get_storage_config())
        stores._open()
        return stores

    def _open(self) -> None:
        first_run = not self.config.catalog_path.exists()

        try:
            self.catalog_db = Database(self.config.catalog_path, self.config.journal_mode)
            self.progress_db = Database(self.config.progress_path, self.config.journal_mode)
            self.catalog = CatalogRepository(self.catalog_db)
            self.progress = ProgressRepository(self.progress_db)

            self.catalog.migrate()
            self.progress.migrate()

            if first_run:
                self._seed_default_parts()
        except BaseException:
            self.close()
            raise
        logger.info(f"Data stores ready in {self.config.data_dir}")

    def _seed_default_parts(self) -> None:
        seed = self.config.default_parts_path
        if seed is None:
            return
        if not seed.exists():
            logger.warning(f"Default parts document not found: {seed}")
            return
        count = self.catalog.import_file(seed)  # type: ignore[union-attr]
        logger.info(f"Seeded {count} parts from {seed}")

    @property
    def is_open(self) -> bool:
        return self.catalog_db is not None and self.catalog_db.is_open

    def close(self) -> None:
        for db in (self.catalog_db, self.progress_db):
            if db is not None:
                db.close()
        self.catalog_db = self.progress_db = None
        self.catalog = None
        self.progress = None

    def __enter__(self) -> "DataStores":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- Reporting -------------------------------------------------------------

    def stats(self) -> StoreStats:
        catalog, progress = self._repos()
        return StoreStats(
            part_count=catalog.count(),
            category_count=len(catalog.list_categories()),
            in_progress=len(progress.list_all_progress()),
            completed_repairs=progress.history_count(),
        )

    # -- Backup / restore / reset ----------------------------------------------

    def export_backup(self, backup_dir: Optional[Path | str] = None) -> Optional[Path]:
        """
        Copy both stores into a new timestamped directory under *backup_dir*
        (default: the configured backups path).  Returns ``None`` when there is
        nothing to back up.
        """
        sources = [
            (db, path)
            for db, path in (
                (self.catalog_db, self.config.catalog_path),
                (self.progress_db, self.config.progress_path),
            )
            if path.exists()
        ]
        if not sources:
            logger.info("No data files to back up")
            return None

        root = Path(backup_dir) if backup_dir else self.config.backups_path
        target = root / f"backup_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}"
        target.mkdir(parents=True, exist_ok=True)
        for db, path in sources:
            if db is not None and db.is_open:
                db.backup_to(target / path.name)
            else:
                shutil.copy2(path, target / path.name)
        logger.info(f"Backup written to {target}")
        return target

    def restore_backup(self, path: Path | str) -> None:
        """Replace both stores with the copies in *path*, then reopen and migrate."""
        source = Path(path)
        if not source.is_dir():
            raise FileNotFoundError(f"Backup not found: {source}")

        logger.warning(f"Restoring data stores from {source}")
        self.close()
        for target in (self.config.catalog_path, self.config.progress_path):
            backup_file = source / target.name
            if not backup_file.exists():
                continue
            _remove_store_files(target)
            shutil.copy2(backup_file, target)
        self._open()

    def reset_all_data(self) -> None:
        """Delete both store files and start again from an empty (re-seeded) catalog."""
        logger.warning(f"Resetting all data in {self.config.data_dir}")
        self.close()
        _remove_store_files(self.config.catalog_path)
        _remove_store_files(self.config.progress_path)
        self._open()

    def _repos(self) -> tuple[CatalogRepository, ProgressRepository]:
        if self.catalog is None or self.progress is None:
            raise StorageError("Data stores are closed")
        return self.catalog, self.progress


def _remove_store_files(path: Path) -> None:
    path.unlink(missing_ok=True)
    for suffix in _SIDECAR_SUFFIXES:
        Path(f"{path}{suffix}").unlink(missing_ok=True)

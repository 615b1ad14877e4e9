"""
Central configuration loader.
Reads from environment variables (via .env) and resolves store paths.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Load .env from repo root (if present)
# ---------------------------------------------------------------------------
_REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_REPO_ROOT / ".env")

_JOURNAL_MODES = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}


def _get(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    val = os.getenv(key, default)
    if required and not val:
        raise EnvironmentError(f"Missing required environment variable: {key}")
    return val


# ---------------------------------------------------------------------------
# Storage config
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class StorageConfig:
    data_dir: Path
    catalog_filename: str = "parts.db"
    progress_filename: str = "progress.db"
    backup_dir: Optional[Path] = None
    journal_mode: str = "WAL"
    default_parts_path: Optional[Path] = None
    log_level: str = "INFO"

    @property
    def catalog_path(self) -> Path:
        return self.data_dir / self.catalog_filename

    @property
    def progress_path(self) -> Path:
        return self.data_dir / self.progress_filename

    @property
    def backups_path(self) -> Path:
        return self.backup_dir or self.data_dir / "backups"

    def with_data_dir(self, data_dir: Path | str) -> "StorageConfig":
        """Same settings rooted at another directory (used by tests and the CLI)."""
        return StorageConfig(
            data_dir=Path(data_dir),
            catalog_filename=self.catalog_filename,
            progress_filename=self.progress_filename,
            backup_dir=None,
            journal_mode=self.journal_mode,
            default_parts_path=self.default_parts_path,
            log_level=self.log_level,
        )


def get_storage_config() -> StorageConfig:
    data_dir = Path(_get("REPAIRBAY_DATA_DIR", default=str(_REPO_ROOT / "data")))  # type: ignore[arg-type]
    backup_dir = _get("REPAIRBAY_BACKUP_DIR")
    default_parts = _get("REPAIRBAY_DEFAULT_PARTS")

    journal_mode = (_get("REPAIRBAY_JOURNAL_MODE", default="WAL") or "WAL").upper()
    if journal_mode not in _JOURNAL_MODES:
        raise EnvironmentError(f"Unsupported REPAIRBAY_JOURNAL_MODE: {journal_mode}")

    return StorageConfig(
        data_dir=data_dir,
        catalog_filename=_get("REPAIRBAY_CATALOG_DB", default="parts.db"),  # type: ignore[arg-type]
        progress_filename=_get("REPAIRBAY_PROGRESS_DB", default="progress.db"),  # type: ignore[arg-type]
        backup_dir=Path(backup_dir) if backup_dir else None,
        journal_mode=journal_mode,
        default_parts_path=Path(default_parts) if default_parts else None,
        log_level=(_get("REPAIRBAY_LOG_LEVEL", default="INFO") or "INFO").upper(),
    )


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
def get_repo_root() -> Path:
    return _REPO_ROOT

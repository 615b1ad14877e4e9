"""Command-line entry point: initialise, import/export, search and back up the data stores."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from repairbay.config import StorageConfig, get_storage_config
from repairbay.exceptions import StorageError
from repairbay.logging_setup import configure_logging
from repairbay.stores import DataStores

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="repairbay", description="Repair assistant data stores")
    parser.add_argument("--data-dir", type=str, help="Override the data directory")
    parser.add_argument("--log-level", type=str, help="Logging level (default from REPAIRBAY_LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Create and migrate both stores")
    p.add_argument("--seed", type=str, help="JSON/YAML parts document to import")

    p = sub.add_parser("import", help="Bulk import a JSON/YAML parts document")
    p.add_argument("file", type=str)

    p = sub.add_parser("export", help="Write the catalog as a JSON document")
    p.add_argument("--out", type=str, help="Output file (default: stdout)")

    p = sub.add_parser("search", help="Full-text search the catalog")
    p.add_argument("query", type=str)
    p.add_argument("--limit", type=int, default=20)

    sub.add_parser("stats", help="Show store counts")
    sub.add_parser("backup", help="Copy both stores into a timestamped backup directory")

    p = sub.add_parser("restore", help="Replace both stores from a backup directory")
    p.add_argument("path", type=str)

    return parser


def _config_from_args(args: argparse.Namespace) -> StorageConfig:
    config = get_storage_config()
    if args.data_dir:
        config = config.with_data_dir(args.data_dir)
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = _config_from_args(args)
    configure_logging(args.log_level or config.log_level)

    try:
        with DataStores.open(config) as stores:
            return _dispatch(stores, args)
    except (StorageError, FileNotFoundError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _dispatch(stores: DataStores, args: argparse.Namespace) -> int:
    catalog = stores.catalog
    assert catalog is not None

    if args.command == "init":
        print(f"Catalog store:  {stores.config.catalog_path}")
        print(f"Progress store: {stores.config.progress_path}")
        if args.seed:
            count = catalog.import_file(Path(args.seed))
            print(f"  Imported {count} parts from {args.seed}")
        print("Done.")

    elif args.command == "import":
        count = catalog.import_file(Path(args.file))
        print(f"Imported {count} parts from {args.file}")

    elif args.command == "export":
        text = json.dumps(catalog.export_document(), indent=2, ensure_ascii=False)
        if args.out:
            Path(args.out).write_text(text + "\n", encoding="utf-8")
            print(f"Exported {catalog.count()} parts to {args.out}")
        else:
            print(text)

    elif args.command == "search":
        results = catalog.search(args.query, limit=args.limit)
        for part in results:
            print(f"  {part.id:<20} | {part.name[:40]:<40} | {part.category or ''}")
        print(f"{len(results)} result(s)")

    elif args.command == "stats":
        s = stores.stats()
        print(f"Parts:             {s.part_count}")
        print(f"Categories:        {s.category_count}")
        print(f"In progress:       {s.in_progress}")
        print(f"Completed repairs: {s.completed_repairs}")

    elif args.command == "backup":
        target = stores.export_backup()
        print(f"Backup written to {target}" if target else "Nothing to back up")

    elif args.command == "restore":
        stores.restore_backup(Path(args.path))
        print(f"Restored from {args.path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())

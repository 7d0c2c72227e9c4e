"""Command-line helpers for database setup and location import.

Usage:
    python -m evolution_admin.cli init-db
    python -m evolution_admin.cli import-locales locales.json
    python -m evolution_admin.cli --database-url sqlite:///admin.db init-db
"""
from __future__ import annotations
import argparse
import json
import os
import sys
from typing import Optional, Sequence

from evolution_admin.core.store import Database, SqlLocalStore


def import_locales(store: SqlLocalStore, path: str) -> int:
    """Upsert every record of the JSON array at ``path``; returns the count.

    Raises:
        ValueError: If the file is not a JSON array of records with ``id`` and ``nombre``
    """
    with open(path, encoding="utf-8") as fh:
        try:
            records = json.load(fh)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(records, list):
        raise ValueError("Expected a JSON array of location records")

    with store.database.transaction():
        for record in records:
            try:
                store.upsert(record)
            except (ValueError, AttributeError) as e:
                raise ValueError(f"Invalid location record {record!r}: {e}") from e
    return len(records)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(description="Evolution admin database helper")
    parser.add_argument("--database-url", default=os.environ.get("DATABASE_URL"))

    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("init-db", help="Create missing tables")

    imp = sub.add_parser("import-locales", help="Load location records from a JSON array")
    imp.add_argument("path")

    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return

    if not args.database_url:
        parser.error("Missing DATABASE_URL (environment or --database-url)")

    database = Database.from_url(args.database_url)
    try:
        database.create_tables()

        if args.cmd == "init-db":
            print(f"Database ready: {database.url}")
        elif args.cmd == "import-locales":
            if os.environ.get("LOCALES_SERVICE_URL", "").strip():
                print(
                    "[import-locales] Error: Locations are served by an external directory (LOCALES_SERVICE_URL)",
                    file=sys.stderr,
                )
                sys.exit(1)
            try:
                imported = import_locales(SqlLocalStore(database), args.path)
            except (OSError, ValueError) as e:
                print(f"[import-locales] Error: {e}", file=sys.stderr)
                sys.exit(1)
            print(f"Imported {imported} location(s)")
    finally:
        database.engine.dispose()


if __name__ == "__main__":
    main()

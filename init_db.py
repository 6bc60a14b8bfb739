"""
Tiny helper script to create the cities SQLite database.
Usage: python init_db.py [PATH] [--verbose]
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from database import AlreadyExistsError, create_database, default_db_path

LOG_FORMAT = "[%(levelname)s %(name)s] %(message)s"


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a new cities database with an empty schema.")
    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="Where to create the database (default: $CITIES_DB_PATH or cities.db next to this script).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log each schema step.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    path = args.path or default_db_path()
    try:
        db = create_database(path)
    except AlreadyExistsError as exc:
        print(f"error: database already exists at {exc.path}", file=sys.stderr)
        return 1

    with db:
        print(f"Database ready at {db.path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""ShopStream database management CLI.

Provides commands to create and drop the schema of the configured database.
Reuses the setup_db/drop_db utilities from ``shared.utils.db``.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import os
import sys

from shared.config import load_settings
from shared.persistence import Database
from shared.utils.db import drop_db, setup_db
from shared.utils.logging import configure_logging


def setup_databases(settings):
    """Create every table for the configured database."""
    database = Database.from_settings(settings)
    try:
        print(f"Creating schema in {database.engine.url.render_as_string(hide_password=True)}...")
        setup_db(database)
    finally:
        database.dispose()
    print("Done.")


def drop_databases(settings):
    """Drop every table of the configured database."""
    database = Database.from_settings(settings)
    try:
        print(f"Dropping schema in {database.engine.url.render_as_string(hide_password=True)}...")
        drop_db(database)
    finally:
        database.dispose()
    print("Done.")


def main(argv=None):
    parser = argparse.ArgumentParser(description="ShopStream database management")
    parser.add_argument("--root-path", help="Directory holding domain.toml (default: project root)")
    parser.add_argument("--env", help="Environment overlay to apply (default: $PROTEAN_ENV)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args(argv)
    if args.env:
        os.environ["PROTEAN_ENV"] = args.env
    settings = load_settings(root_path=args.root_path)
    configure_logging(settings.logging.level, settings.logging.json_output)

    if args.command == "setup-db":
        setup_databases(settings)
    elif args.command == "drop-db":
        drop_databases(settings)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

from __future__ import annotations

import argparse
import os
import sys

from qapture.infrastructure.config import DatabaseConfig
from qapture.infrastructure.db import create_database_engine, create_session_factory
from qapture.infrastructure.exceptions import QaptureError
from qapture.utils.seed import DEFAULT_DIMENSIONS, initialise_database, seed_default_mappings


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Create the default reporting dimensions and map catalog categories to them"
    )

    backend_default = os.environ.get("DB_BACKEND", "sqlite")
    sqlite_default = os.environ.get("DB_SQLITE_PATH", "./qapture.db")
    mysql_host_default = os.environ.get("DB_MYSQL_HOST", "localhost")
    mysql_port_default = int(os.environ.get("DB_MYSQL_PORT") or 3306)
    mysql_user_default = os.environ.get("DB_MYSQL_USER", "root")
    mysql_password_default = os.environ.get("DB_MYSQL_PASSWORD", "")
    mysql_database_default = os.environ.get("DB_MYSQL_DATABASE", "qapture")

    parser.add_argument("--backend", choices=["sqlite", "mysql"], default=backend_default)
    parser.add_argument("--sqlite-path", default=sqlite_default)
    parser.add_argument("--mysql-host", default=mysql_host_default)
    parser.add_argument("--mysql-port", type=int, default=mysql_port_default)
    parser.add_argument("--mysql-user", default=mysql_user_default)
    parser.add_argument("--mysql-password", default=mysql_password_default)
    parser.add_argument(
        "--mysql-database", "--mysql-db", dest="mysql_database", default=mysql_database_default
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="List the default mappings without writing them"
    )
    args = parser.parse_args(argv)

    if args.dry_run:
        for name, (color, categories) in DEFAULT_DIMENSIONS.items():
            print(f"{name} ({color})")
            for category in categories:
                print(f" - {category}")
        return 0

    cfg = DatabaseConfig(
        backend=args.backend,
        sqlite_path=args.sqlite_path,
        mysql_host=args.mysql_host,
        mysql_port=args.mysql_port,
        mysql_user=args.mysql_user,
        mysql_password=args.mysql_password,
        mysql_database=args.mysql_database,
    )

    try:
        engine = create_database_engine(cfg)
        initialise_database(engine)
        SessionLocal = create_session_factory(engine)
        with SessionLocal() as session:
            summary = seed_default_mappings(session)
            session.commit()
    except QaptureError as e:
        print(f"ERROR: {e.user_message} ({e.message})", file=sys.stderr)
        return 1

    print(f"Seed completed: {summary.dimensions} dimensions, {summary.mappings} category mappings.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

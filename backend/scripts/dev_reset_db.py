from __future__ import annotations

import argparse
import os
import shutil
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


def _database_url(cli_url: str | None) -> str:
    url = cli_url or os.getenv("DATABASE_URL")
    if url:
        return url
    ini_url = Config(str(ALEMBIC_INI)).get_main_option("sqlalchemy.url")
    if not ini_url:
        raise RuntimeError("No DATABASE_URL or sqlalchemy.url configured.")
    return ini_url


def _drop_postgres(database_url: str) -> None:
    url = make_url(database_url)
    if not url.database:
        raise RuntimeError("Postgres URL is missing a database name.")
    engine = create_engine(url.set(database="postgres"), future=True, isolation_level="AUTOCOMMIT")
    try:
        with engine.connect() as conn:
            conn.execute(
                text(
                    "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                    "WHERE datname = :db_name AND pid <> pg_backend_pid()"
                ),
                {"db_name": url.database},
            )
            conn.execute(text(f'DROP DATABASE IF EXISTS "{url.database}"'))
            conn.execute(text(f'CREATE DATABASE "{url.database}"'))
    finally:
        engine.dispose()


def _drop_sqlite(database_url: str) -> None:
    database = make_url(database_url).database
    if database and database != ":memory:":
        Path(database).unlink(missing_ok=True)


def _purge_generated_files() -> None:
    from backend.app import config

    for directory in (config.reports_dir(), config.uploads_dir()):
        if directory.exists():
            shutil.rmtree(directory)
        directory.mkdir(parents=True, exist_ok=True)
        print(f"Emptied {directory}")


def _seed(database_url: str) -> None:
    os.environ.setdefault("DATABASE_URL", database_url)
    from backend.app.seed.run import seed_default_user

    engine = create_engine(database_url, future=True)
    session = sessionmaker(bind=engine, autoflush=False, future=True)()
    try:
        user = seed_default_user(session)
        print(f"Default user: {user.username} (X-User-Id: {user.id})")
    finally:
        session.close()
        engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset the development database.")
    parser.add_argument("--url", help="Override the database URL.")
    parser.add_argument("--yes", action="store_true", help="Confirm destructive reset.")
    parser.add_argument("--no-seed", action="store_true", help="Skip creating the default admin user.")
    parser.add_argument("--purge-files", action="store_true", help="Also empty the reports and uploads directories.")
    args = parser.parse_args()

    if not args.yes:
        print("Refusing to reset database without --yes.")
        return 1

    database_url = _database_url(args.url)
    backend = make_url(database_url).get_backend_name()
    if backend.startswith("postgres"):
        _drop_postgres(database_url)
    elif backend.startswith("sqlite"):
        _drop_sqlite(database_url)
    else:
        print(f"Unsupported database backend: {backend}")
        return 1

    alembic_config = Config(str(ALEMBIC_INI))
    alembic_config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_config, "head")

    if args.purge_files:
        _purge_generated_files()
    if not args.no_seed:
        _seed(database_url)

    print("DONE")
    print(f"Database URL: {make_url(database_url).render_as_string(hide_password=True)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""Run Alembic migrations to head without booting the Flask app."""
import os
import sys

from dotenv import load_dotenv

ROOT = os.path.dirname(os.path.abspath(__file__))

# Load .env before reading any environment variables
dotenv_path = os.path.join(ROOT, '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)
    print("[Manage] Loaded .env file")

sys.path.insert(0, ROOT)

from utils.redaction import redact_database_url  # noqa: E402


def migrate(revision="head"):
    print("[Manage] Starting database migration...")

    database_url = os.environ.get("DATABASE_URL", "").strip()
    if not database_url:
        print("[Manage] ERROR: DATABASE_URL environment variable is not set.")
        sys.exit(1)

    # Hosting providers hand out postgres:// but SQLAlchemy wants postgresql://
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
        os.environ["DATABASE_URL"] = database_url
        print("[Manage] Converted postgres:// to postgresql://")

    if not database_url.startswith("postgresql://"):
        print(f"[Manage] ERROR: Only Postgres is supported (got {redact_database_url(database_url)})")
        sys.exit(1)

    print(f"[Manage] DATABASE_URL: {redact_database_url(database_url)}")

    from alembic.config import Config
    from alembic import command
    from sqlalchemy.exc import SQLAlchemyError

    alembic_cfg = Config(os.path.join(ROOT, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(ROOT, "migrations"))
    try:
        command.upgrade(alembic_cfg, revision)
    except SQLAlchemyError as e:
        print(f"[Manage] Alembic migration FAILED: {e}")
        sys.exit(1)

    print(f"[Manage] Alembic migration to '{revision}' successful.")


if __name__ == "__main__":
    migrate(sys.argv[1] if len(sys.argv) > 1 else "head")

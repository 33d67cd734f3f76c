"""
Apply Alembic migrations for the EV swap backend.
Usage: python run_migrations.py [revision]   (default: head)
"""
import sys
import traceback

from alembic import command
from alembic.config import Config

from config.settings import get_settings


def run_migrations(revision: str = "head") -> int:
    try:
        alembic_cfg = Config("alembic.ini")
        alembic_cfg.set_main_option("sqlalchemy.url", get_settings().DATABASE_URL)

        print(f"Upgrading database schema to {revision}...")
        command.upgrade(alembic_cfg, revision)

        print("✓ Database schema is up to date")
        return 0

    except Exception as e:
        print(f"✗ Migration failed: {e}")
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(run_migrations(sys.argv[1] if len(sys.argv) > 1 else "head"))

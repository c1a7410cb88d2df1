"""
Release phase: migrate to head, then seed roles and the bootstrap admin.

Refuses to run without DATABASE_URL, and refuses sqlite when ENV is production.
Seeding is idempotent and never resets an existing password.

Usage:
  python scripts/release.py [--skip-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def _release_database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release onto sqlite in production; point DATABASE_URL at Postgres.")
    return db_url


def run_release(*, seed: bool = True) -> None:
    from alembic import command

    db_url = _release_database_url()
    print("Caixa release: alembic upgrade head", flush=True)
    command.upgrade(_alembic_config(db_url), "head")

    if seed:
        from scripts import init_db

        print("Caixa release: seeding roles and admin", flush=True)
        init_db.seed_only(database_url=db_url)
    print("Caixa release: done", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--skip-seed", action="store_true", help="only run migrations")
    args = parser.parse_args()
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()

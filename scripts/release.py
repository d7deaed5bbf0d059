"""
Release phase: migrate the schema, then seed permissions, roles and the first member.

Usage:
  python scripts/release.py                 # upgrade to head and seed
  python scripts/release.py --no-seed
  python scripts/release.py --revision 0001
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def database_url_from_env() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production. Set DATABASE_URL to Postgres.")
    return db_url


def migrate(db_url: str, revision: str = "head") -> None:
    from alembic import command
    from alembic.config import Config

    from app.promptdesk.db import normalize_database_url

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", normalize_database_url(db_url))
    command.upgrade(cfg, revision)


def run_release(*, revision: str = "head", seed: bool = True) -> None:
    db_url = database_url_from_env()
    print(f"=== PromptDesk release (revision={revision}) ===", flush=True)

    migrate(db_url, revision)
    print("Migrations complete.", flush=True)

    if seed:
        from scripts import init_db

        init_db.seed_only(database_url=db_url)
        print("Seed complete.", flush=True)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run PromptDesk migrations and seed data.")
    parser.add_argument("--revision", default="head", help="Alembic revision to upgrade to (default: head).")
    parser.add_argument("--no-seed", action="store_true", help="Skip seeding roles and the first user.")
    args = parser.parse_args(argv)
    run_release(revision=args.revision, seed=not args.no_seed)


if __name__ == "__main__":
    main()

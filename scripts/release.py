"""
Release step for Visite Sri3a: bring the schema to head, then seed.

The seed is safe to repeat. It creates the super-admin account and the
inspection centers when they are missing, keeps existing passwords, and only
generates time slots when SEED_TIME_SLOTS is set.

  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _say(msg: str) -> None:
    print(f"[release] {msg}", flush=True)


def _database_url() -> str:
    url = (os.environ.get("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set; refusing to migrate an implicit SQLite file.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and url.startswith("sqlite"):
        raise RuntimeError("Production releases need a Postgres DATABASE_URL, got sqlite.")
    return url


def migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def run_release() -> None:
    db_url = _database_url()
    _say(f"ENV={(os.environ.get('ENV') or '').strip() or '(unset)'}")

    _say("alembic upgrade head")
    migrate(db_url)

    _say("seeding super admin and centers")
    from scripts import init_db

    init_db.seed_only(database_url=db_url)
    _say("done")


if __name__ == "__main__":
    run_release()

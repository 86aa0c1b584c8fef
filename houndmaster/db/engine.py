"""
Centralized SQLAlchemy/SQLModel engine and session factory.

The database URL is resolved from the HOUNDMASTER_DATABASE_URL environment
variable or config/houndmaster_config(.local).json, so switching from the
default SQLite file to PostgreSQL is a configuration change only.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_URL = "sqlite:///data/houndmaster.db"

_engine: Engine | None = None


def _resolve_db_url() -> str:
    """
    Precedence:
    1. HOUNDMASTER_DATABASE_URL environment variable
    2. config/houndmaster_config.local.json  database.url
    3. config/houndmaster_config.json        database.url
    4. sqlite:///data/houndmaster.db
    """
    env_url = os.environ.get("HOUNDMASTER_DATABASE_URL")
    if env_url:
        return env_url

    for cfg_name in ("houndmaster_config.local.json", "houndmaster_config.json"):
        cfg_path = _ROOT / "config" / cfg_name
        if not cfg_path.exists():
            continue
        with open(cfg_path, "r", encoding="utf-8") as f:
            url = (json.load(f).get("database") or {}).get("url")
        if url:
            return url
    return _DEFAULT_URL


def _make_absolute_sqlite_url(url: str) -> str:
    """Anchor relative sqlite:/// paths at the project root regardless of cwd."""
    if not url.startswith("sqlite:///") or url == "sqlite:///:memory:":
        return url
    rel_path = url[len("sqlite:///"):]
    if os.path.isabs(rel_path):
        return url
    abs_path = (_ROOT / rel_path).resolve()
    abs_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{abs_path}"


def build_engine(db_url: str) -> Engine:
    """Create an engine for db_url; SQLite connections get WAL and a busy timeout."""
    is_sqlite = db_url.startswith("sqlite")
    connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
    engine = create_engine(db_url, echo=False, connect_args=connect_args, pool_pre_ping=True)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_conn, _connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

    return engine


def get_engine() -> Engine:
    """Return the singleton engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = build_engine(_make_absolute_sqlite_url(_resolve_db_url()))
    return _engine


def init_db(engine: Engine | None = None) -> None:
    """Create missing tables. Later schema changes go through alembic/versions."""
    from houndmaster.db import models as _models  # noqa: F401  register tables
    SQLModel.metadata.create_all(engine or get_engine())

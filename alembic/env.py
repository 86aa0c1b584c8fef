from __future__ import annotations

import sys
from pathlib import Path
from logging.config import fileConfig

from sqlmodel import SQLModel

from alembic import context

# 项目根目录加入 sys.path，保证 houndmaster.db 可导入
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# 注册所有表
import houndmaster.db.models as _models  # noqa: F401, E402

from houndmaster.db.engine import _make_absolute_sqlite_url, _resolve_db_url, get_engine  # noqa: E402

target_metadata = SQLModel.metadata


def _get_url() -> str:
    """alembic.ini 显式配置优先，否则沿用服务自身的数据库地址解析"""
    ini_url = config.get_main_option("sqlalchemy.url", default="")
    if not ini_url or ini_url.startswith("driver://"):
        ini_url = _resolve_db_url()
    return _make_absolute_sqlite_url(ini_url)


def run_migrations_offline() -> None:
    context.configure(
        url=_get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # SQLite ALTER TABLE
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with get_engine().connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,  # SQLite ALTER TABLE
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

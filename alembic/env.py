# alembic/env.py
from __future__ import annotations

import os
import re
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.engine import Connection
from sqlalchemy.pool import NullPool

# Alembic 基本配置
config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# 延迟加载模型（避免导入时机引发的问题）
from chemledger.db.base import Base, init_models  # noqa: E402

# ---------------------------------------------------------------------------
# URL 规范化 + 获取：迁移走同步驱动（psycopg3 同步模式 / 内置 sqlite3）
# ---------------------------------------------------------------------------

_ASYNC_DRV_RE = re.compile(r"\+asyncpg\b|\+psycopg2\b|\+pg8000\b", re.I)


def normalize_sync_url(url: str) -> str:
    if not url:
        return url

    url = url.strip()
    # 去掉外层意外加上的引号
    if len(url) >= 2 and url[0] == url[-1] and url[0] in {"'", '"'}:
        url = url[1:-1].strip()

    url = _ASYNC_DRV_RE.sub("+psycopg", url)
    url = re.sub(r"^postgres://", "postgresql+psycopg://", url, flags=re.I)
    if url.lower().startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    if url.lower().startswith("sqlite+aiosqlite://"):
        url = "sqlite://" + url[len("sqlite+aiosqlite://") :]
    return url


def get_url() -> str:
    """
    优先级：
      1. CHEMLEDGER_TEST_DATABASE_URL
      2. DATABASE_URL
      3. alembic.ini 里的 sqlalchemy.url
    """
    url = (
        os.getenv("CHEMLEDGER_TEST_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.get_main_option("sqlalchemy.url")
    )
    if not url:
        raise RuntimeError(
            "Alembic 无法确定数据库 URL：\n"
            "请设置 DATABASE_URL，或在 alembic.ini 里配置 sqlalchemy.url"
        )
    return normalize_sync_url(url)


# ---------------------------------------------------------------------------
# 迁移执行函数
# ---------------------------------------------------------------------------


def run_migrations_offline() -> None:
    """
    Offline 模式：不真实连库，只生成 SQL。
    """
    init_models()

    context.configure(
        url=get_url(),
        target_metadata=Base.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=False,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """
    Online 模式：真实连库执行迁移。
    """
    init_models()
    url = get_url()

    engine = create_engine(url, poolclass=NullPool, future=True)

    with engine.connect() as connection:  # type: Connection
        context.configure(
            connection=connection,
            target_metadata=Base.metadata,
            compare_type=True,
            compare_server_default=False,
            # sqlite 不支持大部分 ALTER，走 batch 模式
            render_as_batch=url.startswith("sqlite"),
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

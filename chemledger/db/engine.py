# chemledger/db/engine.py
# 统一引擎工厂：SQLite 打开外键约束；PG 打开 pre_ping
from __future__ import annotations

import re
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

__all__ = ["create_async_engine_safe", "normalize_async_dsn"]


def normalize_async_dsn(url: str) -> str:
    """把各种写法的 DSN 统一到 psycopg3 / aiosqlite 异步驱动。"""
    url = (url or "").strip()
    # 有些环境会把值写成 '"postgresql://..."'，剥掉两侧引号
    if len(url) >= 2 and url[0] == url[-1] and url[0] in {"'", '"'}:
        url = url[1:-1].strip()
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite://" + url[len("sqlite:///") - 1 :]
    if url.startswith("postgresql+asyncpg://") or url.startswith("postgres+asyncpg://"):
        return re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _connect_args_for(url_str: str) -> dict[str, Any]:
    backend = make_url(url_str).get_backend_name()
    if backend.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def _enable_sqlite_fk(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn, _record):  # pragma: no cover - 驱动回调
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()


def create_async_engine_safe(url_str: str, *, echo: bool = False, **extra: Any) -> AsyncEngine:
    """Async 引擎（'postgresql+psycopg' 或 'sqlite+aiosqlite'）。"""
    url_str = normalize_async_dsn(url_str)
    u = make_url(url_str)

    kwargs: dict[str, Any] = {"echo": echo}
    if u.get_backend_name().startswith("postgresql"):
        kwargs["pool_pre_ping"] = True
    connect_args = _connect_args_for(url_str)
    if connect_args:
        kwargs["connect_args"] = connect_args
    kwargs.update(extra)

    engine = create_async_engine(url_str, **kwargs)
    if u.get_backend_name().startswith("sqlite"):
        _enable_sqlite_fk(engine)
    return engine

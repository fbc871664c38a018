# chemledger/db/session.py
# 显式的存储句柄：引擎 + 会话工厂由调用方创建并注入，不挂模块级单例
from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from chemledger.core.config import AppSettings
from chemledger.db.base import Base, init_models
from chemledger.db.engine import create_async_engine_safe

log = logging.getLogger(__name__)


class Database:
    """一个逻辑连接池：AsyncEngine + async_sessionmaker。"""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False, **engine_kwargs: Any) -> "Database":
        return cls(create_async_engine_safe(url, echo=echo, **engine_kwargs))

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "Database":
        log.info("Using DSN: %s", settings.DATABASE_URL)
        return cls.from_url(settings.DATABASE_URL, echo=settings.SQL_ECHO)

    async def create_all(self) -> None:
        """dev / 测试用建表；部署环境请走 alembic。"""
        init_models()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


# ---- FastAPI 依赖 ----
def get_database(request: Request) -> Database:
    return request.app.state.db


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with get_database(request).session_maker() as session:
        yield session

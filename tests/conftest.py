# tests/conftest.py
from __future__ import annotations

import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import NullPool

from chemledger.core.config import AppSettings
from chemledger.db.base import Base, init_models
from chemledger.db.session import Database
from chemledger.main import create_app
from chemledger.services.compound_service import CompoundService
from chemledger.services.entry_query_service import EntryQueryService
from chemledger.services.entry_service import EntryService
from chemledger.services.retry import RetryPolicy

# ==========================
# 数据库 DSN：
#   CHEMLEDGER_TEST_DATABASE_URL 显式指定时用之（例如 PG），
#   否则每个用例一个 tmp_path 下的 sqlite 文件库
# ==========================
TEST_DATABASE_URL = os.getenv("CHEMLEDGER_TEST_DATABASE_URL")

FAST_RETRY = RetryPolicy(max_attempts=3, delay=0.0)


# =========================================
# 每用例独立 Database（NullPool，避免跨 loop）
# =========================================
@pytest_asyncio.fixture(scope="function")
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"
    db = Database.from_url(url, poolclass=NullPool)

    init_models()
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield db
    finally:
        await db.dispose()


@pytest_asyncio.fixture(scope="function")
async def session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """断言用 Session：只做列查询，总是读到最新提交值。"""
    async with database.session_maker() as sess:
        yield sess


@pytest.fixture
def entry_service(database: Database) -> EntryService:
    return EntryService(database, policy=FAST_RETRY)


@pytest.fixture
def query_service(database: Database) -> EntryQueryService:
    return EntryQueryService(database, policy=FAST_RETRY)


@pytest.fixture
def compound_service(database: Database) -> CompoundService:
    return CompoundService(database, policy=FAST_RETRY)


# =========================================
# FastAPI / httpx AsyncClient
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(database: Database) -> AsyncGenerator[httpx.AsyncClient, None]:
    settings = AppSettings(RETRY_DELAY_MS=0, REQUEST_TIMEOUT_S=10.0)
    app = create_app(settings, db=database)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://testserver",
        timeout=httpx.Timeout(10.0, connect=5.0, read=10.0, write=5.0, pool=5.0),
    ) as c:
        yield c

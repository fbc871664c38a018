# chemledger/core/tx.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

T = TypeVar("T")


@asynccontextmanager
async def tx_commit(session: AsyncSession):
    """
    Commit 事务：正常 begin/commit；块内任何异常（含取消）都会整体回滚。
    """
    async with session.begin():
        yield


class TxManager:
    """
    统一的事务执行器：每次 run 都开一个全新的 Session + 原子单元。
    Handler 内部不得控事务。
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._maker = session_maker

    async def run(self, fn: Callable[..., Awaitable[T]], **kwargs: Any) -> T:
        async with self._maker() as session:
            async with tx_commit(session):
                return await fn(session=session, **kwargs)

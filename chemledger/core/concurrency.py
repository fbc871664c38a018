# chemledger/core/concurrency.py
from __future__ import annotations

import asyncio
from typing import Awaitable, Tuple, TypeVar

A = TypeVar("A")
B = TypeVar("B")


async def join_pair(first: Awaitable[A], second: Awaitable[B]) -> Tuple[A, B]:
    """
    结构化的二路并发汇合点：

    - 两个子任务并发执行，函数返回前两者必定都已结束（完成 / 取消）；
    - 任一子任务出错：取消另一侧并等待其收尾，抛出最先观察到的错误，
      另一侧结果丢弃；同一轮同时出错时按参数顺序取第一个；
    - 外层被取消时两个子任务一并取消。
    """
    tasks = (asyncio.ensure_future(first), asyncio.ensure_future(second))
    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
            failed = [t for t in tasks if t in done and not t.cancelled() and t.exception() is not None]
            if failed:
                for t in pending:
                    t.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                raise failed[0].exception()
    except asyncio.CancelledError:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    return tasks[0].result(), tasks[1].result()

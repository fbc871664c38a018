# chemledger/services/retry.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError

from chemledger.core.config import AppSettings
from chemledger.core.tx import TxManager
from chemledger.services.errors import (
    DeadlineExceededError,
    StorageTransientError,
    classify_db_error,
)

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """固定间隔重试：最多 max_attempts 次（含首次），两次之间 sleep delay 秒。"""

    max_attempts: int = 3
    delay: float = 0.1

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "RetryPolicy":
        return cls(
            max_attempts=int(settings.RETRY_MAX_ATTEMPTS),
            delay=float(settings.RETRY_DELAY_MS) / 1000.0,
        )


NO_RETRY = RetryPolicy(max_attempts=1, delay=0.0)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    label: str = "storage_op",
) -> T:
    """
    统一执行器：只对 StorageTransient（锁冲突 / 连接抖动）做固定间隔重试。

    - operation 每次调用都必须从头开始（一次幂等读，或一个全新的原子单元）；
      不要把它套在已开启事务内的单条语句上；
    - DBAPIError 先经 classify_db_error 归类；业务错误（库存不足 / 不存在）原样抛出；
    - 截止时间到（DeadlineExceededError）不重试；
    - 预算耗尽时抛出最后一次的错误。
    """
    pol = policy or RetryPolicy()
    attempts = max(1, int(pol.max_attempts))

    for i in range(attempts):
        try:
            return await operation()
        except DBAPIError as e:
            err = classify_db_error(e)
            if not isinstance(err, StorageTransientError) or i >= attempts - 1:
                raise err from e
            log.warning("%s transient failure (attempt %d/%d): %s", label, i + 1, attempts, err)
        except DeadlineExceededError:
            raise
        except StorageTransientError as e:
            if i >= attempts - 1:
                raise
            log.warning("%s transient failure (attempt %d/%d): %s", label, i + 1, attempts, e)
        await asyncio.sleep(pol.delay)

    raise AssertionError("unreachable")  # pragma: no cover


async def with_deadline(
    aw: Awaitable[T],
    timeout: Optional[float],
    *,
    label: str = "storage_op",
) -> T:
    """
    整体截止时间：超时即取消内部 awaitable，并以 DeadlineExceededError 抛出。
    timeout 为 None 表示不限时。

    只用于只读操作。写事务走 run_unit：这里的取消可能落在 COMMIT 进行中，
    调用方拿到超时但提交已生效。
    """
    if timeout is None:
        return await aw
    try:
        return await asyncio.wait_for(aw, timeout=float(timeout))
    except asyncio.TimeoutError as e:
        log.warning("%s deadline exceeded after %.3fs", label, float(timeout))
        raise DeadlineExceededError(
            f"{label} exceeded deadline of {float(timeout):.3f}s",
            context={"timeout_s": float(timeout)},
        ) from e


async def run_unit(
    tx: TxManager,
    unit: Callable[..., Awaitable[T]],
    *,
    policy: Optional[RetryPolicy] = None,
    timeout: Optional[float] = None,
    label: str = "storage_op",
    **kwargs: Any,
) -> T:
    """
    写事务执行器：with_retry(TxManager.run(unit))，截止时间只约束单元体。

    - 每次尝试都是全新的 session + 原子单元，共享同一个截止时刻；
    - 单元体超时 → 在事务内取消并回滚，抛 DeadlineExceededError（不重试）；
    - 单元体按时返回后，COMMIT 在截止时间之外完成：
      调用方拿到 DeadlineExceededError 时，本次调用一定没有任何持久化。
    """
    loop = asyncio.get_running_loop()
    expires = None if timeout is None else loop.time() + float(timeout)

    async def _bounded(session: Any, **kw: Any) -> T:
        body = unit(session=session, **kw)
        if expires is None:
            return await body
        try:
            return await asyncio.wait_for(body, timeout=max(expires - loop.time(), 0.0))
        except asyncio.TimeoutError as e:
            log.warning("%s deadline exceeded after %.3fs", label, float(timeout))
            raise DeadlineExceededError(
                f"{label} exceeded deadline of {float(timeout):.3f}s",
                context={"timeout_s": float(timeout)},
            ) from e

    return await with_retry(lambda: tx.run(_bounded, **kwargs), policy, label=label)

# chemledger/services/recalc_engine.py
from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from chemledger.services.errors import InsufficientStockError, NotFoundError
from chemledger.services.ledger_store import LedgerStore
from chemledger.services.ledger_types import LedgerLine, RecalcResult

log = logging.getLogger(__name__)


def replay_from(
    compound_id: str,
    baseline: int,
    lines: Sequence[LedgerLine],
) -> List[Tuple[int, int]]:
    """
    纯内存重放：running 从 baseline 出发，按给定顺序逐条 ±magnitude。
    任一步余额 < 0 立即抛 InsufficientStockError（不产生任何写入）。
    """
    running = int(baseline)
    out: List[Tuple[int, int]] = []
    for ln in lines:
        running += ln.delta
        if running < 0:
            raise InsufficientStockError(
                compound_id=compound_id,
                entry_id=ln.id,
                date=ln.date,
                balance=running,
            )
        out.append((ln.id, running))
    return out


class RecalcEngine:
    """
    Net-stock 重算引擎
    ------------------
    给定化合物 + pivot（epoch 秒），在调用方的原子单元内：

      1) 锁化合物行（同一化合物的重算串行）；
      2) baseline = pivot 之前最后一条的 net_stock（没有则 0）；
      3) 读取 date >= pivot 的全部流水，(date, id) 升序；
      4) 内存重放，余额为负即中止（InsufficientStock，无部分写入）；
      5) 全部通过后一条批量 UPDATE 回写所有访问过的行。

    引擎无状态；同一 (compound, pivot) 连续调用两次结果一致。
    """

    @staticmethod
    async def recalculate(
        session: AsyncSession,
        *,
        compound_id: str,
        pivot: int,
    ) -> RecalcResult:
        store = LedgerStore(session)

        if await store.lock_compound(compound_id) is None:
            raise NotFoundError(
                f"compound not found: {compound_id}",
                context={"compound_id": compound_id},
            )

        baseline = await store.net_stock_before(compound_id, pivot)
        lines = await store.entries_from(compound_id, pivot)

        updates = replay_from(compound_id, baseline, lines)
        await store.write_net_stocks(updates)

        closing = updates[-1][1] if updates else baseline
        log.debug(
            "recalculated compound=%s pivot=%s baseline=%s visited=%d closing=%s",
            compound_id,
            pivot,
            baseline,
            len(updates),
            closing,
        )
        return RecalcResult(
            compound_id=compound_id,
            pivot=int(pivot),
            baseline=baseline,
            visited=len(updates),
            closing_balance=closing,
        )

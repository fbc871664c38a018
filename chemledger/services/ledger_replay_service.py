# chemledger/services/ledger_replay_service.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


class LedgerReplayService:
    """
    Ledger Replay Audit
    -------------------
    从 0 开始按 (date, id) 逐条重放各化合物流水，与存储的 net_stock 对账。
    只读；不修改任何数据。
    """

    @staticmethod
    async def timeline(
        session: AsyncSession,
        *,
        compound_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        where = "WHERE e.compound_id = :cid" if compound_id else ""
        sql = text(
            f"""
            SELECT e.id, e.compound_id, e.type, e.date, e.net_stock,
                   q.num_of_units * q.quantity_per_unit AS magnitude
            FROM entries e
            JOIN quantities q ON q.id = e.quantity_id
            {where}
            ORDER BY e.compound_id ASC, e.date ASC, e.id ASC;
        """
        )

        params = {"cid": compound_id} if compound_id else {}
        rows = (await session.execute(sql, params)).mappings().all()

        # 内存重放：key = compound_id
        slot: Dict[str, int] = {}
        timeline = []

        for e in rows:
            k = e["compound_id"]
            before = slot.get(k, 0)
            delta = int(e["magnitude"]) if e["type"] == "incoming" else -int(e["magnitude"])
            after = before + delta
            slot[k] = after

            timeline.append(
                {
                    "id": e["id"],
                    "compound_id": k,
                    "type": e["type"],
                    "date": e["date"],
                    "delta": delta,
                    "before": before,
                    "after": after,
                    "stored": e["net_stock"],
                }
            )

        return timeline

    @classmethod
    async def verify(
        cls,
        session: AsyncSession,
        *,
        compound_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        返回所有问题行（空列表 = 台账一致）：
        - mismatch：存储值 != 重放值；
        - negative：重放值 < 0。
        """
        issues: List[Dict[str, Any]] = []
        for t in await cls.timeline(session, compound_id=compound_id):
            if t["stored"] != t["after"]:
                issues.append({"problem": "mismatch", **t})
            if t["after"] < 0:
                issues.append({"problem": "negative", **t})
        return issues

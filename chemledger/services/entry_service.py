# chemledger/services/entry_service.py
"""
流水写入协调器（insert / update / delete）

每个调用 = 一个全新的原子单元：
    写 Quantity / Entry  →  触发 1~2 次 net_stock 重算  →  commit

- 任一步失败（库存不足 / 不存在 / 存储错误）整体回滚，用户视角“什么都没发生”；
- 整个原子单元作为一个 operation 交给 with_retry，瞬时错误时从头重跑；
- 可选 timeout（秒）：到点取消进行中的单元体并回滚，抛 DeadlineExceededError；
  COMMIT 不受截止时间约束（见 run_unit）；
- 加锁顺序固定为 化合物行（按 id 升序）→ 流水行：流水的化合物归属只在持有该化合物锁时改变。
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from chemledger.core.tx import TxManager
from chemledger.db.session import Database
from chemledger.models.enums import EntryType, Scale
from chemledger.services.compound_service import register_compound_in
from chemledger.services.errors import (
    InsufficientStockError,
    NotFoundError,
    StorageFatalError,
    StorageTransientError,
    ValidationFailedError,
)
from chemledger.services.ledger_store import LedgerStore
from chemledger.services.ledger_types import EntryPatch, EntrySnapshot, NewEntry
from chemledger.services.recalc_engine import RecalcEngine
from chemledger.services.retry import RetryPolicy, run_unit
from chemledger.services.utils.day import day_to_epoch
from chemledger.services.utils.naming import lower_case_name

log = logging.getLogger(__name__)

T = TypeVar("T")


def _require_positive(field: str, v: Optional[int]) -> None:
    if v is not None and int(v) <= 0:
        raise ValidationFailedError(f"{field} must be a positive integer", context={field: v})


class EntryService:
    def __init__(
        self,
        db: Database,
        *,
        policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        engine: Optional[RecalcEngine] = None,
    ) -> None:
        self._tx = TxManager(db.session_maker)
        self._policy = policy or RetryPolicy()
        self._timeout = timeout
        self._engine = engine or RecalcEngine()

    # ======================== insert ========================

    async def insert_entry(self, data: NewEntry, *, timeout: Optional[float] = None) -> int:
        """新增一条流水，返回 entry id。"""
        _require_positive("num_of_units", data.num_of_units)
        _require_positive("quantity_per_unit", data.quantity_per_unit)
        if not data.compound_id and not (data.compound_name or "").strip():
            raise ValidationFailedError("either compound_id or compound_name is required")

        return await self._execute("insert_entry", self._insert_unit, timeout, data=data)

    async def _insert_unit(self, session: AsyncSession, *, data: NewEntry) -> int:
        store = LedgerStore(session)
        entry_type = EntryType(data.entry_type)
        compound_id = await self._resolve_compound(store, session, data, entry_type)
        await store.lock_compound(compound_id)

        date = day_to_epoch(data.date)
        qid = await store.insert_quantity(
            num_of_units=data.num_of_units,
            quantity_per_unit=data.quantity_per_unit,
        )
        eid = await store.insert_entry(
            entry_type=entry_type,
            compound_id=compound_id,
            date=date,
            quantity_id=qid,
            remark=data.remark,
            voucher_no=data.voucher_no,
        )
        res = await self._engine.recalculate(session, compound_id=compound_id, pivot=date)

        log.info(
            "entry inserted id=%s compound=%s type=%s magnitude=%s closing=%s",
            eid,
            compound_id,
            entry_type,
            data.num_of_units * data.quantity_per_unit,
            res.closing_balance,
        )
        return eid

    async def _resolve_compound(
        self,
        store: LedgerStore,
        session: AsyncSession,
        data: NewEntry,
        entry_type: EntryType,
    ) -> str:
        """
        - 指定 compound_id：必须存在；
        - 仅给名称：按大小写无关名称查找；首次入库（Incoming + scale）自动登记，
          出库指向未知化合物一律 NotFound。
        """
        if data.compound_id:
            if await store.get_compound(data.compound_id) is None:
                raise NotFoundError(
                    f"compound not found: {data.compound_id}",
                    context={"compound_id": data.compound_id},
                )
            return data.compound_id

        name = (data.compound_name or "").strip()
        found = await store.find_compound(lower_name=lower_case_name(name))
        if found is not None:
            return found.id

        if entry_type is not EntryType.INCOMING:
            raise NotFoundError(f"compound not found: {name}", context={"compound_name": name})
        if data.scale is None:
            raise ValidationFailedError(
                "scale is required to register a new compound",
                context={"compound_name": name},
            )
        registered = await register_compound_in(session, name=name, scale=Scale(data.scale), existing_ok=True)
        return registered.id

    # ======================== update ========================

    async def update_entry(
        self,
        entry_id: int,
        patch: EntryPatch,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        """
        部分更新：每个提供的字段都独立生效，未提供的保持原值。

        重算规则（以变更前快照为准）：
        - 换化合物：旧化合物从旧日期起一遍，新化合物从 min(旧, 新日期) 起一遍；
        - 同化合物改日期 / 数量 / 方向：从 min(旧, 新日期) 起一遍；
        - 只改备注 / 单号：不重算。
        """
        _require_positive("num_of_units", patch.num_of_units)
        _require_positive("quantity_per_unit", patch.quantity_per_unit)
        await self._execute("update_entry", self._update_unit, timeout, entry_id=entry_id, patch=patch)

    async def _update_unit(self, session: AsyncSession, *, entry_id: int, patch: EntryPatch) -> None:
        store = LedgerStore(session)
        if patch.is_empty():
            if await store.get_entry(entry_id) is None:
                raise NotFoundError(f"entry not found: {entry_id}", context={"entry_id": entry_id})
            log.debug("update_entry id=%s: empty patch, nothing to do", entry_id)
            return

        old = await self._lock_entry(store, entry_id, also=[patch.compound_id] if patch.compound_id else [])

        entry_vals: Dict[str, Any] = {}
        qty_vals: Dict[str, Any] = {}

        new_type = old.type if patch.entry_type is None else EntryType(patch.entry_type)
        if new_type is not old.type:
            entry_vals["type"] = str(new_type)

        new_compound = patch.compound_id or old.compound_id
        if new_compound != old.compound_id:
            entry_vals["compound_id"] = new_compound

        new_date = old.date if patch.date is None else day_to_epoch(patch.date)
        if new_date != old.date:
            entry_vals["date"] = new_date

        if patch.num_of_units is not None and int(patch.num_of_units) != old.num_of_units:
            qty_vals["num_of_units"] = int(patch.num_of_units)
        if patch.quantity_per_unit is not None and int(patch.quantity_per_unit) != old.quantity_per_unit:
            qty_vals["quantity_per_unit"] = int(patch.quantity_per_unit)

        if patch.remark is not None:
            entry_vals["remark"] = patch.remark
        if patch.voucher_no is not None:
            entry_vals["voucher_no"] = patch.voucher_no

        needs_recalc = bool(qty_vals) or any(k in entry_vals for k in ("type", "compound_id", "date"))

        await store.update_quantity(old.quantity_id, qty_vals)
        await store.update_entry(entry_id, entry_vals)

        if needs_recalc:
            pivot = min(old.date, new_date)
            if new_compound != old.compound_id:
                await self._engine.recalculate(session, compound_id=old.compound_id, pivot=old.date)
                await self._engine.recalculate(session, compound_id=new_compound, pivot=pivot)
            else:
                await self._engine.recalculate(session, compound_id=old.compound_id, pivot=pivot)

        log.info(
            "entry updated id=%s fields=%s recalc=%s",
            entry_id,
            sorted([*entry_vals, *qty_vals]),
            needs_recalc,
        )

    # ======================== delete ========================

    async def delete_entry(self, entry_id: int, *, timeout: Optional[float] = None) -> None:
        """删除流水及其 Quantity，并从被删流水的日期起重算其化合物。"""
        await self._execute("delete_entry", self._delete_unit, timeout, entry_id=entry_id)

    async def _delete_unit(self, session: AsyncSession, *, entry_id: int) -> None:
        store = LedgerStore(session)
        old = await self._lock_entry(store, entry_id)

        await store.delete_entry(entry_id)
        await store.delete_quantity(old.quantity_id)
        res = await self._engine.recalculate(session, compound_id=old.compound_id, pivot=old.date)

        log.info(
            "entry deleted id=%s compound=%s closing=%s",
            entry_id,
            old.compound_id,
            res.closing_balance,
        )

    # ======================== 加锁快照 ========================

    async def _lock_entry(
        self,
        store: LedgerStore,
        entry_id: int,
        *,
        also: Iterable[str] = (),
    ) -> EntrySnapshot:
        """
        先锁流水当前所属化合物（及 also 中的目标化合物，按 id 升序），再 FOR UPDATE 重读流水。
        重读到的归属若已被并发改走，抛 StorageTransientError 让整个单元从头重跑。
        """
        seen = await store.get_entry(entry_id)
        if seen is None:
            raise NotFoundError(f"entry not found: {entry_id}", context={"entry_id": entry_id})

        for cid in sorted({seen.compound_id, *also}):
            if await store.lock_compound(cid) is None:
                raise NotFoundError(f"compound not found: {cid}", context={"compound_id": cid})

        old = await store.get_entry(entry_id, for_update=True)
        if old is None:
            raise NotFoundError(f"entry not found: {entry_id}", context={"entry_id": entry_id})
        if old.compound_id != seen.compound_id:
            raise StorageTransientError(
                f"entry {entry_id} moved to another compound concurrently",
                context={"entry_id": entry_id, "from": seen.compound_id, "to": old.compound_id},
            )
        return old

    # ======================== 执行器 ========================

    async def _execute(
        self,
        label: str,
        unit: Callable[..., Awaitable[T]],
        timeout: Optional[float],
        **kwargs: Any,
    ) -> T:
        try:
            return await run_unit(
                self._tx,
                unit,
                policy=self._policy,
                timeout=self._timeout if timeout is None else timeout,
                label=label,
                **kwargs,
            )
        except (InsufficientStockError, NotFoundError, ValidationFailedError) as e:
            log.info("%s rolled back: %s", label, e.message)
            raise
        except (StorageTransientError, StorageFatalError) as e:
            log.error("%s failed: %s", label, e.message)
            raise

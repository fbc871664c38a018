# chemledger/services/compound_service.py
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from chemledger.core.tx import TxManager
from chemledger.db.session import Database
from chemledger.models.compound import Compound
from chemledger.models.enums import Scale
from chemledger.services.errors import (
    CompoundExistsError,
    NotFoundError,
    ValidationFailedError,
)
from chemledger.services.ledger_store import LedgerStore
from chemledger.services.ledger_types import CompoundStock
from chemledger.services.retry import RetryPolicy, run_unit, with_deadline, with_retry
from chemledger.services.utils.naming import compound_id_from_name, lower_case_name

log = logging.getLogger(__name__)


async def register_compound_in(
    session: AsyncSession,
    *,
    name: str,
    scale: Scale,
    existing_ok: bool = False,
) -> Compound:
    """
    在调用方的原子单元内登记化合物（新增流水自动建档时复用）。
    名称大小写无关唯一；由名称推导的 id 也不得冲突。

    existing_ok=True：同名（大小写无关）化合物已存在（含并发登记先提交）时直接返回它，
    而不是抛 CompoundExistsError。
    """
    name = (name or "").strip()
    if not name:
        raise ValidationFailedError("compound name must not be blank")

    cid = compound_id_from_name(name)
    lower = lower_case_name(name)
    store = LedgerStore(session)
    found = await store.find_compound(compound_id=cid, lower_name=lower)
    if found is None:
        if await store.insert_compound(compound_id=cid, lower_name=lower, name=name, scale=str(Scale(scale))):
            obj = await store.get_compound(cid)
            log.info("compound registered id=%s name=%r scale=%s", cid, name, obj.scale)
            return obj
        # 唯一约束上输给了并发登记：读它已提交的那一行
        found = await store.find_compound(lower_name=lower) or await store.find_compound(
            compound_id=cid, lower_name=lower
        )

    if existing_ok and found is not None and found.lower_case_name == lower:
        return found
    raise CompoundExistsError(name)


class CompoundService:
    """化合物主档：登记 / 改名改刻度 / 列表 / 当前库存。"""

    def __init__(
        self,
        db: Database,
        *,
        policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._db = db
        self._tx = TxManager(db.session_maker)
        self._policy = policy or RetryPolicy()
        self._timeout = timeout

    async def register_compound(self, name: str, scale: Scale, *, timeout: Optional[float] = None) -> str:
        async def _unit(session: AsyncSession) -> str:
            return (await register_compound_in(session, name=name, scale=scale)).id

        return await run_unit(
            self._tx,
            _unit,
            policy=self._policy,
            timeout=self._pick_timeout(timeout),
            label="register_compound",
        )

    async def update_compound(
        self,
        compound_id: str,
        *,
        name: Optional[str] = None,
        scale: Optional[Scale] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """改名（重新校验大小写无关唯一）/ 改刻度；id 永不变。"""

        async def _unit(session: AsyncSession) -> None:
            store = LedgerStore(session)
            current = await store.lock_compound(compound_id)
            if current is None:
                raise NotFoundError(f"compound not found: {compound_id}", context={"compound_id": compound_id})

            values = {}
            if scale is not None and str(scale) != current.scale:
                values["scale"] = str(Scale(scale))

            new_name = (name or "").strip()
            if new_name and new_name != current.name:
                lower = lower_case_name(new_name)
                if lower != current.lower_case_name:
                    other = await store.find_compound(lower_name=lower)
                    if other is not None and other.id != compound_id:
                        raise CompoundExistsError(new_name)
                values["name"] = new_name
                values["lower_case_name"] = lower

            await store.update_compound(compound_id, values)
            if values:
                log.info("compound updated id=%s fields=%s", compound_id, sorted(values))

        await run_unit(
            self._tx,
            _unit,
            policy=self._policy,
            timeout=self._pick_timeout(timeout),
            label="update_compound",
        )

    async def list_compounds(self, *, has_entries: bool = False) -> List[Compound]:
        async def _read() -> List[Compound]:
            async with self._db.session_maker() as session:
                return await LedgerStore(session).list_compounds(has_entries=has_entries)

        return await with_deadline(
            with_retry(_read, self._policy, label="list_compounds"),
            self._timeout,
            label="list_compounds",
        )

    async def get_compound(self, compound_id: str) -> CompoundStock:
        async def _read() -> CompoundStock:
            async with self._db.session_maker() as session:
                store = LedgerStore(session)
                c = await store.get_compound(compound_id)
                if c is None:
                    raise NotFoundError(
                        f"compound not found: {compound_id}",
                        context={"compound_id": compound_id},
                    )
                return CompoundStock(
                    id=c.id,
                    name=c.name,
                    scale=c.scale,
                    net_stock=await store.latest_net_stock(compound_id),
                )

        return await with_deadline(
            with_retry(_read, self._policy, label="get_compound"),
            self._timeout,
            label="get_compound",
        )

    def _pick_timeout(self, timeout: Optional[float]) -> Optional[float]:
        return self._timeout if timeout is None else timeout

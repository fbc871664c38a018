# chemledger/services/ledger_store.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

import sqlalchemy as sa
from sqlalchemy import bindparam, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from chemledger.models.compound import Compound
from chemledger.models.entry import Entry
from chemledger.models.enums import EntryType
from chemledger.models.quantity import Quantity
from chemledger.services.ledger_types import (
    EntryFilter,
    EntryRow,
    EntrySnapshot,
    LedgerLine,
    Page,
)
from chemledger.services.utils.day import day_to_epoch, next_day_epoch

_entries = Entry.__table__

# 单条参数化 UPDATE，按参数列表 executemany（一次往返，不拼接 SQL）
_NET_STOCK_UPDATE = (
    sa.update(_entries)
    .where(_entries.c.id == bindparam("b_id"))
    .values(net_stock=bindparam("b_net"))
)


class LedgerStore:
    """
    台账存储访问（纯持久化，不含业务规则）：

    - 所有调用都在调用方给定的 AsyncSession 上执行，事务边界由调用方控制；
    - 点查询：最新余额 / 某日之前最后一条余额 / 某日起的后缀流水；
    - net_stock 回写：每次重算只发一条批量 UPDATE。
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ======================== compounds ========================

    async def get_compound(self, compound_id: str) -> Optional[Compound]:
        return (
            await self.session.execute(select(Compound).where(Compound.id == compound_id))
        ).scalar_one_or_none()

    def _dialect(self) -> str:
        return self.session.get_bind().dialect.name

    async def lock_compound(self, compound_id: str) -> Optional[Compound]:
        """
        化合物行锁：同一化合物的写入 / 重算在此串行。
        - PG：SELECT ... FOR UPDATE；
        - sqlite 不支持行锁：先发一条空写拿到库级写锁，之后的读都是最新提交值。
        """
        if self._dialect() == "sqlite":
            await self.session.execute(
                sa.update(Compound.__table__)
                .where(Compound.__table__.c.id == compound_id)
                .values(scale=Compound.__table__.c.scale)
            )
        return (
            await self.session.execute(
                select(Compound)
                .where(Compound.id == compound_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()

    async def find_compound(self, *, compound_id: Optional[str] = None, lower_name: str) -> Optional[Compound]:
        """id 或大小写无关名称任一命中即返回（登记前查重）。"""
        cond = Compound.lower_case_name == lower_name
        if compound_id:
            cond = sa.or_(Compound.id == compound_id, cond)
        return (
            await self.session.execute(select(Compound).where(cond).limit(1))
        ).scalars().first()

    async def insert_compound(self, *, compound_id: str, lower_name: str, name: str, scale: str) -> bool:
        """
        INSERT ... ON CONFLICT DO NOTHING：id / 名称已被（含并发提交的）其它登记占用时返回 False。
        """
        ins = pg_insert if self._dialect() == "postgresql" else sqlite_insert
        res = await self.session.execute(
            ins(Compound.__table__)
            .values(id=compound_id, lower_case_name=lower_name, name=name, scale=scale)
            .on_conflict_do_nothing()
        )
        return (res.rowcount or 0) > 0

    async def update_compound(self, compound_id: str, values: Dict[str, Any]) -> None:
        if not values:
            return
        await self.session.execute(
            sa.update(Compound).where(Compound.id == compound_id).values(**values)
        )

    async def list_compounds(self, *, has_entries: bool = False) -> List[Compound]:
        stmt = select(Compound)
        if has_entries:
            stmt = stmt.where(select(Entry.id).where(Entry.compound_id == Compound.id).exists())
        stmt = stmt.order_by(Compound.lower_case_name.asc())
        return list((await self.session.execute(stmt)).scalars().all())

    # ======================== 余额点查询 ========================

    async def latest_net_stock(self, compound_id: str) -> int:
        v = (
            await self.session.execute(
                select(Entry.net_stock)
                .where(Entry.compound_id == compound_id)
                .order_by(Entry.date.desc(), Entry.id.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        return int(v or 0)

    async def net_stock_before(self, compound_id: str, date: int) -> int:
        v = (
            await self.session.execute(
                select(Entry.net_stock)
                .where(Entry.compound_id == compound_id, Entry.date < int(date))
                .order_by(Entry.date.desc(), Entry.id.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        return int(v or 0)

    async def entries_from(self, compound_id: str, date: int) -> List[LedgerLine]:
        rows = (
            await self.session.execute(
                select(
                    Entry.id,
                    Entry.type,
                    Entry.date,
                    Entry.net_stock,
                    Quantity.num_of_units,
                    Quantity.quantity_per_unit,
                )
                .join(Quantity, Quantity.id == Entry.quantity_id)
                .where(Entry.compound_id == compound_id, Entry.date >= int(date))
                .order_by(Entry.date.asc(), Entry.id.asc())
            )
        ).all()
        return [
            LedgerLine(
                id=int(r.id),
                type=EntryType(r.type),
                date=int(r.date),
                magnitude=int(r.num_of_units) * int(r.quantity_per_unit),
                net_stock=int(r.net_stock),
            )
            for r in rows
        ]

    async def write_net_stocks(self, pairs: Sequence[Tuple[int, int]]) -> int:
        """批量回写 net_stock：[(entry_id, net_stock), ...]。"""
        if not pairs:
            return 0
        await self.session.execute(
            _NET_STOCK_UPDATE,
            [{"b_id": int(eid), "b_net": int(net)} for eid, net in pairs],
        )
        return len(pairs)

    # ======================== entries / quantities 写入 ========================

    async def insert_quantity(self, *, num_of_units: int, quantity_per_unit: int) -> int:
        q = Quantity(num_of_units=int(num_of_units), quantity_per_unit=int(quantity_per_unit))
        self.session.add(q)
        await self.session.flush()
        return int(q.id)

    async def insert_entry(
        self,
        *,
        entry_type: EntryType,
        compound_id: str,
        date: int,
        quantity_id: int,
        remark: Optional[str],
        voucher_no: Optional[str],
    ) -> int:
        # net_stock 先占位，随后由同一原子单元内的重算覆盖
        e = Entry(
            type=str(entry_type),
            compound_id=compound_id,
            date=int(date),
            quantity_id=int(quantity_id),
            remark=remark,
            voucher_no=voucher_no,
            net_stock=0,
        )
        self.session.add(e)
        await self.session.flush()
        return int(e.id)

    async def get_entry(self, entry_id: int, *, for_update: bool = False) -> Optional[EntrySnapshot]:
        """for_update=True：锁住流水行（FOR UPDATE OF entries），读到的是已提交的最新值。"""
        stmt = (
            select(
                Entry.id,
                Entry.type,
                Entry.compound_id,
                Entry.date,
                Entry.quantity_id,
                Entry.remark,
                Entry.voucher_no,
                Entry.net_stock,
                Quantity.num_of_units,
                Quantity.quantity_per_unit,
            )
            .join(Quantity, Quantity.id == Entry.quantity_id)
            .where(Entry.id == int(entry_id))
        )
        if for_update:
            stmt = stmt.with_for_update(of=Entry)
        r = (await self.session.execute(stmt)).one_or_none()
        if r is None:
            return None
        return EntrySnapshot(
            id=int(r.id),
            type=EntryType(r.type),
            compound_id=r.compound_id,
            date=int(r.date),
            quantity_id=int(r.quantity_id),
            num_of_units=int(r.num_of_units),
            quantity_per_unit=int(r.quantity_per_unit),
            remark=r.remark,
            voucher_no=r.voucher_no,
            net_stock=int(r.net_stock),
        )

    async def update_entry(self, entry_id: int, values: Dict[str, Any]) -> None:
        if not values:
            return
        await self.session.execute(
            sa.update(_entries).where(_entries.c.id == int(entry_id)).values(**values)
        )

    async def update_quantity(self, quantity_id: int, values: Dict[str, Any]) -> None:
        if not values:
            return
        await self.session.execute(
            sa.update(Quantity.__table__)
            .where(Quantity.__table__.c.id == int(quantity_id))
            .values(**values)
        )

    async def delete_entry(self, entry_id: int) -> None:
        await self.session.execute(sa.delete(_entries).where(_entries.c.id == int(entry_id)))

    async def delete_quantity(self, quantity_id: int) -> None:
        await self.session.execute(
            sa.delete(Quantity.__table__).where(Quantity.__table__.c.id == int(quantity_id))
        )

    # ======================== 过滤查询（count / rows） ========================

    @staticmethod
    def build_conditions(flt: EntryFilter) -> list:
        conditions: list = []

        if flt.entry_type is not None:
            conditions.append(Entry.type == str(flt.entry_type))

        if flt.compound_id:
            conditions.append(Entry.compound_id == flt.compound_id)

        if flt.date_from is not None:
            conditions.append(Entry.date >= day_to_epoch(flt.date_from))

        if flt.date_to is not None:
            conditions.append(Entry.date < next_day_epoch(flt.date_to))

        if flt.latest_only:
            # 每个化合物 (date, id) 序的最后一条
            e2 = aliased(Entry)
            latest_id = (
                select(e2.id)
                .where(e2.compound_id == Entry.compound_id)
                .order_by(e2.date.desc(), e2.id.desc())
                .limit(1)
                .correlate(Entry)
                .scalar_subquery()
            )
            conditions.append(Entry.id == latest_id)

        return conditions

    async def count_entries(self, flt: EntryFilter) -> int:
        stmt = select(func.count(Entry.id)).where(*self.build_conditions(flt))
        return int((await self.session.execute(stmt)).scalar_one())

    async def fetch_entries(self, flt: EntryFilter, page: Page) -> List[EntryRow]:
        stmt = (
            select(
                Entry.id,
                Entry.type,
                Entry.date,
                Entry.remark,
                Entry.voucher_no,
                Entry.net_stock,
                Entry.compound_id,
                Compound.name.label("compound_name"),
                Compound.scale,
                Quantity.num_of_units,
                Quantity.quantity_per_unit,
            )
            .join(Compound, Compound.id == Entry.compound_id)
            .join(Quantity, Quantity.id == Entry.quantity_id)
            .where(*self.build_conditions(flt))
            .order_by(Entry.date.desc(), Entry.id.desc())
            .limit(int(page.limit))
            .offset(int(page.offset))
        )
        rows = (await self.session.execute(stmt)).all()
        return [
            EntryRow(
                id=int(r.id),
                type=EntryType(r.type),
                date=int(r.date),
                remark=r.remark,
                voucher_no=r.voucher_no,
                net_stock=int(r.net_stock),
                compound_id=r.compound_id,
                compound_name=r.compound_name,
                scale=r.scale,
                num_of_units=int(r.num_of_units),
                quantity_per_unit=int(r.quantity_per_unit),
            )
            for r in rows
        ]

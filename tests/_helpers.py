# tests/_helpers.py
from __future__ import annotations

from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from chemledger.models.entry import Entry
from chemledger.models.enums import EntryType, Scale
from chemledger.services.entry_service import EntryService
from chemledger.services.ledger_types import NewEntry

IN = EntryType.INCOMING
OUT = EntryType.OUTGOING


def D(day: int, month: int = 1) -> date:
    return date(2024, month, day)


async def add(
    svc: EntryService,
    entry_type: EntryType,
    compound: str,
    day: date,
    units: int,
    per_unit: int = 1,
    *,
    scale: Optional[Scale] = Scale.G,
) -> int:
    """按名称写一条流水（首次入库自动登记化合物）。"""
    return await svc.insert_entry(
        NewEntry(
            entry_type=entry_type,
            date=day,
            num_of_units=units,
            quantity_per_unit=per_unit,
            compound_name=compound,
            scale=scale,
        )
    )


async def nets(session: AsyncSession, compound_id: str) -> List[Tuple[int, int]]:
    """[(entry_id, net_stock)]，按 (date, id) 升序。"""
    rows = (
        await session.execute(
            select(Entry.id, Entry.net_stock)
            .where(Entry.compound_id == compound_id)
            .order_by(Entry.date.asc(), Entry.id.asc())
        )
    ).all()
    return [(int(r.id), int(r.net_stock)) for r in rows]


async def snapshot(session: AsyncSession) -> tuple:
    """整库快照（entries + quantities + compounds），用于“什么都没变”断言。"""
    entries = (
        await session.execute(
            text(
                "SELECT id, type, compound_id, date, remark, voucher_no, quantity_id, net_stock "
                "FROM entries ORDER BY id"
            )
        )
    ).all()
    quantities = (
        await session.execute(
            text("SELECT id, num_of_units, quantity_per_unit FROM quantities ORDER BY id")
        )
    ).all()
    compounds = (
        await session.execute(
            text("SELECT id, lower_case_name, name, scale FROM compounds ORDER BY id")
        )
    ).all()
    return tuple(map(tuple, entries)), tuple(map(tuple, quantities)), tuple(map(tuple, compounds))

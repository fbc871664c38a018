# tests/services/test_concurrent_mutations.py
from __future__ import annotations

import asyncio
import os

import pytest
from sqlalchemy import text

from chemledger.services.entry_service import EntryService
from chemledger.services.errors import NotFoundError
from chemledger.services.ledger_replay_service import LedgerReplayService
from chemledger.services.ledger_types import EntryPatch
from chemledger.services.retry import RetryPolicy
from tests._helpers import IN, OUT, D, add, nets

pytestmark = pytest.mark.asyncio

ON_POSTGRES = os.getenv("CHEMLEDGER_TEST_DATABASE_URL", "").startswith("postgres")


@pytest.fixture
def busy_service(database) -> EntryService:
    # 并发写会撞锁：给足重试预算
    return EntryService(database, policy=RetryPolicy(max_attempts=8, delay=0.01))


async def _entry_exists(session, entry_id: int) -> bool:
    n = (await session.execute(text("SELECT COUNT(*) FROM entries WHERE id = :id"), {"id": entry_id})).scalar_one()
    return int(n) == 1


async def test_concurrent_inserts_same_compound(busy_service, session):
    await add(busy_service, IN, "Ethanol", D(1), 100)

    # 日期乱序交错：每条插入都会触发一次覆盖他人流水的重算
    days = [9, 3, 15, 2, 20, 7, 11, 5, 18, 4, 13, 6, 21, 8, 16, 10, 12, 14, 17, 19]
    jobs = [
        add(busy_service, IN if i % 2 == 0 else OUT, "Ethanol", D(day), 3 if i % 2 == 0 else 2)
        for i, day in enumerate(days)
    ]
    results = await asyncio.gather(*jobs, return_exceptions=True)

    assert [r for r in results if isinstance(r, BaseException)] == []
    assert len(set(results)) == 20
    assert await LedgerReplayService.verify(session) == []
    assert (await nets(session, "ethanol"))[-1][1] == 100 + 10 * 3 - 10 * 2


async def test_concurrent_first_incoming_registers_compound_once(busy_service, session):
    results = await asyncio.gather(
        *[add(busy_service, IN, "Xylene", D(1), 1) for _ in range(5)],
        return_exceptions=True,
    )

    assert [r for r in results if isinstance(r, BaseException)] == []
    n = (await session.execute(text("SELECT COUNT(*) FROM compounds"))).scalar_one()
    assert int(n) == 1
    assert [net for _, net in await nets(session, "xylene")] == [1, 2, 3, 4, 5]


async def _move_and_delete_round(svc: EntryService, session) -> None:
    await add(svc, IN, "Ethanol", D(1), 10)
    x = await add(svc, IN, "Ethanol", D(3), 5)
    await add(svc, OUT, "Ethanol", D(4), 2)
    await add(svc, IN, "Methanol", D(1), 3)
    await add(svc, OUT, "Methanol", D(5), 1)
    methanol_before = [net for _, net in await nets(session, "methanol")]

    results = await asyncio.gather(
        svc.update_entry(x, EntryPatch(compound_id="methanol", date=D(2))),
        svc.delete_entry(x),
        return_exceptions=True,
    )

    # 先删则改名扑空（NotFound）；先改则删的是已搬到 methanol 的那一行
    assert all(r is None or isinstance(r, NotFoundError) for r in results), results
    assert results[1] is None
    assert not await _entry_exists(session, x)
    assert await LedgerReplayService.verify(session) == []
    assert [net for _, net in await nets(session, "methanol")][-len(methanol_before):] == methanol_before


async def test_concurrent_move_and_delete_same_entry(busy_service, session):
    await _move_and_delete_round(busy_service, session)


async def test_opposite_moves_do_not_deadlock(busy_service, session):
    await add(busy_service, IN, "Ethanol", D(1), 10)
    a = await add(busy_service, IN, "Ethanol", D(2), 4)
    await add(busy_service, IN, "Methanol", D(1), 10)
    b = await add(busy_service, IN, "Methanol", D(2), 6)

    results = await asyncio.gather(
        busy_service.update_entry(a, EntryPatch(compound_id="methanol")),
        busy_service.update_entry(b, EntryPatch(compound_id="ethanol")),
        return_exceptions=True,
    )

    assert results == [None, None]
    assert await LedgerReplayService.verify(session) == []
    assert (await nets(session, "ethanol"))[-1][1] == 16
    assert (await nets(session, "methanol"))[-1][1] == 14


@pytest.mark.skipif(not ON_POSTGRES, reason="row-level locking needs CHEMLEDGER_TEST_DATABASE_URL=postgresql://...")
async def test_move_and_delete_race_keeps_ledger_consistent_on_postgres(database, busy_service, session):
    for _ in range(10):
        async with database.session_maker() as s, s.begin():
            await s.execute(text("DELETE FROM entries"))
            await s.execute(text("DELETE FROM quantities"))
            await s.execute(text("DELETE FROM compounds"))
        await _move_and_delete_round(busy_service, session)

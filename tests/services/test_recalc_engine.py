# tests/services/test_recalc_engine.py
from __future__ import annotations

import pytest
from sqlalchemy import text

from chemledger.services.errors import InsufficientStockError, NotFoundError
from chemledger.services.ledger_types import LedgerLine
from chemledger.services.recalc_engine import RecalcEngine, replay_from
from chemledger.services.utils.day import day_to_epoch
from tests._helpers import IN, OUT, D, add, nets, snapshot

pytestmark = pytest.mark.asyncio


def _line(i, t, mag, day=1):
    return LedgerLine(id=i, type=t, date=day_to_epoch(D(day)), magnitude=mag, net_stock=0)


async def test_replay_from_baseline():
    out = replay_from("c", 5, [_line(1, IN, 10), _line(2, OUT, 12), _line(3, IN, 1)])
    assert out == [(1, 15), (2, 3), (3, 4)]


async def test_replay_fails_fast_on_negative():
    with pytest.raises(InsufficientStockError) as ei:
        replay_from("c", 0, [_line(1, IN, 10), _line(2, OUT, 11), _line(3, IN, 100)])
    assert ei.value.entry_id == 2
    assert ei.value.balance == -1


async def test_empty_history_is_trivial_success(database, compound_service):
    cid = await compound_service.register_compound("Ethanol", "ml")
    async with database.session_maker() as s, s.begin():
        res = await RecalcEngine.recalculate(s, compound_id=cid, pivot=day_to_epoch(D(1)))
    assert (res.baseline, res.visited, res.closing_balance) == (0, 0, 0)


async def test_unknown_compound(database):
    async with database.session_maker() as s:
        with pytest.raises(NotFoundError):
            async with s.begin():
                await RecalcEngine.recalculate(s, compound_id="nope", pivot=0)


async def test_pivot_before_first_entry_replays_whole_history(database, entry_service, session):
    await add(entry_service, IN, "Ethanol", D(5), 10)
    await add(entry_service, OUT, "Ethanol", D(6), 4)

    # 人为弄脏缓存，再从最早之前重算
    async with database.session_maker() as s, s.begin():
        await s.execute(text("UPDATE entries SET net_stock = 999"))
    async with database.session_maker() as s, s.begin():
        res = await RecalcEngine.recalculate(s, compound_id="ethanol", pivot=day_to_epoch(D(1)))

    assert res.visited == 2
    assert res.baseline == 0
    assert [n for _, n in await nets(session, "ethanol")] == [10, 6]


async def test_pivot_in_middle_uses_baseline_and_leaves_prefix(database, entry_service, session):
    await add(entry_service, IN, "Ethanol", D(1), 50)
    await add(entry_service, OUT, "Ethanol", D(2), 5)
    await add(entry_service, IN, "Ethanol", D(3), 7)

    async with database.session_maker() as s, s.begin():
        res = await RecalcEngine.recalculate(s, compound_id="ethanol", pivot=day_to_epoch(D(2)))
    assert res.baseline == 50
    assert res.visited == 2
    assert res.closing_balance == 52


async def test_recalculate_is_idempotent(database, entry_service, session):
    await add(entry_service, IN, "Ethanol", D(1), 20)
    await add(entry_service, OUT, "Ethanol", D(2), 5)
    await add(entry_service, IN, "Ethanol", D(2), 3)

    pivot = day_to_epoch(D(1))
    async with database.session_maker() as s, s.begin():
        await RecalcEngine.recalculate(s, compound_id="ethanol", pivot=pivot)
    first = await snapshot(session)
    async with database.session_maker() as s, s.begin():
        await RecalcEngine.recalculate(s, compound_id="ethanol", pivot=pivot)
    assert await snapshot(session) == first


async def test_insufficient_stock_writes_nothing(database, entry_service, session):
    await add(entry_service, IN, "Ethanol", D(1), 10)
    await add(entry_service, OUT, "Ethanol", D(3), 8)

    # 把入库量改小到不足以覆盖后续出库，绕过协调器直接调引擎
    before = await snapshot(session)
    async with database.session_maker() as s:
        with pytest.raises(InsufficientStockError):
            async with s.begin():
                await s.execute(text("UPDATE quantities SET num_of_units = 1 WHERE id = 1"))
                await RecalcEngine.recalculate(s, compound_id="ethanol", pivot=day_to_epoch(D(1)))
    assert await snapshot(session) == before


async def test_same_day_ties_follow_insertion_order(entry_service, session):
    a = await add(entry_service, IN, "Ethanol", D(4), 10)
    b = await add(entry_service, OUT, "Ethanol", D(4), 3)
    c = await add(entry_service, IN, "Ethanol", D(4), 1)
    assert await nets(session, "ethanol") == [(a, 10), (b, 7), (c, 8)]

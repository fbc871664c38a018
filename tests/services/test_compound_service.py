# tests/services/test_compound_service.py
from __future__ import annotations

import pytest
from sqlalchemy import text

from chemledger.models.enums import Scale
from chemledger.services.compound_service import register_compound_in
from chemledger.services.errors import CompoundExistsError, NotFoundError, ValidationFailedError
from chemledger.services.ledger_store import LedgerStore
from tests._helpers import IN, D, add

pytestmark = pytest.mark.asyncio


async def test_register_and_get(compound_service):
    cid = await compound_service.register_compound("Acetic acid", Scale.ML)
    assert cid == "aceticAcid"

    stock = await compound_service.get_compound(cid)
    assert (stock.id, stock.name, stock.scale, stock.net_stock) == ("aceticAcid", "Acetic acid", "ml", 0)


async def test_duplicate_name_is_case_insensitive(compound_service):
    await compound_service.register_compound("Acetic acid", Scale.ML)
    with pytest.raises(CompoundExistsError):
        await compound_service.register_compound("ACETIC   ACID", Scale.G)


async def test_blank_name_rejected(compound_service):
    with pytest.raises(ValidationFailedError):
        await compound_service.register_compound("   ", Scale.G)


async def test_update_name_and_scale(compound_service):
    cid = await compound_service.register_compound("Ethanol", Scale.G)
    await compound_service.update_compound(cid, name="Ethyl alcohol", scale=Scale.ML)

    stock = await compound_service.get_compound(cid)
    assert (stock.id, stock.name, stock.scale) == ("ethanol", "Ethyl alcohol", "ml")

    # id 不随改名变化，旧名推导出的 id 仍被占用
    with pytest.raises(CompoundExistsError):
        await compound_service.register_compound("Ethanol", Scale.G)


async def test_rename_conflict(compound_service):
    await compound_service.register_compound("Ethanol", Scale.G)
    cid = await compound_service.register_compound("Methanol", Scale.G)
    with pytest.raises(CompoundExistsError):
        await compound_service.update_compound(cid, name="ethanol")


async def test_rename_same_name_different_case_is_allowed(compound_service):
    cid = await compound_service.register_compound("Ethanol", Scale.G)
    await compound_service.update_compound(cid, name="ETHANOL")
    assert (await compound_service.get_compound(cid)).name == "ETHANOL"


async def test_unknown_compound(compound_service):
    with pytest.raises(NotFoundError):
        await compound_service.get_compound("ghost")
    with pytest.raises(NotFoundError):
        await compound_service.update_compound("ghost", scale=Scale.G)


async def test_list_compounds(entry_service, compound_service):
    await compound_service.register_compound("Zinc", Scale.G)
    await add(entry_service, IN, "acetone", D(1), 1)
    await compound_service.register_compound("Benzene", Scale.ML)

    assert [c.id for c in await compound_service.list_compounds()] == ["acetone", "benzene", "zinc"]
    assert [c.id for c in await compound_service.list_compounds(has_entries=True)] == ["acetone"]


async def test_current_stock_follows_latest_entry(entry_service, compound_service):
    await add(entry_service, IN, "Ethanol", D(3), 10)
    await add(entry_service, IN, "Ethanol", D(1), 5)
    assert (await compound_service.get_compound("ethanol")).net_stock == 15


def _miss_first_lookup(monkeypatch):
    """查重第一次落空：模拟查完之后、插入之前被并发登记抢先提交。"""
    real = LedgerStore.find_compound
    calls = []

    async def find_compound(self, **kw):
        calls.append(kw)
        if len(calls) == 1:
            return None
        return await real(self, **kw)

    monkeypatch.setattr(LedgerStore, "find_compound", find_compound)
    return calls


async def test_register_race_returns_committed_compound(database, compound_service, session, monkeypatch):
    await compound_service.register_compound("Xylene", Scale.ML)
    calls = _miss_first_lookup(monkeypatch)

    async with database.session_maker() as s, s.begin():
        got = await register_compound_in(s, name="XYLENE", scale=Scale.G, existing_ok=True)

    assert len(calls) == 2
    assert (got.id, got.name, got.scale) == ("xylene", "Xylene", "ml")
    assert (await session.execute(text("SELECT COUNT(*) FROM compounds"))).scalar_one() == 1


async def test_register_race_without_existing_ok_is_duplicate(database, compound_service, monkeypatch):
    await compound_service.register_compound("Xylene", Scale.ML)
    _miss_first_lookup(monkeypatch)

    with pytest.raises(CompoundExistsError):
        async with database.session_maker() as s, s.begin():
            await register_compound_in(s, name="xylene", scale=Scale.G)

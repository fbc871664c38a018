# tests/unit/test_join_pair.py
from __future__ import annotations

import asyncio

import pytest

from chemledger.core.concurrency import join_pair

pytestmark = pytest.mark.asyncio


async def _value(v, delay=0.0):
    await asyncio.sleep(delay)
    return v


async def _boom(exc, delay=0.0):
    await asyncio.sleep(delay)
    raise exc


async def test_both_succeed_in_argument_order():
    a, b = await join_pair(_value("count", 0.02), _value(["row"], 0.0))
    assert a == "count"
    assert b == ["row"]


async def test_runs_concurrently():
    loop = asyncio.get_running_loop()
    t0 = loop.time()
    await join_pair(_value(1, 0.2), _value(2, 0.2))
    assert loop.time() - t0 < 0.35


async def test_failure_cancels_and_awaits_sibling():
    state = {"cancelled": False, "finished": False}

    async def slow():
        try:
            await asyncio.sleep(5)
            state["finished"] = True
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise

    with pytest.raises(ValueError):
        await join_pair(slow(), _boom(ValueError("count failed"), 0.01))

    assert state["cancelled"] is True
    assert state["finished"] is False


async def test_simultaneous_failures_surface_first_argument():
    with pytest.raises(KeyError):
        await join_pair(_boom(KeyError("first")), _boom(ValueError("second")))


async def test_outer_cancellation_cancels_both():
    cancelled = []

    async def sleeper(tag):
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.append(tag)
            raise

    task = asyncio.ensure_future(join_pair(sleeper("a"), sleeper("b")))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert sorted(cancelled) == ["a", "b"]

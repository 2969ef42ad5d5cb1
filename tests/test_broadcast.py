import asyncio

import pytest

from app.services.rates.broadcast import RATES_EVENT, RateBroadcaster

RATES = [
    {
        "currency_code": "USD",
        "currency_name": "US Dollar",
        "buy_rate": 82.0,
        "sell_rate": 85.0,
        "last_updated": "2024-01-01T00:00:00.000Z",
    }
]


def _drain(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


@pytest.mark.asyncio
async def test_new_subscriber_gets_immediate_snapshot():
    broadcaster = RateBroadcaster(lambda: RATES, interval_seconds=3600)
    queue = await broadcaster.subscribe()
    message = queue.get_nowait()
    assert message["event"] == RATES_EVENT
    assert message["rates"] == RATES
    assert "timestamp" in message


@pytest.mark.asyncio
async def test_broadcast_reaches_every_subscriber():
    broadcaster = RateBroadcaster(lambda: RATES, interval_seconds=3600)
    first = await broadcaster.subscribe()
    second = await broadcaster.subscribe()
    _drain(first)
    _drain(second)

    assert await broadcaster.broadcast() == 2
    assert len(_drain(first)) == 1
    assert len(_drain(second)) == 1

    broadcaster.unsubscribe(second)
    assert await broadcaster.broadcast() == 1
    assert _drain(second) == []


@pytest.mark.asyncio
async def test_triggers_coalesce_into_one_broadcast():
    calls = {"n": 0}

    def source():
        calls["n"] += 1
        return [{**RATES[0], "sell_rate": 85.0 + calls["n"]}]

    broadcaster = RateBroadcaster(source, interval_seconds=3600)
    await broadcaster.start()
    try:
        queue = await broadcaster.subscribe()
        _drain(queue)
        broadcaster.trigger()
        broadcaster.trigger()
        broadcaster.trigger()
        await asyncio.sleep(0.2)
        messages = _drain(queue)
        assert len(messages) == 1
        # the single broadcast reads the latest table state
        assert messages[0]["rates"][0]["sell_rate"] == 85.0 + calls["n"]
    finally:
        await broadcaster.stop()
    assert not broadcaster.running


@pytest.mark.asyncio
async def test_periodic_ticks():
    broadcaster = RateBroadcaster(lambda: RATES, interval_seconds=0.05)
    await broadcaster.start()
    try:
        queue = await broadcaster.subscribe()
        _drain(queue)
        await asyncio.sleep(0.3)
        assert len(_drain(queue)) >= 2
    finally:
        await broadcaster.stop()


@pytest.mark.asyncio
async def test_snapshot_failure_does_not_stop_loop():
    state = {"fail": True}

    def source():
        if state["fail"]:
            raise RuntimeError("database is locked")
        return RATES

    broadcaster = RateBroadcaster(source, interval_seconds=3600)
    await broadcaster.start()
    try:
        queue = await broadcaster.subscribe()
        assert queue.empty()
        broadcaster.trigger()
        await asyncio.sleep(0.1)
        assert broadcaster.running

        state["fail"] = False
        broadcaster.trigger()
        await asyncio.sleep(0.1)
        assert _drain(queue)[0]["rates"] == RATES
    finally:
        await broadcaster.stop()


def test_trigger_before_start_is_noop():
    broadcaster = RateBroadcaster(lambda: RATES)
    broadcaster.trigger()
    assert not broadcaster.running


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        RateBroadcaster(lambda: RATES, interval_seconds=0)

import asyncio
from datetime import datetime, timezone

import pytest

from wealthdash.domain import SymbolStatus
from wealthdash.market import MarketStore
from wealthdash.runner import BackgroundLoop
from wealthdash.source import REALTIME_TABLE, SeedDataSource


def make_source():
    return SeedDataSource({
        "realtime_stock_prices": [
            {"id": "a1", "symbol": "AAPL", "price": 150, "timestamp": "2025-03-01T10:00:00+00:00"},
        ],
    })


def test_run_returns_result_and_raises_errors():
    runner = BackgroundLoop()
    try:
        async def answer():
            await asyncio.sleep(0)
            return 42

        async def broken():
            raise ValueError("nope")

        assert runner.run(answer(), timeout=5) == 42
        with pytest.raises(ValueError):
            runner.run(broken(), timeout=5)
    finally:
        runner.stop()
    assert not runner.running


def test_run_after_stop_is_rejected():
    runner = BackgroundLoop()
    runner.stop()

    async def noop():
        return None

    with pytest.raises(RuntimeError):
        runner.run(noop())


def test_store_keeps_subscribing_between_calls():
    source = make_source()
    runner = BackgroundLoop()
    store = MarketStore(source)
    try:
        runner.run(store.start(), timeout=5)
        runner.run(store.set_watchlist(["AAPL"]), timeout=5)
        assert store.running
        assert source.subscriber_count(REALTIME_TABLE) == 1

        # a write made in a later call reaches the store through the push channel
        now = datetime.now(timezone.utc).isoformat()
        runner.run(source.upsert_realtime_price({"symbol": "AAPL", "price": 161.5, "timestamp": now}), timeout=5)
        runner.run(store.drain(), timeout=5)

        state = store.state("AAPL")
        assert state.status is SymbolStatus.READY
        assert state.latest.price == 161.5

        runner.run(store.dispose(), timeout=5)
        assert not store.running
        assert source.subscriber_count(REALTIME_TABLE) == 0
    finally:
        runner.stop()

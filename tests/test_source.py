import asyncio

import pytest

from wealthdash.errors import RemoteProcedureFailure
from wealthdash.source import (
    FETCH_PRICES,
    GENERATE_PREDICTIONS,
    PREDICTIONS_TABLE,
    REALTIME_TABLE,
    SeedDataSource,
)


def bar_row(symbol, day, close):
    return {"symbol": symbol, "timestamp": f"2025-03-{day:02d}T20:00:00+00:00",
            "open": close, "high": close, "low": close, "close": close, "volume": 10}


def make_source():
    return SeedDataSource({
        "historical_stock_data": [bar_row("AAPL", d, 100 + d) for d in range(1, 11)],
        "realtime_stock_prices": [
            {"id": "rt1", "symbol": "AAPL", "price": 120.5, "timestamp": "2025-03-11T10:00:00+00:00"},
        ],
        "trading_portfolios": [{"cash": 10, "equity": 20}],
    })


@pytest.mark.asyncio
async def test_reads_return_copies():
    source = make_source()
    rows = await source.fetch_latest_prices(["AAPL"])
    rows[0]["price"] = 0

    again = await source.fetch_latest_prices(["AAPL"])
    assert again[0]["price"] == 120.5


@pytest.mark.asyncio
async def test_history_is_ascending_and_limited():
    rows = await make_source().fetch_history("AAPL", 3)
    assert [r["close"] for r in rows] == [108, 109, 110]


@pytest.mark.asyncio
async def test_trading_portfolio_single_row():
    assert await make_source().fetch_trading_portfolio() == {"cash": 10, "equity": 20}
    assert await SeedDataSource().fetch_trading_portfolio() is None


@pytest.mark.asyncio
async def test_upsert_broadcasts_insert_and_update():
    source = make_source()
    sub = source.subscribe(REALTIME_TABLE)

    await source.upsert_realtime_price({"symbol": "AAPL", "price": 121, "timestamp": "2025-03-11T11:00:00+00:00"})
    await source.upsert_realtime_price({"id": "rt1", "symbol": "AAPL", "price": 119, "timestamp": "2025-03-11T12:00:00+00:00"})

    first = await asyncio.wait_for(sub.__anext__(), 1)
    second = await asyncio.wait_for(sub.__anext__(), 1)
    assert first.event_type == "INSERT"
    assert first.new["price"] == 121
    assert "id" in first.new
    assert second.event_type == "UPDATE"
    assert second.new["id"] == "rt1"
    assert len(await source.fetch_latest_prices(["AAPL"])) == 2


@pytest.mark.asyncio
async def test_unsubscribe_ends_iteration():
    source = make_source()
    sub = source.subscribe(REALTIME_TABLE)
    source.unsubscribe(sub)

    assert source.subscriber_count(REALTIME_TABLE) == 0
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(sub.__anext__(), 1)


@pytest.mark.asyncio
async def test_dropped_channel_raises():
    source = make_source()
    sub = source.subscribe(PREDICTIONS_TABLE)
    source.drop_subscriptions(PREDICTIONS_TABLE)

    with pytest.raises(ConnectionError):
        await asyncio.wait_for(sub.__anext__(), 1)


@pytest.mark.asyncio
async def test_fetch_prices_function():
    data = await make_source().invoke(FETCH_PRICES, {"symbols": ["AAPL", "ZZZZ"]})
    assert data == {"prices": {"AAPL": 120.5}}


@pytest.mark.asyncio
async def test_fetch_prices_falls_back_to_last_close():
    source = SeedDataSource({"historical_stock_data": [bar_row("MSFT", 1, 300), bar_row("MSFT", 2, 305)]})
    data = await source.invoke(FETCH_PRICES, {"symbols": ["MSFT"]})
    assert data["prices"]["MSFT"] == 305


@pytest.mark.asyncio
async def test_generate_predictions_follows_trend():
    source = make_source()
    sub = source.subscribe(PREDICTIONS_TABLE)

    data = await source.invoke(GENERATE_PREDICTIONS, {"symbols": ["AAPL", "NVDA"]})

    values = data["predictions"]["AAPL"]
    assert len(values) == 7
    assert values[0] == pytest.approx(111, abs=0.01)
    assert values == sorted(values)
    assert "NVDA" not in data["predictions"]

    rows = await source.fetch_predictions(["AAPL"])
    assert len(rows) == 7
    event = await asyncio.wait_for(sub.__anext__(), 1)
    assert event.event_type == "INSERT"


@pytest.mark.asyncio
async def test_unknown_function():
    with pytest.raises(RemoteProcedureFailure):
        await make_source().invoke("does-not-exist", {})

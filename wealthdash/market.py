"""
Live market state for the watchlist.

``MarketStore`` owns the per-symbol state and has two input channels: bulk
snapshot fetches, and push updates delivered by the data source's change
subscription. Push events are funnelled through one bounded queue and applied
by a single consumer task, so every mutation runs one at a time on the event
loop. Each write publishes a fresh read-only mapping; readers never see a
half-applied update.

Write policy is "last completed write wins": a snapshot replaces history,
latest price and predictions wholesale when it completes, and a push replaces
the latest price without comparing timestamps.
"""
import asyncio
import logging
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Set

import numpy as np

from wealthdash.async_reports import fetch_snapshot, merge_predictions
from wealthdash.config import Settings
from wealthdash.domain import MarketSymbolState, PredictedPrice, RealtimePrice, SymbolStatus
from wealthdash.errors import ComputationFailure, DashboardError, FetchFailure, RemoteProcedureFailure
from wealthdash.events import (
    EventBus,
    PREDICTION_UPDATED,
    PRICE_UPDATED,
    SNAPSHOT_LOADED,
    notify,
)
from wealthdash.functional import Either, Left, Right
from wealthdash.source import (
    ChangeEvent,
    DataSource,
    FETCH_PRICES,
    GENERATE_PREDICTIONS,
    PREDICTIONS_TABLE,
    REALTIME_TABLE,
)
from wealthdash.transforms import prediction_from_row, price_from_row

__all__ = ['MarketStore', 'normalize_watchlist', 'BASE_PRICES']

logger = logging.getLogger(__name__)

# starting points for simulated prices when a symbol has no price yet
BASE_PRICES = {
    "AAPL": 174.82,
    "MSFT": 328.79,
    "NVDA": 437.53,
    "AMZN": 132.65,
    "TSLA": 224.57,
}
FALLBACK_BASE_PRICE = 100.0

APPLIED_EVENTS = ("INSERT", "UPDATE")


def normalize_watchlist(symbols: Iterable[str]) -> tuple[str, ...]:
    seen: Dict[str, None] = {}
    for s in symbols:
        s = str(s).strip().upper()
        if s:
            seen.setdefault(s, None)
    return tuple(seen)


class MarketStore:

    def __init__(self, source: DataSource, bus: Optional[EventBus] = None,
                 settings: Optional[Settings] = None):
        self._source = source
        self._bus = bus if bus is not None else EventBus()
        self._settings = settings or Settings()
        self._watchlist: tuple[str, ...] = ()
        self._states: Mapping[str, MarketSymbolState] = MappingProxyType({})
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: list[asyncio.Task] = []
        self._resyncs: Set[asyncio.Task] = set()
        self._loads_in_flight = 0
        self.fetch_error: Optional[str] = None

    # -- read side

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def watchlist(self) -> tuple[str, ...]:
        return self._watchlist

    @property
    def states(self) -> Mapping[str, MarketSymbolState]:
        return self._states

    def state(self, symbol: str) -> Optional[MarketSymbolState]:
        return self._states.get(symbol)

    @property
    def is_loading(self) -> bool:
        return self._loads_in_flight > 0

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    # -- lifecycle

    async def start(self) -> 'MarketStore':
        if self._tasks:
            return self
        self._queue = asyncio.Queue(maxsize=self._settings.queue_maxsize)
        self._tasks = [
            asyncio.create_task(self._pump(REALTIME_TABLE), name=f"pump-{REALTIME_TABLE}"),
            asyncio.create_task(self._pump(PREDICTIONS_TABLE), name=f"pump-{PREDICTIONS_TABLE}"),
            asyncio.create_task(self._consume(), name="market-consumer"),
        ]
        # let the pumps open their subscriptions before returning
        await asyncio.sleep(0)
        return self

    async def dispose(self) -> None:
        tasks = self._tasks + list(self._resyncs)
        self._tasks = []
        self._resyncs.clear()
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._queue = None

    async def __aenter__(self) -> 'MarketStore':
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    async def drain(self) -> None:
        """Wait until every push event received so far has been applied."""
        if self._queue is None:
            return
        # let the pumps move delivered events onto the queue first
        for _ in range(3):
            await asyncio.sleep(0)
        await self._queue.join()

    # -- state writes

    def _publish(self, states: Dict[str, MarketSymbolState]) -> None:
        self._states = MappingProxyType(states)

    def _blank(self, symbol: str) -> MarketSymbolState:
        status = SymbolStatus.LOADING if symbol in self._watchlist else SymbolStatus.UNWATCHED
        return MarketSymbolState(symbol, status=status)

    def _update(self, symbol: str, **changes) -> MarketSymbolState:
        states = dict(self._states)
        base = states.get(symbol) or self._blank(symbol)
        states[symbol] = replace(base, **changes)
        self._publish(states)
        return states[symbol]

    def _set_status(self, statuses: Mapping[str, SymbolStatus]) -> None:
        if not statuses:
            return
        states = dict(self._states)
        for symbol, status in statuses.items():
            base = states.get(symbol) or MarketSymbolState(symbol)
            states[symbol] = replace(base, status=status)
        self._publish(states)

    @contextmanager
    def _loading(self):
        self._loads_in_flight += 1
        try:
            yield
        finally:
            self._loads_in_flight -= 1

    def apply_price_update(self, price: RealtimePrice) -> bool:
        if price.symbol not in self._watchlist:
            return False
        logger.info("Received real-time price update for %s: $%s", price.symbol, price.price)
        self._update(price.symbol, latest=price)
        self._bus.publish(PRICE_UPDATED, {"symbol": price.symbol, "price": price.price})
        return True

    def apply_prediction_update(self, prediction: PredictedPrice) -> bool:
        if prediction.symbol not in self._watchlist:
            return False
        logger.info("Received prediction update for %s: $%s on %s",
                    prediction.symbol, prediction.predicted_price, prediction.timestamp.date())
        current = self._states.get(prediction.symbol)
        merged = merge_predictions(current.predictions if current else (), (prediction,))
        self._update(prediction.symbol, predictions=merged)
        self._bus.publish(PREDICTION_UPDATED, {
            "symbol": prediction.symbol,
            "predicted_price": prediction.predicted_price,
        })
        return True

    # -- snapshot channel

    async def load_snapshot(self, symbols: Optional[Iterable[str]] = None) -> Dict[str, MarketSymbolState]:
        symbols = self._watchlist if symbols is None else normalize_watchlist(symbols)
        return await self._load_snapshot(symbols, self._statuses(symbols))

    def _statuses(self, symbols: Iterable[str]) -> Dict[str, SymbolStatus]:
        return {
            s: self._states[s].status if s in self._states else SymbolStatus.UNWATCHED
            for s in symbols
        }

    async def _load_snapshot(
        self, symbols: tuple[str, ...], previous: Mapping[str, SymbolStatus]
    ) -> Dict[str, MarketSymbolState]:
        self._set_status({s: SymbolStatus.LOADING for s in symbols if s in self._watchlist})
        self.fetch_error = None
        logger.info("Fetching stock data for watchlist: %s", ", ".join(symbols))

        with self._loading():
            try:
                snapshot = await fetch_snapshot(self._source, symbols, self._settings.history_limit)
            except Exception as e:
                error = e if isinstance(e, FetchFailure) else FetchFailure(str(e))
                logger.error("Error fetching stock data: %s", error)
                self.fetch_error = str(error)
                # a symbol that was never loaded falls back to UNWATCHED, not LOADING
                self._set_status({
                    s: SymbolStatus.UNWATCHED if status is SymbolStatus.LOADING else status
                    for s, status in previous.items()
                    if s in self._states and self._states[s].status is SymbolStatus.LOADING
                })
                notify(self._bus, "Error fetching stock data", str(error), "destructive")
                if error is e:
                    raise
                raise error from e

        # filter against the watchlist current now, not when the fetch began
        states = dict(self._states)
        applied: Dict[str, MarketSymbolState] = {}
        for symbol in symbols:
            if symbol not in self._watchlist:
                logger.info("Discarding snapshot for %s: no longer watched", symbol)
                continue
            base = states.get(symbol) or MarketSymbolState(symbol)
            states[symbol] = applied[symbol] = replace(
                base,
                status=SymbolStatus.READY,
                historical=snapshot.historical.get(symbol, ()),
                latest=snapshot.latest.get(symbol),
                predictions=snapshot.predictions.get(symbol, ()),
            )
        self._publish(states)
        self._bus.publish(SNAPSHOT_LOADED, {"symbols": list(applied)})
        return applied

    async def set_watchlist(self, symbols: Iterable[str]) -> Dict[str, MarketSymbolState]:
        new = normalize_watchlist(symbols) or tuple(self._settings.default_watchlist)
        old = self._watchlist
        previous = self._statuses(new)
        self._watchlist = new

        # removed symbols keep their data but go stale
        statuses = {s: SymbolStatus.STALE for s in old if s not in new and s in self._states}
        statuses.update({s: SymbolStatus.LOADING for s in new if s not in old})
        self._set_status(statuses)
        return await self._load_snapshot(new, previous)

    async def refresh(self) -> Dict[str, MarketSymbolState]:
        return await self.load_snapshot()

    async def _reload(self, result: Either) -> Either:
        try:
            await self.load_snapshot()
        except FetchFailure as e:
            return Left({"error": "fetch_failure", "message": str(e)})
        return result

    def _procedure_failed(self, function_name: str, error: Exception, title: str) -> Left:
        if not isinstance(error, RemoteProcedureFailure):
            error = RemoteProcedureFailure(function_name, str(error))
        logger.error("%s: %s", title, error)
        notify(self._bus, title, error.message, "destructive")
        return Left({
            "error": "remote_procedure_failure",
            "function": function_name,
            "message": error.message,
        })

    async def refresh_live_prices(self) -> Either[dict, dict]:
        """Ask the backend for current market prices, then refetch."""
        logger.info("Fetching real-time prices for: %s", ", ".join(self._watchlist))
        with self._loading():
            try:
                data = await self._source.invoke(FETCH_PRICES, {"symbols": list(self._watchlist)})
            except Exception as e:
                return self._procedure_failed(FETCH_PRICES, e, "Error updating stock prices")

        prices = (data or {}).get("prices") or {}
        if prices:
            notify(self._bus, "Stock prices updated",
                   f"Latest market data has been refreshed for {len(prices)} stocks")
        else:
            logger.warning("No price data received from %s", FETCH_PRICES)
        return await self._reload(Right(prices))

    async def generate_predictions(self) -> Either[dict, dict]:
        logger.info("Generating predictions for: %s", ", ".join(self._watchlist))
        with self._loading():
            try:
                data = await self._source.invoke(GENERATE_PREDICTIONS, {"symbols": list(self._watchlist)})
            except Exception as e:
                return self._procedure_failed(GENERATE_PREDICTIONS, e, "Error generating predictions")

        notify(self._bus, "Predictions generated",
               "New stock price predictions have been calculated for your watchlist")
        return await self._reload(Right((data or {}).get("predictions") or {}))

    async def simulate_realtime_updates(self, rng: Optional[np.random.Generator] = None) -> Either[dict, dict]:
        """Write a random walk (within ±3%) of every watched price to the backend."""
        rng = rng if rng is not None else np.random.default_rng()
        notify(self._bus, "Fetching stock prices", "Connecting to market data...")

        updates = {}
        for symbol in self._watchlist:
            state = self._states.get(symbol)
            current = state.latest.price if state and state.latest else BASE_PRICES.get(symbol, FALLBACK_BASE_PRICE)
            change = (rng.random() * 0.06 - 0.03) * current
            updates[symbol] = round(current + change, 2)

        now = datetime.now(timezone.utc).isoformat()
        try:
            for symbol, price in updates.items():
                await self._source.upsert_realtime_price({"symbol": symbol, "price": price, "timestamp": now})
        except Exception as e:
            logger.error("Error updating stock prices: %s", e)
            notify(self._bus, "Error updating stock prices", str(e), "destructive")
            return Left({"error": "fetch_failure", "message": str(e)})

        notify(self._bus, "Stock prices updated", "Latest market data has been refreshed")
        return await self._reload(Right(updates))

    # -- push channel

    async def _pump(self, table: str) -> None:
        initial = self._settings.reconnect_initial_delay
        delay = initial
        subscribed_before = False
        while True:
            subscription = None
            try:
                subscription = self._source.subscribe(table)
                if subscribed_before:
                    logger.info("Resubscribed to %s", table)
                    self._schedule_resync()
                subscribed_before = True
                async for event in subscription:
                    delay = initial
                    await self._queue.put(event)
                logger.info("Channel %s closed", table)
                return
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Subscription to %s dropped; retrying in %.1fs", table, delay)
            finally:
                if subscription is not None:
                    self._source.unsubscribe(subscription)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._settings.reconnect_max_delay)

    def _schedule_resync(self) -> None:
        task = asyncio.create_task(self._resync())
        self._resyncs.add(task)
        task.add_done_callback(self._resyncs.discard)

    async def _resync(self) -> None:
        # rows may have been missed while the channel was down
        try:
            await self.load_snapshot()
        except DashboardError:
            logger.warning("Snapshot after reconnect failed; keeping current state")

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self._handle(event)
            except (KeyError, ValueError, TypeError, ComputationFailure):
                logger.warning("Discarding malformed %s row: %r", event.table, event.new)
            except Exception:
                logger.exception("Failed to apply %s event on %s", event.event_type, event.table)
            finally:
                self._queue.task_done()

    def _handle(self, event: ChangeEvent) -> None:
        if event.event_type not in APPLIED_EVENTS:
            return
        if event.table == REALTIME_TABLE:
            self.apply_price_update(price_from_row(event.new))
        elif event.table == PREDICTIONS_TABLE:
            self.apply_prediction_update(prediction_from_row(event.new))

"""
Data source contract for the dashboard and an in-memory implementation.

The remote backend exposes plain tables, two callable functions and a
change-subscription channel. ``SeedDataSource`` provides the same surface
over JSON seed data so the dashboard runs without a backend.
"""
import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import AsyncIterator, Dict, List, NamedTuple, Optional, Sequence
from uuid import uuid4

import numpy as np

from wealthdash.errors import RemoteProcedureFailure
from wealthdash.transforms import SEED_TABLES, load_seed, parse_timestamp

__all__ = [
    'ChangeEvent', 'DataSource', 'SeedDataSource', 'Subscription',
    'REALTIME_TABLE', 'PREDICTIONS_TABLE', 'FETCH_PRICES', 'GENERATE_PREDICTIONS',
]

logger = logging.getLogger(__name__)

REALTIME_TABLE = "realtime_stock_prices"
PREDICTIONS_TABLE = "predicted_stock_prices"
HISTORY_TABLE = "historical_stock_data"

FETCH_PRICES = "fetch-stock-prices"
GENERATE_PREDICTIONS = "generate-stock-predictions"

PREDICTION_DAYS = 7


class ChangeEvent(NamedTuple):
    event_type: str      # INSERT, UPDATE or DELETE
    table: str
    new: dict


class DataSource(ABC):

    @abstractmethod
    async def fetch_records(self) -> List[dict]:
        pass

    @abstractmethod
    async def fetch_budget_limits(self) -> List[dict]:
        pass

    @abstractmethod
    async def fetch_holdings(self) -> List[dict]:
        pass

    @abstractmethod
    async def fetch_positions(self) -> List[dict]:
        pass

    @abstractmethod
    async def fetch_trading_portfolio(self) -> Optional[dict]:
        pass

    @abstractmethod
    async def fetch_history(self, symbol: str, limit: int) -> List[dict]:
        """Most recent ``limit`` bars for ``symbol``, ascending by timestamp."""

    @abstractmethod
    async def fetch_latest_prices(self, symbols: Sequence[str]) -> List[dict]:
        """Real-time price rows for ``symbols``, descending by timestamp."""

    @abstractmethod
    async def fetch_predictions(self, symbols: Sequence[str]) -> List[dict]:
        """Predicted price rows for ``symbols``, ascending by timestamp."""

    @abstractmethod
    async def upsert_realtime_price(self, row: dict) -> dict:
        pass

    @abstractmethod
    async def invoke(self, function_name: str, body: dict) -> dict:
        pass

    @abstractmethod
    def subscribe(self, table: str) -> AsyncIterator[ChangeEvent]:
        pass

    @abstractmethod
    def unsubscribe(self, subscription: AsyncIterator[ChangeEvent]) -> None:
        pass


_CLOSED = object()


class Subscription:
    """Async iterator over change events for one table."""

    def __init__(self, table: str):
        self.table = table
        self._queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, item) -> None:
        self._queue.put_nowait(item)

    def close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> 'Subscription':
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class SeedDataSource(DataSource):

    def __init__(self, tables: Optional[Dict[str, List[dict]]] = None):
        tables = tables or {}
        self._tables: Dict[str, List[dict]] = {
            name: [dict(r) for r in tables.get(name, [])] for name in SEED_TABLES
        }
        self._subscribers: Dict[str, List[Subscription]] = {}

    @classmethod
    def from_file(cls, path: str) -> 'SeedDataSource':
        return cls(load_seed(path))

    def _rows(self, table: str) -> List[dict]:
        return copy.deepcopy(self._tables[table])

    async def fetch_records(self) -> List[dict]:
        return self._rows("expenses")

    async def fetch_budget_limits(self) -> List[dict]:
        return self._rows("budget_alerts")

    async def fetch_holdings(self) -> List[dict]:
        return self._rows("portfolio_holdings")

    async def fetch_positions(self) -> List[dict]:
        return self._rows("trading_positions")

    async def fetch_trading_portfolio(self) -> Optional[dict]:
        rows = self._rows("trading_portfolios")
        return rows[0] if rows else None

    async def fetch_history(self, symbol: str, limit: int) -> List[dict]:
        rows = [r for r in self._rows(HISTORY_TABLE) if r.get("symbol") == symbol]
        rows.sort(key=lambda r: parse_timestamp(r.get("timestamp")))
        return rows[-limit:] if limit > 0 else []

    async def fetch_latest_prices(self, symbols: Sequence[str]) -> List[dict]:
        wanted = set(symbols)
        rows = [r for r in self._rows(REALTIME_TABLE) if r.get("symbol") in wanted]
        rows.sort(key=lambda r: parse_timestamp(r.get("timestamp")), reverse=True)
        return rows

    async def fetch_predictions(self, symbols: Sequence[str]) -> List[dict]:
        wanted = set(symbols)
        rows = [r for r in self._rows(PREDICTIONS_TABLE) if r.get("symbol") in wanted]
        rows.sort(key=lambda r: parse_timestamp(r.get("timestamp")))
        return rows

    def _write(self, table: str, row: dict) -> dict:
        row = dict(row)
        rows = self._tables[table]
        row_id = row.get("id")
        for i, existing in enumerate(rows):
            if row_id is not None and existing.get("id") == row_id:
                rows[i] = row
                event_type = "UPDATE"
                break
        else:
            row.setdefault("id", str(uuid4()))
            rows.append(row)
            event_type = "INSERT"
        self._broadcast(ChangeEvent(event_type, table, dict(row)))
        return row

    async def upsert_realtime_price(self, row: dict) -> dict:
        return self._write(REALTIME_TABLE, row)

    async def insert_prediction(self, row: dict) -> dict:
        return self._write(PREDICTIONS_TABLE, row)

    async def invoke(self, function_name: str, body: dict) -> dict:
        symbols = list((body or {}).get("symbols") or [])
        if function_name == FETCH_PRICES:
            return {"prices": self._current_prices(symbols)}
        if function_name == GENERATE_PREDICTIONS:
            return {"predictions": await self._generate_predictions(symbols)}
        raise RemoteProcedureFailure(function_name, "function not found")

    def _current_prices(self, symbols: Sequence[str]) -> Dict[str, float]:
        prices: Dict[str, float] = {}
        for symbol in symbols:
            latest = [r for r in self._tables[REALTIME_TABLE] if r.get("symbol") == symbol]
            if latest:
                newest = max(latest, key=lambda r: parse_timestamp(r.get("timestamp")))
                prices[symbol] = float(newest["price"])
                continue
            bars = [r for r in self._tables[HISTORY_TABLE] if r.get("symbol") == symbol]
            if bars:
                newest = max(bars, key=lambda r: parse_timestamp(r.get("timestamp")))
                prices[symbol] = float(newest["close"])
        return prices

    async def _generate_predictions(self, symbols: Sequence[str]) -> Dict[str, List[float]]:
        generated: Dict[str, List[float]] = {}
        for symbol in symbols:
            bars = await self.fetch_history(symbol, 30)
            if len(bars) < 2:
                logger.warning("Not enough history to predict %s (%d bars)", symbol, len(bars))
                continue
            closes = np.array([float(b["close"]) for b in bars])
            slope, intercept = np.polyfit(np.arange(len(closes)), closes, 1)
            last_ts = parse_timestamp(bars[-1]["timestamp"])

            values = []
            for step in range(1, PREDICTION_DAYS + 1):
                value = round(float(intercept + slope * (len(closes) - 1 + step)), 2)
                await self.insert_prediction({
                    "symbol": symbol,
                    "predicted_price": value,
                    "timestamp": (last_ts + timedelta(days=step)).isoformat(),
                })
                values.append(value)
            generated[symbol] = values
        return generated

    def subscribe(self, table: str) -> Subscription:
        sub = Subscription(table)
        self._subscribers.setdefault(table, []).append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.table, [])
        if sub in subs:
            subs.remove(sub)
        sub.close()

    def subscriber_count(self, table: str) -> int:
        return len(self._subscribers.get(table, []))

    def drop_subscriptions(self, table: str, error: Optional[Exception] = None) -> None:
        """Break every open channel on ``table`` (as a lost connection would)."""
        for sub in self._subscribers.pop(table, []):
            sub.deliver(error or ConnectionError(f"channel {table} dropped"))

    def _broadcast(self, event: ChangeEvent) -> None:
        for sub in list(self._subscribers.get(event.table, [])):
            sub.deliver(event)

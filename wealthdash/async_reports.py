import asyncio
import logging
from typing import Dict, Iterable, NamedTuple, Sequence

from wealthdash.domain import HistoricalBar, PredictedPrice, RealtimePrice
from wealthdash.source import DataSource
from wealthdash.transforms import bar_from_row, prediction_from_row, price_from_row

logger = logging.getLogger(__name__)


class Snapshot(NamedTuple):
    historical: Dict[str, tuple[HistoricalBar, ...]]
    latest: Dict[str, RealtimePrice]
    predictions: Dict[str, tuple[PredictedPrice, ...]]


def cap_history(bars: Iterable[HistoricalBar], limit: int) -> tuple[HistoricalBar, ...]:
    """Sort ascending by time and keep the newest ``limit`` bars."""
    ordered = sorted(bars, key=lambda b: b.timestamp)
    return tuple(ordered[-limit:]) if limit > 0 else ()


def latest_by_symbol(prices: Iterable[RealtimePrice]) -> Dict[str, RealtimePrice]:
    """Newest price per symbol; on equal timestamps the later row wins."""
    latest: Dict[str, RealtimePrice] = {}
    for p in prices:
        current = latest.get(p.symbol)
        if current is None or p.timestamp >= current.timestamp:
            latest[p.symbol] = p
    return latest


def merge_predictions(
    existing: Iterable[PredictedPrice], incoming: Iterable[PredictedPrice]
) -> tuple[PredictedPrice, ...]:
    """Ascending by timestamp, one point per timestamp (last write wins)."""
    by_ts: Dict = {}
    for p in existing:
        by_ts[p.timestamp] = p
    for p in incoming:
        by_ts[p.timestamp] = p
    return tuple(by_ts[ts] for ts in sorted(by_ts))


def predictions_by_symbol(predictions: Iterable[PredictedPrice]) -> Dict[str, tuple[PredictedPrice, ...]]:
    grouped: Dict[str, list[PredictedPrice]] = {}
    for p in predictions:
        grouped.setdefault(p.symbol, []).append(p)
    return {symbol: merge_predictions((), rows) for symbol, rows in grouped.items()}


async def history_by_symbol(
    source: DataSource, symbols: Sequence[str], limit: int
) -> Dict[str, tuple[HistoricalBar, ...]]:
    """Fetch the bounded history of every symbol concurrently."""
    async def symbol_history(symbol: str) -> tuple[str, tuple[HistoricalBar, ...]]:
        rows = await source.fetch_history(symbol, limit)
        bars = cap_history((bar_from_row(r) for r in rows), limit)
        logger.info("Fetched %d historical data points for %s", len(bars), symbol)
        return symbol, bars

    results = await asyncio.gather(*(symbol_history(s) for s in symbols))
    return {k: v for k, v in results}


async def fetch_snapshot(source: DataSource, symbols: Sequence[str], limit: int) -> Snapshot:
    symbols = list(symbols)
    if not symbols:
        return Snapshot({}, {}, {})

    historical, price_rows, prediction_rows = await asyncio.gather(
        history_by_symbol(source, symbols, limit),
        source.fetch_latest_prices(symbols),
        source.fetch_predictions(symbols),
    )
    latest = latest_by_symbol(price_from_row(r) for r in price_rows)
    predictions = predictions_by_symbol(prediction_from_row(r) for r in prediction_rows)
    logger.info("Fetched predictions for symbols: %s", ", ".join(predictions))
    return Snapshot(historical, latest, predictions)

"""Conversion of raw backend rows (plain dicts) into domain values."""
import json
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from wealthdash.domain import (
    BudgetLimit,
    FinancialRecord,
    HistoricalBar,
    PortfolioHolding,
    PredictedPrice,
    RealtimePrice,
    TradingPortfolio,
    TradingPosition,
)
from wealthdash.errors import ComputationFailure

SEED_TABLES = (
    "expenses",
    "budget_alerts",
    "portfolio_holdings",
    "trading_positions",
    "trading_portfolios",
    "historical_stock_data",
    "realtime_stock_prices",
    "predicted_stock_prices",
)

Row = Mapping[str, Any]


def load_seed(path: str) -> dict[str, list[dict]]:
    """Read a JSON seed file into a mapping of table name -> rows.

    Missing tables are returned empty so a partial seed is still usable.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    unknown = set(data) - set(SEED_TABLES)
    if unknown:
        raise ValueError(f"Unknown seed tables: {', '.join(sorted(unknown))}")

    return {table: [dict(row) for row in data.get(table, [])] for table in SEED_TABLES}


def parse_record_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except (TypeError, ValueError) as e:
        raise ComputationFailure(f"Unparseable date: {value!r}") from e


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        ts = value
    else:
        try:
            ts = datetime.fromisoformat(str(value))
        except (TypeError, ValueError) as e:
            raise ComputationFailure(f"Unparseable timestamp: {value!r}") from e
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _number(row: Row, key: str, default: Optional[float] = 0.0) -> Optional[float]:
    value = row.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ComputationFailure(f"Field {key!r} is not a number: {value!r}") from e


def record_from_row(row: Row) -> FinancialRecord:
    if "date" not in row:
        raise ComputationFailure(f"Record {row.get('id')!r} has no date")
    return FinancialRecord(
        id=str(row.get("id", "")),
        date=parse_record_date(row["date"]),
        category=str(row.get("category") or ""),
        amount=_number(row, "amount"),
        description=row.get("description") or None,
    )


def records_from_rows(rows: Iterable[Row]) -> tuple[FinancialRecord, ...]:
    return tuple(record_from_row(r) for r in rows)


def limit_from_row(row: Row) -> BudgetLimit:
    # budget_alerts rows carry the amount in "limit_amount"
    key = "limit_amount" if "limit_amount" in row else "limit"
    return BudgetLimit(category=str(row.get("category") or ""), limit=_number(row, key))


def holding_from_row(row: Row) -> PortfolioHolding:
    return PortfolioHolding(
        symbol=str(row["symbol"]),
        shares=_number(row, "shares"),
        purchase_price=_number(row, "purchase_price"),
        current_price=_number(row, "current_price", default=None),
    )


def position_from_row(row: Row) -> TradingPosition:
    return TradingPosition(
        symbol=str(row["symbol"]),
        quantity=_number(row, "quantity"),
        market_value=_number(row, "market_value"),
        unrealized_pl=_number(row, "unrealized_pl"),
    )


def portfolio_from_row(row: Row) -> TradingPortfolio:
    return TradingPortfolio(cash=_number(row, "cash"), equity=_number(row, "equity"))


def bar_from_row(row: Row) -> HistoricalBar:
    return HistoricalBar(
        symbol=str(row["symbol"]),
        timestamp=parse_timestamp(row.get("timestamp")),
        open=_number(row, "open"),
        high=_number(row, "high"),
        low=_number(row, "low"),
        close=_number(row, "close"),
        volume=_number(row, "volume"),
    )


def price_from_row(row: Row) -> RealtimePrice:
    return RealtimePrice(
        symbol=str(row["symbol"]),
        price=_number(row, "price"),
        timestamp=parse_timestamp(row.get("timestamp")),
    )


def prediction_from_row(row: Row) -> PredictedPrice:
    return PredictedPrice(
        symbol=str(row["symbol"]),
        predicted_price=_number(row, "predicted_price"),
        timestamp=parse_timestamp(row.get("timestamp")),
    )

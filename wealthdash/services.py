import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from typing import Generic, Optional, TypeVar

from wealthdash.aggregation import RECENT_LIMIT, aggregate_budget, aggregate_overview
from wealthdash.domain import (
    BudgetSummary,
    OverviewSummary,
    PortfolioHolding,
    PortfolioSummary,
    TradingPortfolio,
    TradingPosition,
)
from wealthdash.errors import ComputationFailure, FetchFailure
from wealthdash.functional import Either, Left, Right, pipe
from wealthdash.portfolio import summarize
from wealthdash.source import DataSource
from wealthdash.transforms import (
    holding_from_row,
    limit_from_row,
    portfolio_from_row,
    position_from_row,
    records_from_rows,
)

__all__ = ['BudgetService', 'OverviewService', 'DashboardOverview']

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class DashboardOverview:
    overview: OverviewSummary
    holdings: tuple[PortfolioHolding, ...]
    positions: tuple[TradingPosition, ...]
    trading_portfolio: Optional[TradingPortfolio]
    portfolio: PortfolioSummary


class _LoadPass(ABC, Generic[T]):
    """One data-load pass with loading/error flags for the presentation layer.

    A failed pass keeps the previous value; nothing is partially overwritten.
    """

    name = "data"

    def __init__(self, source: DataSource):
        self.source = source
        self.loading = False
        self.error: Optional[str] = None
        self.value: Optional[T] = None

    @abstractmethod
    async def _load(self) -> T:
        pass

    async def refresh(self) -> Either[dict, T]:
        self.loading = True
        try:
            value = await self._load()
        except Exception as e:
            error = e if isinstance(e, FetchFailure) else FetchFailure(str(e))
            logger.error("Error fetching %s: %s", self.name, error)
            self.error = str(error)
            return Left({
                "error": "computation_failure" if isinstance(error, ComputationFailure) else "fetch_failure",
                "message": str(error),
            })
        finally:
            self.loading = False

        self.value = value
        self.error = None
        return Right(value)


class BudgetService(_LoadPass[BudgetSummary]):

    name = "budget data"

    async def _load(self) -> BudgetSummary:
        rows, limit_rows = await asyncio.gather(
            self.source.fetch_records(),
            self.source.fetch_budget_limits(),
        )
        records = records_from_rows(rows)
        limits = tuple(limit_from_row(r) for r in limit_rows)
        summary = aggregate_budget(records, limits)
        logger.info("Aggregated %d records into %d categories", len(records), len(summary.summaries))
        return summary


class OverviewService(_LoadPass[DashboardOverview]):

    name = "dashboard data"

    def __init__(self, source: DataSource, recent_limit: int = RECENT_LIMIT):
        super().__init__(source)
        self.recent_limit = recent_limit

    async def _load(self) -> DashboardOverview:
        overview = pipe(
            await self.source.fetch_records(),
            records_from_rows,
            partial(aggregate_overview, recent_limit=self.recent_limit),
        )

        holding_rows, position_rows, portfolio_row = await asyncio.gather(
            self.source.fetch_holdings(),
            self.source.fetch_positions(),
            self.source.fetch_trading_portfolio(),
        )
        if portfolio_row is None:
            raise FetchFailure("No trading portfolio found")

        holdings = tuple(holding_from_row(r) for r in holding_rows)
        positions = tuple(position_from_row(r) for r in position_rows)
        return DashboardOverview(
            overview=overview,
            holdings=holdings,
            positions=positions,
            trading_portfolio=portfolio_from_row(portfolio_row),
            portfolio=summarize(holdings, positions),
        )

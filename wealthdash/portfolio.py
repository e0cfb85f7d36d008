from functools import reduce
from typing import Iterable

from wealthdash.domain import PortfolioHolding, PortfolioSummary, TradingPosition


def total_investment(holdings: Iterable[PortfolioHolding]) -> float:
    # a holding without a current price contributes nothing
    return reduce(lambda acc, h: acc + (h.current_price or 0) * h.shares, holdings, 0.0)


def total_unrealized_pl(positions: Iterable[TradingPosition]) -> float:
    return reduce(lambda acc, p: acc + p.unrealized_pl, positions, 0.0)


def summarize(
    holdings: Iterable[PortfolioHolding], positions: Iterable[TradingPosition]
) -> PortfolioSummary:
    return PortfolioSummary(
        total_investment=total_investment(holdings),
        total_unrealized_pl=total_unrealized_pl(positions),
    )

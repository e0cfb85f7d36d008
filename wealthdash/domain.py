from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class FinancialRecord:
    id: str
    date: date
    category: str
    amount: float                      # + for income, - for expense
    description: Optional[str] = None


# A budget limit for one category
@dataclass(frozen=True)
class BudgetLimit:
    category: str
    limit: float


@dataclass(frozen=True)
class CategorySummary:
    category: str
    spent: float
    budget: float
    icon: str
    color: str

    @property
    def percent(self) -> Optional[float]:
        # undefined without a budget
        if not self.budget:
            return None
        return self.spent / self.budget * 100


@dataclass(frozen=True)
class BudgetSummary:
    summaries: tuple[CategorySummary, ...]
    total_budget: float
    total_spent: float
    percent_spent: int


@dataclass(frozen=True)
class MonthlyBalance:
    name: str          # short month label, e.g. "Jan"
    income: float
    expenses: float    # absolute value

    @property
    def balance(self) -> float:
        return self.income - self.expenses


@dataclass(frozen=True)
class ExpenseCategory:
    name: str
    value: float


@dataclass(frozen=True)
class RecentTransaction:
    date: date
    description: str
    category: str
    amount: float


@dataclass(frozen=True)
class OverviewSummary:
    balance_history: tuple[MonthlyBalance, ...]
    expenses_by_category: tuple[ExpenseCategory, ...]
    recent_transactions: tuple[RecentTransaction, ...]
    total_income: float
    total_expenses: float

    @property
    def total_balance(self) -> float:
        return self.total_income - self.total_expenses


@dataclass(frozen=True)
class PortfolioHolding:
    symbol: str
    shares: float
    purchase_price: float
    current_price: Optional[float] = None


@dataclass(frozen=True)
class TradingPosition:
    symbol: str
    quantity: float
    market_value: float
    unrealized_pl: float


@dataclass(frozen=True)
class TradingPortfolio:
    cash: float
    equity: float


@dataclass(frozen=True)
class PortfolioSummary:
    total_investment: float
    total_unrealized_pl: float


@dataclass(frozen=True)
class HistoricalBar:
    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class RealtimePrice:
    symbol: str
    price: float
    timestamp: datetime


@dataclass(frozen=True)
class PredictedPrice:
    symbol: str
    predicted_price: float
    timestamp: datetime


class SymbolStatus(str, Enum):
    UNWATCHED = "unwatched"
    LOADING = "loading"
    READY = "ready"
    STALE = "stale"


@dataclass(frozen=True)
class MarketSymbolState:
    symbol: str
    status: SymbolStatus = SymbolStatus.UNWATCHED
    historical: tuple[HistoricalBar, ...] = ()
    latest: Optional[RealtimePrice] = None
    predictions: tuple[PredictedPrice, ...] = ()

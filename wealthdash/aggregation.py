import math
from collections import defaultdict
from datetime import date
from typing import Iterable, Iterator, Sequence

from wealthdash.categories import classify
from wealthdash.domain import (
    BudgetLimit,
    BudgetSummary,
    CategorySummary,
    ExpenseCategory,
    FinancialRecord,
    MonthlyBalance,
    OverviewSummary,
    RecentTransaction,
)
from wealthdash.functional import find_limit

__all__ = ['aggregate_budget', 'aggregate_overview', 'percent_of', 'month_label', 'RECENT_LIMIT']

RECENT_LIMIT = 5

# fixed English labels, independent of the process locale
MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
                "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def month_label(d: date) -> str:
    return MONTH_LABELS[d.month - 1]


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def percent_of(part: float, whole: float) -> int:
    """Whole-number percentage; 0 when there is nothing to divide by."""
    if not whole:
        return 0
    return round_half_up(part / whole * 100)


def iter_expenses(records: Iterable[FinancialRecord]) -> Iterator[FinancialRecord]:
    for r in records:
        if r.amount < 0:
            yield r


def aggregate_budget(
    records: Sequence[FinancialRecord], limits: Sequence[BudgetLimit]
) -> BudgetSummary:
    # dict keeps first-appearance order of categories
    spent_by_category: dict[str, float] = {}
    for r in records:
        spent_by_category.setdefault(r.category, 0.0)
    for r in iter_expenses(records):
        spent_by_category[r.category] += abs(r.amount)

    summaries = []
    for category, spent in spent_by_category.items():
        budget = find_limit(limits, category).map(lambda b: b.limit).get_or_else(0.0)
        icon, color = classify(category)
        summaries.append(CategorySummary(category, spent, budget, icon, color))

    total_budget = sum(s.budget for s in summaries)
    total_spent = sum(s.spent for s in summaries)

    return BudgetSummary(
        summaries=tuple(summaries),
        total_budget=total_budget,
        total_spent=total_spent,
        percent_spent=percent_of(total_spent, total_budget),
    )


def _balance_history(records: Iterable[FinancialRecord]) -> tuple[MonthlyBalance, ...]:
    income: dict[str, float] = defaultdict(float)
    expenses: dict[str, float] = defaultdict(float)
    first_seen: dict[str, tuple[int, int]] = {}

    for r in records:
        key = month_label(r.date)
        ym = (r.date.year, r.date.month)
        if key not in first_seen or ym < first_seen[key]:
            first_seen[key] = ym
        if r.amount > 0:
            income[key] += r.amount
        else:
            expenses[key] += abs(r.amount)

    # same month name in different years collapses into one entry
    ordered = sorted(first_seen, key=first_seen.__getitem__)
    return tuple(MonthlyBalance(k, income[k], expenses[k]) for k in ordered)


def _expenses_by_category(records: Iterable[FinancialRecord]) -> tuple[ExpenseCategory, ...]:
    totals: dict[str, float] = {}
    for r in records:
        totals[r.category] = totals.get(r.category, 0.0) + abs(r.amount)
    return tuple(ExpenseCategory(name, value) for name, value in totals.items())


def _recent_transactions(
    records: Iterable[FinancialRecord], limit: int
) -> tuple[RecentTransaction, ...]:
    newest_first = sorted(records, key=lambda r: r.date, reverse=True)
    return tuple(
        RecentTransaction(
            date=r.date,
            description=r.description or r.category,
            category=r.category,
            amount=r.amount,
        )
        for r in newest_first[: max(0, limit)]
    )


def aggregate_overview(
    records: Sequence[FinancialRecord], recent_limit: int = RECENT_LIMIT
) -> OverviewSummary:
    history = _balance_history(records)
    return OverviewSummary(
        balance_history=history,
        expenses_by_category=_expenses_by_category(records),
        recent_transactions=_recent_transactions(records, recent_limit),
        total_income=sum(m.income for m in history),
        total_expenses=sum(m.expenses for m in history),
    )

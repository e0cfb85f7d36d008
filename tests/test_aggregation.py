from datetime import date

import pytest

from wealthdash.aggregation import aggregate_budget, aggregate_overview, month_label, percent_of
from wealthdash.domain import BudgetLimit, FinancialRecord


def make_rec(id, ts, category, amount, description=None):
    return FinancialRecord(id=id, date=date.fromisoformat(ts), category=category,
                           amount=amount, description=description)


def test_budget_food_and_salary_scenario():
    records = (
        make_rec("r1", "2025-01-02", "Food", -20),
        make_rec("r2", "2025-01-03", "Food", -30),
        make_rec("r3", "2025-01-04", "Salary", 500),
    )
    limits = (BudgetLimit("Food", 100),)

    res = aggregate_budget(records, limits)
    food = next(s for s in res.summaries if s.category == "Food")

    assert food.spent == 50
    assert food.budget == 100
    assert res.total_spent == 50
    assert res.total_budget == 100
    assert res.percent_spent == 50


def test_budget_percent_is_zero_without_budget():
    records = (make_rec("r1", "2025-01-02", "Food", -50),)
    res = aggregate_budget(records, ())

    assert res.total_budget == 0
    assert res.total_spent == 50
    assert res.percent_spent == 0
    assert res.summaries[0].percent is None


def test_budget_total_spent_matches_absolute_expenses():
    records = tuple(
        make_rec(f"r{i}", "2025-02-01", cat, amount)
        for i, (cat, amount) in enumerate([
            ("Food", -12.5), ("Travel", -300), ("Salary", 2000),
            ("Food", -7.5), ("Bills", -80), ("Refund", 15),
        ])
    )
    res = aggregate_budget(records, ())

    assert res.total_spent == pytest.approx(12.5 + 300 + 7.5 + 80)
    assert sum(s.spent for s in res.summaries) == pytest.approx(res.total_spent)


def test_budget_categories_unique_in_first_appearance_order():
    records = (
        make_rec("r1", "2025-01-02", "Travel", -10),
        make_rec("r2", "2025-01-03", "Food", -10),
        make_rec("r3", "2025-01-04", "Travel", -5),
        make_rec("r4", "2025-01-05", "Bills", -1),
    )
    res = aggregate_budget(records, ())

    assert [s.category for s in res.summaries] == ["Travel", "Food", "Bills"]


def test_budget_duplicate_limits_last_match_wins():
    records = (make_rec("r1", "2025-01-02", "Food", -10),)
    limits = (BudgetLimit("Food", 100), BudgetLimit("Other", 5), BudgetLimit("Food", 250))

    res = aggregate_budget(records, limits)

    assert res.summaries[0].budget == 250
    assert res.total_budget == 250


def test_budget_summary_carries_icon_and_color():
    res = aggregate_budget((make_rec("r1", "2025-01-02", "Housing", -900),), ())
    assert res.summaries[0].icon == "Home"
    assert res.summaries[0].color == "#41B883"


def test_budget_empty_records():
    res = aggregate_budget((), (BudgetLimit("Food", 100),))
    assert res.summaries == ()
    assert res.total_budget == 0
    assert res.total_spent == 0
    assert res.percent_spent == 0


def test_percent_of_rounds_half_up():
    assert percent_of(1, 8) == 13      # 12.5
    assert percent_of(3, 8) == 38      # 37.5
    assert percent_of(10, 0) == 0


def test_overview_balance_history_chronological():
    # category-major and reverse-date input
    records = (
        make_rec("r1", "2025-03-10", "Food", -30),
        make_rec("r2", "2025-01-10", "Food", -10),
        make_rec("r3", "2025-02-10", "Food", -20),
        make_rec("r4", "2025-03-01", "Salary", 1000),
        make_rec("r5", "2025-01-01", "Salary", 900),
    )
    res = aggregate_overview(records)

    assert [m.name for m in res.balance_history] == ["Jan", "Feb", "Mar"]
    jan = res.balance_history[0]
    assert jan.income == 900
    assert jan.expenses == 10
    assert jan.balance == 890
    for m in res.balance_history:
        assert m.balance == m.income - m.expenses


def test_overview_same_month_across_years_is_merged():
    records = (
        make_rec("r1", "2025-01-10", "Food", -10),
        make_rec("r2", "2024-12-10", "Food", -5),
        make_rec("r3", "2024-01-15", "Salary", 100),
    )
    res = aggregate_overview(records)

    assert [m.name for m in res.balance_history] == ["Jan", "Dec"]
    assert res.balance_history[0].income == 100
    assert res.balance_history[0].expenses == 10


def test_overview_expenses_by_category_ignores_sign():
    records = (
        make_rec("r1", "2025-01-10", "Food", -10),
        make_rec("r2", "2025-01-11", "Salary", 300),
        make_rec("r3", "2025-01-12", "Food", 4),
    )
    res = aggregate_overview(records)

    assert [(c.name, c.value) for c in res.expenses_by_category] == [("Food", 14), ("Salary", 300)]


def test_overview_recent_transactions_top_five_descending():
    records = tuple(make_rec(f"r{d}", f"2025-01-{d:02d}", "Food", -d) for d in (3, 9, 1, 7, 5, 2, 8))
    res = aggregate_overview(records)
    dates = [t.date for t in res.recent_transactions]

    assert len(dates) == 5
    assert dates == sorted(dates, reverse=True)
    assert all(a > b for a, b in zip(dates, dates[1:]))
    assert dates[0] == date(2025, 1, 9)


def test_overview_recent_transactions_short_input():
    records = (make_rec("r1", "2025-01-01", "Food", -1), make_rec("r2", "2025-01-02", "Food", -2))
    res = aggregate_overview(records)
    assert len(res.recent_transactions) == 2


def test_overview_description_falls_back_to_category():
    records = (
        make_rec("r1", "2025-01-01", "Bills", -60),
        make_rec("r2", "2025-01-02", "Food", -5, "Bakery"),
    )
    res = aggregate_overview(records)

    assert res.recent_transactions[0].description == "Bakery"
    assert res.recent_transactions[1].description == "Bills"


def test_overview_totals():
    records = (
        make_rec("r1", "2025-01-01", "Salary", 1000),
        make_rec("r2", "2025-02-01", "Food", -250),
    )
    res = aggregate_overview(records)

    assert res.total_income == 1000
    assert res.total_expenses == 250
    assert res.total_balance == 750


def test_overview_empty_records():
    res = aggregate_overview(())
    assert res.balance_history == ()
    assert res.expenses_by_category == ()
    assert res.recent_transactions == ()
    assert res.total_balance == 0


def test_month_label_is_locale_independent():
    assert month_label(date(2025, 5, 17)) == "May"
    assert month_label(date(2025, 12, 1)) == "Dec"

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import atexit
import logging

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from wealthdash.config import load_settings
from wealthdash.errors import FetchFailure
from wealthdash.events import NOTIFICATION, EventBus, register_default_handlers
from wealthdash.market import MarketStore
from wealthdash.runner import BackgroundLoop
from wealthdash.services import BudgetService, OverviewService
from wealthdash.source import SeedDataSource

st.set_page_config(page_title="Wealth Dashboard", layout="wide")

settings = load_settings(os.environ.get("WEALTHDASH_CONFIG"))
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s: %(message)s",
)


def run(coro):
    return st.session_state.runner.run(coro)


def toast_collector(toasts: list):
    # handlers fire on the loop thread, so they write to a plain list
    def collect_toast(event, payload: dict) -> dict:
        toasts.append(payload)
        return {"queued": True}
    return collect_toast


def shutdown(runner: BackgroundLoop, market: MarketStore) -> None:
    if runner.running:
        runner.run(market.dispose(), timeout=5)
        runner.stop()


if "source" not in st.session_state:
    st.session_state.runner = BackgroundLoop()
    st.session_state.source = SeedDataSource.from_file(settings.seed_path)
    st.session_state.toasts = []
    bus = register_default_handlers(EventBus())
    bus.subscribe(NOTIFICATION, toast_collector(st.session_state.toasts))
    st.session_state.budget = BudgetService(st.session_state.source)
    st.session_state.overview = OverviewService(st.session_state.source, settings.recent_limit)
    st.session_state.market = MarketStore(st.session_state.source, bus, settings)
    # pumps and consumer stay alive across reruns on the background loop
    run(st.session_state.market.start())
    atexit.register(shutdown, st.session_state.runner, st.session_state.market)
    run(st.session_state.budget.refresh())
    run(st.session_state.overview.refresh())
    try:
        run(st.session_state.market.set_watchlist(settings.default_watchlist))
    except FetchFailure:
        pass  # shown through market.fetch_error

budget_service: BudgetService = st.session_state.budget
overview_service: OverviewService = st.session_state.overview
market: MarketStore = st.session_state.market


def money(v: float) -> str:
    return f"${v:,.2f}"


def show_toasts():
    while st.session_state.toasts:
        t = st.session_state.toasts.pop(0)
        icon = "⚠️" if t.get("variant") == "destructive" else "✅"
        st.toast(f"**{t['title']}** {t.get('description', '')}", icon=icon)


menu = st.sidebar.radio("Menu", ["🏠 Overview", "💰 Budget", "📈 Markets"])

if menu == "🏠 Overview":
    st.title("🏠 Overview")
    if st.button("🔄 Refresh", key="btn_refresh_overview"):
        run(overview_service.refresh())
    if overview_service.error:
        st.error(overview_service.error)

    data = overview_service.value
    if data is None:
        st.info("No dashboard data loaded yet.")
    else:
        ov = data.overview
        k1, k2, k3, k4 = st.columns(4)
        with k1:
            st.metric("Total Balance", money(ov.total_balance))
        with k2:
            st.metric("Investments", money(data.portfolio.total_investment))
        with k3:
            st.metric("Unrealized P&L", money(data.portfolio.total_unrealized_pl))
        with k4:
            cash = data.trading_portfolio.cash if data.trading_portfolio else 0
            st.metric("Trading Cash", money(cash))

        if ov.balance_history:
            months = [m.name for m in ov.balance_history]
            fig_ts = go.Figure()
            fig_ts.add_trace(go.Scatter(x=months, y=[m.income for m in ov.balance_history], mode="lines+markers", name="Income"))
            fig_ts.add_trace(go.Scatter(x=months, y=[m.expenses for m in ov.balance_history], mode="lines+markers", name="Expenses"))
            fig_ts.add_trace(go.Bar(x=months, y=[m.balance for m in ov.balance_history], name="Balance", opacity=0.4))
            fig_ts.update_layout(template="plotly_dark", title="Balance History", margin=dict(t=40, b=10, l=10, r=10))
            st.plotly_chart(fig_ts, use_container_width=True)

        col_pie, col_recent = st.columns([2, 3])
        with col_pie:
            if ov.expenses_by_category:
                df_cat = pd.DataFrame([{"Category": c.name, "Total": c.value} for c in ov.expenses_by_category])
                fig_cat = px.pie(df_cat, values="Total", names="Category", title="Category Distribution")
                fig_cat.update_layout(height=320)
                st.plotly_chart(fig_cat, use_container_width=True)
        with col_recent:
            st.subheader("🧾 Recent Transactions")
            if ov.recent_transactions:
                st.table(pd.DataFrame([{
                    "Date": t.date.strftime("%Y-%m-%d"),
                    "Description": t.description,
                    "Category": t.category,
                    "Amount": money(t.amount),
                } for t in ov.recent_transactions]))
            else:
                st.info("No transactions to display.")

elif menu == "💰 Budget":
    st.title("💰 Budget")
    if st.button("🔄 Refresh", key="btn_refresh_budget"):
        run(budget_service.refresh())
    if budget_service.error:
        st.error(budget_service.error)

    summary = budget_service.value
    if summary is None:
        st.info("No budget data loaded yet.")
    else:
        k1, k2, k3 = st.columns(3)
        with k1:
            st.metric("Total Budget", money(summary.total_budget))
        with k2:
            st.metric("Total Spent", money(summary.total_spent))
        with k3:
            st.metric("Spent", f"{summary.percent_spent}%")

        for s in summary.summaries:
            st.markdown(
                f"<span style='color:{s.color}'>●</span> **{s.category}** "
                f"<small>({s.icon})</small>",
                unsafe_allow_html=True,
            )
            if s.percent is None:
                st.caption(f"{money(s.spent)} spent · no budget set")
            else:
                st.caption(f"{money(s.spent)} / {money(s.budget)}")
                st.progress(min(100.0, s.percent) / 100)

elif menu == "📈 Markets":
    st.title("📈 Markets")

    symbols_text = st.text_input("Watchlist (comma separated)", value=", ".join(market.watchlist))
    c1, c2, c3, c4, c5 = st.columns(5)
    with c1:
        if st.button("Update watchlist"):
            try:
                run(market.set_watchlist(symbols_text.split(",")))
            except FetchFailure:
                pass
    with c2:
        if st.button("🔄 Refresh"):
            try:
                run(market.refresh())
            except FetchFailure:
                pass
    with c3:
        if st.button("Live prices"):
            run(market.refresh_live_prices())
    with c4:
        if st.button("Predict"):
            run(market.generate_predictions())
    with c5:
        if st.button("Simulate"):
            run(market.simulate_realtime_updates())
            # the pushes arrive through the subscription; wait for them before drawing
            run(market.drain())

    if market.fetch_error:
        st.error(market.fetch_error)

    for symbol in market.watchlist:
        state = market.state(symbol)
        if state is None:
            continue
        latest = money(state.latest.price) if state.latest else "-"
        st.subheader(f"{symbol} · {latest}")
        st.caption(state.status.value)

        fig = go.Figure()
        if state.historical:
            fig.add_trace(go.Candlestick(
                x=[b.timestamp for b in state.historical],
                open=[b.open for b in state.historical],
                high=[b.high for b in state.historical],
                low=[b.low for b in state.historical],
                close=[b.close for b in state.historical],
                name="History",
            ))
        if state.predictions:
            fig.add_trace(go.Scatter(
                x=[p.timestamp for p in state.predictions],
                y=[p.predicted_price for p in state.predictions],
                mode="lines+markers",
                name="Predicted",
                line=dict(dash="dash"),
            ))
        fig.update_layout(template="plotly_dark", height=320, xaxis_rangeslider_visible=False,
                          margin=dict(t=10, b=10, l=10, r=10))
        st.plotly_chart(fig, use_container_width=True)

show_toasts()

"""
Test suite for backend/myquant/services/portfolio.py
"""
import math
from datetime import datetime, timezone

import pytest

from myquant.schemas.digest import DigestEntry
from myquant.services.portfolio import (
    append_purchase_notes,
    compute_portfolio_metrics,
    first_name,
    pct_change,
    portfolio_summary,
    rank_holdings,
    select_watchlist,
    week_ending_label,
    weighted_average_merge,
)
from tests.factories import make_holding, make_research, make_user


def _entry(symbol, value, weekly_value_change):
    return DigestEntry(symbol=symbol, company_name=symbol, current_price=1.0,
                       value=value, weekly_value_change=weekly_value_change)


class TestWeightedAverageMerge:
    """Adding a purchase to an existing position"""

    def test_example_merge(self):
        units, price = weighted_average_merge(100, 150.0, 50, 180.0)
        assert units == 150
        assert price == 160.00

    def test_rounds_to_cents(self):
        _, price = weighted_average_merge(3, 10.0, 1, 10.01)
        assert price == 10.0

    def test_fractional_units(self):
        units, price = weighted_average_merge(0.5, 100.0, 1.5, 200.0)
        assert units == 2.0
        assert price == 175.0

    def test_non_positive_total_rejected(self):
        with pytest.raises(ValueError):
            weighted_average_merge(0, 10.0, 0, 20.0)


class TestPurchaseNotes:

    def test_appends_with_separator(self):
        notes = append_purchase_notes("first lot", "second lot", "2026-10-01")
        assert notes == "first lot\n\n--- New Purchase 2026-10-01 ---\nsecond lot"

    def test_keeps_existing_when_no_new(self):
        assert append_purchase_notes("first lot", None, "2026-10-01") == "first lot"

    def test_new_only(self):
        assert append_purchase_notes(None, "lot", "2026-10-01") == "lot"


class TestPctChange:

    def test_basic(self):
        assert pct_change(110, 100) == pytest.approx(10.0)

    def test_zero_baseline_is_exactly_zero(self):
        assert pct_change(50, 0) == 0.0

    def test_negative_baseline_is_zero(self):
        assert pct_change(50, -5) == 0.0


class TestRanking:

    def test_orders_by_value_descending(self):
        u = make_user()
        small = make_holding(u, "AAA", 1, 10.0)
        big = make_holding(u, "BBB", 10, 100.0)
        mid = make_holding(u, "CCC", 5, 20.0, current=40.0)   # current price wins over bought
        assert [h.ticker for h in rank_holdings([small, big, mid])] == ["BBB", "CCC", "AAA"]

    def test_ties_keep_stored_order(self):
        u = make_user()
        first = make_holding(u, "AAA", 10, 10.0)
        second = make_holding(u, "BBB", 5, 20.0)
        third = make_holding(u, "CCC", 1, 100.0)
        assert [h.ticker for h in rank_holdings([first, second, third])] == ["AAA", "BBB", "CCC"]
        assert [h.ticker for h in rank_holdings([third, first, second])] == ["CCC", "AAA", "BBB"]

    def test_truncates_to_limit(self):
        u = make_user()
        holdings = [make_holding(u, f"T{i:02d}", i + 1, 10.0) for i in range(15)]
        top = rank_holdings(holdings, limit=10)
        assert len(top) == 10
        assert top[0].ticker == "T14"
        assert top[-1].ticker == "T05"


class TestWatchlistSelection:

    def test_excludes_held_tickers(self):
        u = make_user()
        stocks = [make_research(u, "AAPL", days_ago=1), make_research(u, "NVDA", days_ago=2)]
        picks = select_watchlist(stocks, ["aapl", "TSLA"])
        assert [s.ticker for s in picks] == ["NVDA"]

    def test_most_recent_first_and_limited(self):
        u = make_user()
        stocks = [make_research(u, f"R{i}", days_ago=i) for i in range(12)]
        picks = select_watchlist(list(reversed(stocks)), [], limit=10)
        assert [s.ticker for s in picks] == [f"R{i}" for i in range(10)]


class TestPortfolioMetrics:

    def test_sums_and_percent(self):
        m = compute_portfolio_metrics([_entry("A", 1100.0, 100.0), _entry("B", 900.0, -50.0)])
        assert m.total_value == 2000.0
        assert m.weekly_change == 50.0
        assert m.weekly_change_percent == pytest.approx(50.0 / 1950.0 * 100)

    def test_empty_list_is_zero(self):
        m = compute_portfolio_metrics([])
        assert m.total_value == 0
        assert m.weekly_change == 0
        assert m.weekly_change_percent == 0
        assert not math.isnan(m.weekly_change_percent)

    def test_non_positive_start_value_gives_zero_percent(self):
        m = compute_portfolio_metrics([_entry("A", 100.0, 100.0)])
        assert m.weekly_change_percent == 0.0


class TestNaming:

    def test_first_name_from_display_name(self):
        assert first_name("Jane Doe", "x@example.com") == "jane"

    def test_first_name_from_email(self):
        assert first_name(None, "Trader.Joe@example.com") == "trader.joe"
        assert first_name("   ", "bob@example.com") == "bob"

    def test_week_ending_label(self):
        assert week_ending_label(datetime(2026, 10, 9, tzinfo=timezone.utc)) == "October 9, 2026"


class TestPortfolioSummary:

    def test_long_short_counts_and_pnl(self):
        u = make_user()
        holdings = [
            make_holding(u, "AAPL", 10, 100.0, current=110.0),
            make_holding(u, "TSLA", 2, 200.0, position_type="short"),
        ]
        s = portfolio_summary(holdings)
        assert s["total_value"] == 1500.0
        assert s["total_cost"] == 1400.0
        assert s["total_pnl"] == 100.0
        assert s["total_pnl_percent"] == pytest.approx(7.14, abs=0.01)
        assert s["long_positions"] == 1
        assert s["short_positions"] == 1

    def test_empty(self):
        assert portfolio_summary([])["total_pnl_percent"] == 0.0

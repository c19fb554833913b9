# backend/myquant/services/portfolio.py
"""Portfolio arithmetic shared by the holdings store and the digest.

Pure functions only; nothing here touches the network or the database.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Tuple

from myquant.schemas.digest import DigestEntry, PortfolioMetrics

if TYPE_CHECKING:
    from myquant.db.schemas import Holding, ResearchStock


def pct_change(new: float, base: float) -> float:
    """Percent change from ``base``; exactly 0 when there is no positive baseline"""
    if not base or base <= 0:
        return 0.0
    return (new - base) / base * 100


def weighted_average_merge(
    units_a: float, price_a: float, units_b: float, price_b: float
) -> Tuple[float, float]:
    """Fold a purchase into a position.

    Returns ``(total_units, average_price)`` with the price rounded to cents.
    100 @ 150 merged with 50 @ 180 gives ``(150, 160.0)``.
    """
    total_units = units_a + units_b
    if total_units <= 0:
        raise ValueError("merged position must hold a positive number of units")
    avg = (units_a * price_a + units_b * price_b) / total_units
    return total_units, round(avg, 2)


def append_purchase_notes(existing: Optional[str], new: Optional[str], purchase_date: str) -> Optional[str]:
    if not new:
        return existing
    if not existing:
        return new
    return f"{existing}\n\n--- New Purchase {purchase_date} ---\n{new}"


def position_value(holding: "Holding") -> float:
    return holding.units_held * (holding.current_price or holding.bought_price)


def rank_holdings(holdings: Sequence["Holding"], limit: int = 10) -> List["Holding"]:
    """Highest value first; ties keep their stored order"""
    return sorted(holdings, key=position_value, reverse=True)[:limit]


def _added_ts(stock: "ResearchStock") -> float:
    added = stock.added_date
    if added.tzinfo is None:
        added = added.replace(tzinfo=timezone.utc)
    return added.timestamp()


def select_watchlist(
    watchlist: Sequence["ResearchStock"],
    held_tickers: Iterable[str],
    limit: int = 10,
) -> List["ResearchStock"]:
    """Most recently added first, excluding anything already shown as a holding"""
    held = {t.upper() for t in held_tickers}
    candidates = [s for s in watchlist if s.ticker.upper() not in held]
    return sorted(candidates, key=_added_ts, reverse=True)[:limit]


def compute_portfolio_metrics(entries: Sequence[DigestEntry]) -> PortfolioMetrics:
    total = sum(e.value for e in entries)
    weekly = sum(e.weekly_value_change for e in entries)
    start = total - weekly
    percent = weekly / start * 100 if start > 0 else 0.0
    return PortfolioMetrics(total_value=total, weekly_change=weekly, weekly_change_percent=percent)


def first_name(name: Optional[str], email: str) -> str:
    if name and name.strip():
        return name.strip().split()[0].lower()
    return email.split("@")[0].lower()


def week_ending_label(now: Optional[datetime] = None) -> str:
    """e.g. 'October 23, 2026'"""
    now = now or datetime.now(timezone.utc)
    return f"{now:%B} {now.day}, {now.year}"


def portfolio_summary(holdings: Sequence["Holding"]) -> Dict[str, float]:
    total_value = 0.0
    total_cost = 0.0
    long_positions = 0
    for h in holdings:
        total_value += position_value(h)
        total_cost += h.units_held * h.bought_price
        if h.position_type == "long":
            long_positions += 1
    pnl = total_value - total_cost
    return {
        "total_value": round(total_value, 2),
        "total_cost": round(total_cost, 2),
        "total_pnl": round(pnl, 2),
        "total_pnl_percent": round(pnl / total_cost * 100, 2) if total_cost > 0 else 0.0,
        "active_positions": len(holdings),
        "long_positions": long_positions,
        "short_positions": len(holdings) - long_positions,
    }

# backend/myquant/schemas/digest.py
from __future__ import annotations
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from myquant.schemas.market import Recommendation

RESEARCH_REASON = "Added to your research watchlist for potential opportunities"


class DigestEntry(BaseModel):
    symbol: str
    company_name: str
    current_price: float
    price_change: float = 0.0
    price_change_percent: float = 0.0
    weekly_change: float = 0.0
    weekly_change_percent: float = 0.0
    weekly_value_change: float = 0.0
    value: float = 0.0
    shares: Optional[float] = None           # None for watchlist entries
    recommendation: Recommendation = Recommendation.HOLD
    summary: str = ""
    news_urls: List[str] = Field(default_factory=list)
    research_reason: Optional[str] = None


class PortfolioMetrics(BaseModel):
    total_value: float = 0.0
    weekly_change: float = 0.0
    weekly_change_percent: float = 0.0


class PortfolioDigest(BaseModel):
    recipient: str
    first_name: str
    week_ending: str
    total_portfolio_value: float
    weekly_portfolio_change: float
    weekly_portfolio_change_percent: float
    holdings: List[DigestEntry] = Field(default_factory=list)
    watchlist: List[DigestEntry] = Field(default_factory=list)
    portfolio_overview: str = ""


class DeliveryResult(BaseModel):
    message_id: Optional[str] = None
    recipient: str


class DigestOutcome(BaseModel):
    user_id: str
    status: Literal["sent", "skipped", "preview"]
    digest: Optional[PortfolioDigest] = None
    delivery: Optional[DeliveryResult] = None
    degraded_tickers: List[str] = Field(default_factory=list)


class BatchReport(BaseModel):
    total_users: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    failed_user_ids: List[str] = Field(default_factory=list)

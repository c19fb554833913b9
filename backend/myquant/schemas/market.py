# backend/myquant/schemas/market.py
"""Payloads exchanged with the quote, news and LLM providers"""

from __future__ import annotations
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


# ---------- Yahoo chart endpoint ----------

class ChartQuote(BaseModel):
    model_config = ConfigDict(extra="ignore")
    close: List[Optional[float]] = Field(default_factory=list)


class ChartIndicators(BaseModel):
    model_config = ConfigDict(extra="ignore")
    quote: List[ChartQuote] = Field(default_factory=list)


class ChartMeta(BaseModel):
    model_config = ConfigDict(extra="ignore")
    symbol: Optional[str] = None
    longName: Optional[str] = None
    shortName: Optional[str] = None
    regularMarketPrice: Optional[float] = None
    previousClose: Optional[float] = None
    chartPreviousClose: Optional[float] = None


class ChartResult(BaseModel):
    model_config = ConfigDict(extra="ignore")
    meta: ChartMeta
    timestamp: List[int] = Field(default_factory=list)
    indicators: ChartIndicators = Field(default_factory=ChartIndicators)

    def valid_closes(self) -> List[float]:
        """Closes in chronological order; nulls mean no trading that day and are dropped"""
        if not self.indicators.quote:
            return []
        return [c for c in self.indicators.quote[0].close if c is not None]


class ChartBody(BaseModel):
    model_config = ConfigDict(extra="ignore")
    result: Optional[List[ChartResult]] = None
    error: Optional[dict] = None


class ChartResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")
    chart: ChartBody

    def first(self) -> Optional[ChartResult]:
        return self.chart.result[0] if self.chart.result else None


class PriceSnapshot(BaseModel):
    current: float
    week_ago: float
    previous_close: float
    daily_change: float
    daily_change_percent: float
    weekly_change: float
    weekly_change_percent: float
    degraded: bool = False


# ---------- news ----------

class NewsItem(BaseModel):
    title: str = ""
    url: str
    snippet: str = ""
    source: str = "Unknown Source"
    published_at: Optional[str] = None      # provider-relative, e.g. "12 hours ago"


class ArticleExcerpt(BaseModel):
    url: str
    title: str = ""
    text: str = ""
    from_snippet: bool = False


# ---------- analyst ----------

class Recommendation(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class AnalysisResult(BaseModel):
    recommendation: Recommendation = Recommendation.HOLD
    summary: str
    news_urls: List[str] = Field(default_factory=list)

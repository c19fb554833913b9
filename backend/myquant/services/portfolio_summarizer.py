# backend/myquant/services/portfolio_summarizer.py
from __future__ import annotations

from typing import Optional, Sequence

from myquant.core.config import settings
from myquant.core.result import ErrorKind, Result
from myquant.logger import get_logger
from myquant.schemas.digest import DigestEntry
from myquant.services.llm import LLMClient, LLMError

log = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a professional portfolio analyst providing weekly investment insights. "
    "Be concise, actionable, and focus on the most important trends and opportunities."
)

FALLBACK_OVERVIEW = (
    "Your portfolio analysis will be available in the next digest. "
    "Individual stock recommendations are provided below."
)


def _holding_line(e: DigestEntry) -> str:
    news = f"{e.summary[:150]}..." if e.summary else "No recent news analysis available"
    return (f"{e.symbol}: {e.recommendation.value} ({e.weekly_change_percent:.1f}% weekly, "
            f"${e.value:,.0f} value) - {news}")


def build_prompt(
    holdings: Sequence[DigestEntry],
    watchlist: Sequence[DigestEntry],
    total_value: float,
    total_change: float,
    change_percent: float,
) -> str:
    holdings_block = "\n".join(_holding_line(h) for h in holdings) or "No holdings"
    research_block = "\n".join(
        f"{w.symbol}: {w.recommendation.value} ({w.weekly_change_percent:.1f}% weekly)" for w in watchlist
    ) or "None"

    return f"""
Provide a brief portfolio summary for this week.

PORTFOLIO: ${total_value:,.0f} total value, {'+' if total_change >= 0 else '-'}${abs(total_change):,.2f} ({change_percent:+.2f}%) this week

HOLDINGS WITH NEWS ANALYSIS ({len(holdings)}):
{holdings_block}

RESEARCH WATCHLIST ({len(watchlist)}):
{research_block}

Based on the above holdings, their performance, recommendations, and news analysis, write a concise portfolio summary (max 150 words) covering:
- Overall portfolio performance and trends
- Key news themes affecting your holdings
- Notable winners/losers and why
- Market sentiment from the news

No bullet points or sections - just a flowing, insightful paragraph in a professional but conversational tone. Address the portfolio owner directly using 'your portfolio' rather than 'the portfolio'.

Your answer should be less than 150 words in total.
""".strip()


class PortfolioSummarizer:
    def __init__(self, llm: LLMClient, temperature: Optional[float] = None, max_tokens: Optional[int] = None):
        self.llm = llm
        self.temperature = settings.SUMMARY_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.SUMMARY_MAX_TOKENS

    async def summarize(
        self,
        holdings: Sequence[DigestEntry],
        watchlist: Sequence[DigestEntry],
        total_value: float,
        total_change: float,
        change_percent: float,
    ) -> Result[str]:
        prompt = build_prompt(holdings, watchlist, total_value, total_change, change_percent)
        try:
            overview = await self.llm.complete(SYSTEM_PROMPT, prompt, self.temperature, self.max_tokens)
        except LLMError as e:
            log.warning(f"[SUMMARY] overview unavailable: {e}")
            return Result.fallback(FALLBACK_OVERVIEW, ErrorKind.LLM_FAILURE, str(e))
        return Result.success(overview)

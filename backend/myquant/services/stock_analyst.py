# backend/myquant/services/stock_analyst.py
"""Per-ticker BUY/SELL/HOLD recommendation from price movement and recent news."""

from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple

from myquant.core.config import settings
from myquant.core.result import ErrorKind, Result
from myquant.logger import get_logger
from myquant.schemas.market import AnalysisResult, ArticleExcerpt, Recommendation
from myquant.services.llm import LLMClient, LLMError
from myquant.services.portfolio import pct_change

log = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a professional financial analyst providing concise, actionable trading "
    "recommendations. Be objective and consider both risks and opportunities. "
    "Keep analysis under 120 words."
)

_LABEL = re.compile(r"^[\s*_#>-]*(RECOMMENDATION|ANALYSIS)[\s*_]*:[\s*_]*(.*)$", re.IGNORECASE)


def fallback_analysis(ticker: str) -> AnalysisResult:
    return AnalysisResult(
        recommendation=Recommendation.HOLD,
        summary=f"Unable to generate analysis for {ticker} at this time. Please review manually.",
        news_urls=[],
    )


def build_prompt(
    ticker: str,
    company_name: str,
    current_price: float,
    baseline_price: float,
    articles: Sequence[ArticleExcerpt],
    excerpt_chars: int = 1000,
) -> str:
    change_pct = pct_change(current_price, baseline_price)
    if articles:
        news = "\n\n".join(
            f"Article {i}: {a.title}\n{a.text[:excerpt_chars]}" for i, a in enumerate(articles, 1)
        )
    else:
        news = "No recent news available"
    sources = ", ".join(a.url for a in articles) or "none"

    return f"""
Analyze {ticker} ({company_name}) for a trading recommendation.

Current Price: ${current_price:.2f}
Previous/Bought Price: ${baseline_price:.2f}
Price Change: {change_pct:.2f}%

Recent News (last 7 days):
{news}

News Sources: {sources}

Provide a concise analysis (max 120 words) and a clear recommendation (BUY, SELL, or HOLD).
Focus on:
1. Key factors from the news affecting the stock
2. Technical and fundamental outlook
3. Risk assessment
4. Clear rationale for recommendation

Format your response as:
RECOMMENDATION: [BUY/SELL/HOLD]
ANALYSIS: [Your analysis here]
""".strip()


def parse_recommendation(text: str) -> Optional[Tuple[Recommendation, Optional[str]]]:
    """Pull ``(recommendation, summary)`` out of a completion.

    Labels match case-insensitively and may be wrapped in markdown emphasis.
    A recommendation other than exactly BUY/SELL/HOLD reads as HOLD. The
    summary is the ANALYSIS text including continuation lines; without an
    ANALYSIS label it is whatever text is left once the recommendation line is
    removed (``None`` if nothing is). Returns ``None`` when neither label is
    present.
    """
    recommendation: Optional[Recommendation] = None
    analysis: Optional[List[str]] = None
    leftover: List[str] = []
    seen_label = False

    for line in (text or "").splitlines():
        m = _LABEL.match(line)
        if m and m.group(1).upper() == "RECOMMENDATION" and recommendation is None:
            seen_label = True
            value = m.group(2).strip().strip("*_[]().").strip().upper()
            recommendation = Recommendation(value) if value in Recommendation.__members__ else Recommendation.HOLD
            continue
        if m and m.group(1).upper() == "ANALYSIS" and analysis is None:
            seen_label = True
            analysis = [m.group(2)]
            continue
        if analysis is not None:
            analysis.append(line)
        else:
            leftover.append(line)

    if not seen_label:
        return None

    summary = "\n".join(analysis if analysis is not None else leftover).strip()
    return recommendation or Recommendation.HOLD, summary or None


class StockAnalyst:
    def __init__(self, llm: LLMClient, temperature: Optional[float] = None,
                 max_tokens: Optional[int] = None, excerpt_chars: Optional[int] = None):
        self.llm = llm
        self.temperature = settings.ANALYST_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.ANALYST_MAX_TOKENS
        self.excerpt_chars = excerpt_chars or settings.NEWS_EXCERPT_CHARS

    async def analyze(
        self,
        ticker: str,
        company_name: str,
        current_price: float,
        baseline_price: float,
        articles: Sequence[ArticleExcerpt],
    ) -> Result[AnalysisResult]:
        prompt = build_prompt(ticker, company_name, current_price, baseline_price, articles, self.excerpt_chars)
        try:
            content = await self.llm.complete(SYSTEM_PROMPT, prompt, self.temperature, self.max_tokens)
        except LLMError as e:
            log.warning(f"[ANALYST] {ticker}: {e}")
            return Result.fallback(fallback_analysis(ticker), ErrorKind.LLM_FAILURE, str(e))

        parsed = parse_recommendation(content)
        if parsed is None:
            log.warning(f"[ANALYST] {ticker}: unparseable completion: {content[:80]}")
            return Result.fallback(fallback_analysis(ticker), ErrorKind.PARSE_FAILURE, "no RECOMMENDATION/ANALYSIS labels")

        recommendation, summary = parsed
        log.info(f"[ANALYST] {ticker} -> {recommendation.value}")
        return Result.success(AnalysisResult(
            recommendation=recommendation,
            summary=summary or f"{ticker} analysis based on current market conditions and recent news.",
            news_urls=[a.url for a in articles],
        ))

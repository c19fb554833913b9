# backend/myquant/services/email_dispatcher.py
"""Render the weekly digest to HTML and deliver it through Resend."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape

from myquant.core.config import settings
from myquant.logger import get_logger
from myquant.schemas.digest import DeliveryResult, PortfolioDigest
from myquant.schemas.market import Recommendation

log = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
TEMPLATE_NAME = "weekly_digest.html"

GREEN = "#10b981"
RED = "#ef4444"
AMBER = "#f59e0b"
GRAY = "#6b7280"

BADGE_COLORS = {
    Recommendation.BUY: GREEN,
    Recommendation.SELL: RED,
    Recommendation.HOLD: AMBER,
}


class EmailDeliveryError(Exception):
    """The provider rejected the message or could not be reached"""


def format_currency(amount: float) -> str:
    """$1,234.56 / -$1,234.56"""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_signed_currency(amount: float) -> str:
    """+$12.34 / -$12.34"""
    return f"{'+' if amount >= 0 else '-'}${abs(amount):,.2f}"


def format_percent(percent: float) -> str:
    """+1.23% / -1.23%"""
    return f"{'+' if percent >= 0 else ''}{percent:.2f}%"


def format_shares(units: Optional[float]) -> str:
    if units is None:
        return ""
    if float(units).is_integer():
        return f"{int(units):,}"
    return f"{units:,.8f}".rstrip("0").rstrip(".")


def trend_color(value: float) -> str:
    return GREEN if value >= 0 else RED


def badge_color(rec) -> str:
    try:
        return BADGE_COLORS[Recommendation(rec)]
    except ValueError:
        return GRAY


def build_environment(template_dir: Path = TEMPLATE_DIR) -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(template_dir)),
        autoescape=select_autoescape(enabled_extensions=("html",)),
    )
    env.filters["currency"] = format_currency
    env.filters["signed_currency"] = format_signed_currency
    env.filters["percent"] = format_percent
    env.filters["shares"] = format_shares
    env.filters["trend_color"] = trend_color
    env.filters["badge_color"] = badge_color
    return env


class EmailDispatcher:
    def __init__(self, api_key: Optional[str] = None, from_address: Optional[str] = None,
                 logo_url: Optional[str] = None, env: Optional[Environment] = None):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.from_address = from_address or settings.DIGEST_FROM_ADDRESS
        self.logo_url = logo_url or settings.LOGO_URL
        self.env = env or build_environment()

    @staticmethod
    def subject_for(digest: PortfolioDigest) -> str:
        return f"myquant. weekly digest - {digest.week_ending}"

    def render(self, digest: PortfolioDigest) -> str:
        return self.env.get_template(TEMPLATE_NAME).render(digest=digest, logo_url=self.logo_url)

    def _send_sync(self, params: dict) -> dict:
        resend.api_key = self.api_key
        return resend.Emails.send(params)

    async def send(self, digest: PortfolioDigest) -> DeliveryResult:
        if not self.api_key:
            raise EmailDeliveryError("RESEND_API_KEY not set")

        params = {
            "from": self.from_address,
            "to": [digest.recipient],
            "subject": self.subject_for(digest),
            "html": self.render(digest),
        }
        try:
            sent = await asyncio.to_thread(self._send_sync, params)
        except Exception as e:
            # the SDK raises its own errors and requests' transport errors alike
            raise EmailDeliveryError(f"Resend rejected digest for {digest.recipient}: {e}") from e

        message_id = sent.get("id") if isinstance(sent, dict) else getattr(sent, "id", None)
        log.info(f"[EMAIL] digest sent to {digest.recipient} (id={message_id})")
        return DeliveryResult(message_id=message_id, recipient=digest.recipient)

# backend/myquant/core/config.py
from __future__ import annotations
import os
from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

# Resolves to <repo-root>/backend/.env when this file is at backend/myquant/core/config.py
ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- service ---
    MONGO_URI: str = "mongodb://127.0.0.1:27017"
    MONGO_DB_NAME: str = "myquant"
    ENV: str = "development"
    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = []
    ALLOWED_ORIGINS: Optional[str] = None
    SECRET_KEY: str = "dev"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    LOG_LEVEL: str = "INFO"
    HTTP_TIMEOUT_SECONDS: float = 20.0
    CACHE_TTL_SECONDS: int = 600

    # --- quotes (Yahoo chart endpoint) ---
    YAHOO_CHART_URL: str = "https://query1.finance.yahoo.com/v8/finance/chart"
    QUOTE_LOOKBACK_DAYS: int = 7
    QUOTE_MAX_CONCURRENCY: int = 5

    # --- news (Firecrawl) ---
    FIRECRAWL_API_KEY: Optional[str] = None
    FIRECRAWL_BASE_URL: str = "https://api.firecrawl.dev"
    NEWS_RESULTS_PER_TICKER: int = 2
    NEWS_RECENCY: str = "qdr:w"                 # qdr:w past week, qdr:d past day
    NEWS_EXCERPT_CHARS: int = 1000
    NEWS_MAX_RETRIES: int = 3
    NEWS_RETRY_BASE_DELAY: float = 1.0

    # --- LLM ---
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANALYST_TEMPERATURE: float = 0.3
    ANALYST_MAX_TOKENS: int = 250
    SUMMARY_TEMPERATURE: float = 0.4
    SUMMARY_MAX_TOKENS: int = 300

    # --- email (Resend) ---
    RESEND_API_KEY: Optional[str] = None
    DIGEST_FROM_ADDRESS: str = "myquant. <digest@resend.dev>"
    LOGO_URL: str = "https://my-quant.vercel.app/logo-white.png"

    # --- weekly digest ---
    ENABLE_SCHEDULER: bool = True
    DIGEST_CRON: str = "30 21 * * 5"            # Fridays 21:30 UTC
    DIGEST_TOP_HOLDINGS: int = 10
    DIGEST_TOP_WATCHLIST: int = 10
    DIGEST_TICKER_TIMEOUT_SECONDS: float = 90.0
    DIGEST_PERSIST_PRICES: bool = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors(cls, v):
        if isinstance(v, list):
            return v
        raw = v or os.getenv("ALLOWED_ORIGINS", "")
        return [o.strip() for o in str(raw).split(",") if o.strip()]

    @field_validator("ENABLE_SCHEDULER", "DIGEST_PERSIST_PRICES", mode="before")
    @classmethod
    def _parse_bool(cls, v):
        if isinstance(v, bool):
            return v
        return str(v).lower() in ("1", "true", "yes", "on")

    @field_validator("DIGEST_CRON")
    @classmethod
    def _validate_cron(cls, v):
        if len(v.split()) != 5:
            raise ValueError("DIGEST_CRON must be a 5-field crontab expression")
        return v

    @field_validator("ANALYST_TEMPERATURE", "SUMMARY_TEMPERATURE")
    @classmethod
    def _validate_temperature(cls, v):
        if not 0.0 <= v <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0")
        return v

    @field_validator("DIGEST_TOP_HOLDINGS", "DIGEST_TOP_WATCHLIST", "NEWS_RESULTS_PER_TICKER")
    @classmethod
    def _validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be at least 1")
        return v


settings = Settings()

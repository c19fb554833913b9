# backend/myquant/core/result.py
"""Outcome type shared by the digest generators.

Every generator (quotes, news, analyst, summarizer) hands back a usable value
even when its upstream failed. ``error`` tells the caller whether that value
is the real thing or a fallback, so degraded output can be logged without
try/except around each call.
"""

from __future__ import annotations
from enum import Enum
from typing import Generic, Optional, TypeVar
from dataclasses import dataclass

T = TypeVar("T")


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    MISSING_DATA = "missing_data"
    LLM_FAILURE = "llm_failure"
    PARSE_FAILURE = "parse_failure"
    TIMEOUT = "timeout"
    NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T
    error: Optional[ErrorKind] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def degraded(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fallback(cls, value: T, error: ErrorKind, detail: Optional[str] = None) -> "Result[T]":
        return cls(value=value, error=error, detail=detail)

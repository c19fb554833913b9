# backend/myquant/services/llm.py
"""Thin async wrapper over the OpenAI chat completions API"""

from __future__ import annotations
from typing import Optional

import openai
from openai import AsyncOpenAI

from myquant.core.config import settings
from myquant.logger import get_logger

log = get_logger(__name__)


class LLMError(Exception):
    """The completion could not be produced (no client, API error, empty output)"""


class LLMClient:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 client: Optional[AsyncOpenAI] = None):
        self.model = model or settings.OPENAI_MODEL
        key = api_key if api_key is not None else settings.OPENAI_API_KEY
        if client is not None:
            self.client = client
        elif key:
            self.client = AsyncOpenAI(api_key=key, timeout=settings.HTTP_TIMEOUT_SECONDS * 3)
        else:
            self.client = None
            log.warning("OPENAI_API_KEY not set; AI analysis will use fallbacks")

    async def complete(self, system: str, user: str, temperature: float, max_tokens: int) -> str:
        if self.client is None:
            raise LLMError("LLM client not configured")
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.OpenAIError as e:
            raise LLMError(f"completion failed: {e}") from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            raise LLMError("empty completion")
        return content.strip()

# backend/tests/conftest.py
import os

# keep tests offline and deterministic
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["FIRECRAWL_API_KEY"] = ""
os.environ["RESEND_API_KEY"] = ""

import pytest

from myquant.core.retry import RetryPolicy
from tests.factories import make_user


@pytest.fixture
def no_sleep_retry():
    """RetryPolicy that records its backoff delays instead of sleeping"""
    sleeps = []

    async def _record(delay):
        sleeps.append(delay)

    policy = RetryPolicy(max_retries=3, base_delay=1.0, sleep=_record)
    policy.sleeps = sleeps
    return policy


@pytest.fixture
def user():
    return make_user()

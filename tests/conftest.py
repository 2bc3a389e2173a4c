"""
Shared fixtures for the llmcore test suite.

No test touches the network: vendor endpoints are stubbed with
httpx.MockTransport, and executor tests use a scripted in-memory provider
(see tests/stubs.py).
"""

from __future__ import annotations

import pytest

from llmcore.config import loader as config_loader
from llmcore.context import ExecutionContext
from llmcore.llm.retry import RetryPolicy
from llmcore.llm.types import ChatRequest, Message

API_KEY_VARS = (
    "OPENROUTER_API_KEY",
    "OPENAI_API_KEY",
    "AZURE_OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GOOGLE_API_KEY",
    "GEMINI_API_KEY",
    "OLLAMA_API_KEY",
)


# ===========================================================================
# Environment isolation
# ===========================================================================

@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Strip vendor keys and LLMCORE_* settings; reset memoized state."""
    for var in API_KEY_VARS:
        monkeypatch.delenv(var, raising=False)
    for var in ("LLMCORE_CONFIG", "LLMCORE_DEBUG", "LLMCORE_CACHE", "LLMCORE_RATE_LIMIT",
                "LLMCORE_PROVIDER", "LLMCORE_MODEL", "LLMCORE_MAX_RETRIES",
                "LLMCORE_CACHE_MAX_ENTRIES", "LLMCORE_CACHE_TTL", "LLMCORE_ENV"):
        monkeypatch.delenv(var, raising=False)
    config_loader.clear_cache()
    ExecutionContext.reset_default()
    yield
    config_loader.clear_cache()
    ExecutionContext.reset_default()


# ===========================================================================
# Fixtures
# ===========================================================================

@pytest.fixture
def context() -> ExecutionContext:
    return ExecutionContext()


@pytest.fixture
def no_sleep_policy() -> RetryPolicy:
    """Two retries, zero backoff: retry tests run instantly."""
    return RetryPolicy(max_retries=2, initial_delay=0.0, max_delay=0.0, jitter=0.0)


@pytest.fixture
def hello_request() -> ChatRequest:
    return ChatRequest(
        model="model-a",
        messages=[Message.system("Be brief."), Message.user("Hello")],
    )

"""
Pydantic settings schema for the execution core.

Settings come from an optional YAML file overlaid with LLMCORE_*
environment variables (see loader.py). Every section has working
defaults, so an empty file or no file at all is a valid configuration.

Example llmcore.yaml:

    debug: false
    default_provider: openrouter
    default_model: anthropic/claude-sonnet-4.5
    fallbacks: [openai/gpt-4o]
    cache:
      enabled: true
      max_entries: 1000
    rate_limit:
      requests_per_second: 5
    retry:
      max_retries: 3
      initial_delay: 1.0
    providers:
      ollama:
        base_url: http://gpu-box:11434
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from llmcore.llm.ratelimit import TokenBucket
from llmcore.llm.retry import DEFAULT_RETRY_STATUSES, DEFAULT_RETRY_SUBSTRINGS, RetryPolicy


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class RetrySettings(BaseModel):
    """Backoff parameters; mirrors RetryPolicy."""
    max_retries: int = Field(3, ge=0)
    initial_delay: float = Field(1.0, ge=0)
    max_delay: float = Field(60.0, ge=0)
    multiplier: float = Field(2.0, ge=1.0)
    jitter: float = Field(0.1, description="Fraction of the delay, 0..1")
    retry_on_status: list[int] = Field(
        default_factory=lambda: sorted(DEFAULT_RETRY_STATUSES)
    )
    retry_on_errors: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_SUBSTRINGS)
    )
    retry_transport_errors: bool = True

    @field_validator("jitter")
    @classmethod
    def validate_jitter(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("jitter must be between 0 and 1")
        return v

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        initial = info.data.get("initial_delay")
        if initial is not None and v < initial:
            raise ValueError("max_delay must be >= initial_delay")
        return v

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            multiplier=self.multiplier,
            jitter=self.jitter,
            retry_on_status=frozenset(self.retry_on_status),
            retry_on_errors=tuple(self.retry_on_errors),
            retry_transport_errors=self.retry_transport_errors,
        )


class RateLimitSettings(BaseModel):
    """Token bucket. Disabled unless requests_per_second is set."""
    requests_per_second: Optional[float] = None
    burst: Optional[float] = Field(
        None, description="Bucket capacity; defaults to 2x the rate"
    )

    @field_validator("requests_per_second", "burst")
    @classmethod
    def validate_positive(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("must be > 0")
        return v

    @property
    def enabled(self) -> bool:
        return self.requests_per_second is not None

    def to_limiter(self) -> Optional[TokenBucket]:
        if self.requests_per_second is None:
            return None
        return TokenBucket.per_second(self.requests_per_second, burst=self.burst)


class CacheSettings(BaseModel):
    enabled: bool = False
    max_entries: Optional[int] = Field(None, ge=1)
    ttl_seconds: Optional[float] = Field(None, gt=0)


class BatchSettings(BaseModel):
    concurrency: int = Field(5, ge=1)
    timeout: Optional[float] = Field(None, gt=0, description="Per-operation timeout in seconds")
    stop_on_error: bool = False


class ProviderSettings(BaseModel):
    """Connection settings for one vendor; empty values use vendor defaults."""
    api_key: str = ""
    base_url: str = ""
    timeout: float = Field(120.0, gt=0)
    headers: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------

class CoreSettings(BaseModel):
    """Complete execution-core configuration."""
    debug: bool = False
    default_provider: str = "openrouter"
    default_model: str = "anthropic/claude-sonnet-4.5"
    fallbacks: list[str] = Field(default_factory=list)

    retry: RetrySettings = Field(default_factory=RetrySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    providers: dict[str, ProviderSettings] = Field(default_factory=dict)

    @field_validator("default_provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        from llmcore.llm.providers import ProviderType

        v = v.strip().lower()
        known = {p.value for p in ProviderType}
        if v not in known:
            raise ValueError(f"unknown provider '{v}'; expected one of {sorted(known)}")
        return v

    @field_validator("providers")
    @classmethod
    def validate_provider_keys(cls, v: dict[str, ProviderSettings]) -> dict[str, ProviderSettings]:
        from llmcore.llm.providers import ProviderType

        known = {p.value for p in ProviderType}
        unknown = sorted(set(v) - known)
        if unknown:
            raise ValueError(f"unknown providers in 'providers': {unknown}")
        return v

    def provider_settings(self, provider: str) -> ProviderSettings:
        return self.providers.get(provider, ProviderSettings())

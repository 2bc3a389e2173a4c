"""
Retry engine — exponential backoff with jitter around any async operation.

The engine knows nothing about HTTP or vendors. It retries an operation
whose failures `is_retryable` classifies as transient, waiting between
attempts on the caller's cancellation scope so a cancel always wins over
a pending retry.

Usage:
    from llmcore.llm.retry import RetryPolicy, with_retry

    policy = RetryPolicy.aggressive().with_max_retries(2)
    response = await with_retry(lambda: provider.send(request, scope), policy, scope)
"""

from __future__ import annotations

import dataclasses
import logging
import random
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Awaitable, Callable, Optional, TypeVar

from llmcore.exceptions import (
    OperationCancelled,
    ProviderError,
    RetryExhaustedError,
    StreamInterruptedError,
)
from llmcore.scope import Scope

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ProviderError.code used by adapters for connection/timeout failures.
TRANSPORT_ERROR_CODE = "transport"

DEFAULT_RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})

DEFAULT_RETRY_SUBSTRINGS = (
    "connection reset",
    "connection refused",
    "timeout",
    "temporary failure",
    "rate limit",
    "overloaded",
)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to retry and how long to wait in between.

    max_retries=0 means exactly one attempt.
    """

    max_retries: int = 3
    initial_delay: float = 1.0          # seconds
    max_delay: float = 60.0             # seconds
    multiplier: float = 2.0
    jitter: float = 0.1                 # fraction of the delay, 0..1
    retry_on_status: frozenset[int] = DEFAULT_RETRY_STATUSES
    retry_on_errors: tuple[str, ...] = DEFAULT_RETRY_SUBSTRINGS
    retry_transport_errors: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be between 0 and 1")
        if not isinstance(self.retry_on_status, frozenset):
            object.__setattr__(self, "retry_on_status", frozenset(self.retry_on_status))
        if not isinstance(self.retry_on_errors, tuple):
            object.__setattr__(self, "retry_on_errors", tuple(self.retry_on_errors))

    # --- Presets ---

    @classmethod
    def default(cls) -> "RetryPolicy":
        return cls()

    @classmethod
    def aggressive(cls) -> "RetryPolicy":
        """More attempts, shorter waits; also retries raw ECONNRESET errors."""
        return cls(
            max_retries=5,
            initial_delay=0.5,
            max_delay=30.0,
            multiplier=1.5,
            jitter=0.2,
            retry_on_errors=DEFAULT_RETRY_SUBSTRINGS + ("ECONNRESET",),
        )

    @classmethod
    def gentle(cls) -> "RetryPolicy":
        """Fewer attempts, long waits; only rate limiting and overload."""
        return cls(
            max_retries=3,
            initial_delay=2.0,
            max_delay=120.0,
            multiplier=3.0,
            jitter=0.15,
            retry_on_status=frozenset({429, 503}),
            retry_on_errors=("rate limit", "overloaded"),
        )

    @classmethod
    def none(cls) -> "RetryPolicy":
        return cls(max_retries=0)

    # --- Fluent copies ---

    def with_max_retries(self, n: int) -> "RetryPolicy":
        return dataclasses.replace(self, max_retries=n)

    def with_delays(
        self,
        initial: Optional[float] = None,
        maximum: Optional[float] = None,
    ) -> "RetryPolicy":
        return dataclasses.replace(
            self,
            initial_delay=self.initial_delay if initial is None else initial,
            max_delay=self.max_delay if maximum is None else maximum,
        )

    def with_multiplier(self, multiplier: float) -> "RetryPolicy":
        return dataclasses.replace(self, multiplier=multiplier)

    def with_jitter(self, jitter: float) -> "RetryPolicy":
        return dataclasses.replace(self, jitter=min(max(jitter, 0.0), 1.0))

    def with_retry_on_status(self, *codes: int) -> "RetryPolicy":
        return dataclasses.replace(self, retry_on_status=self.retry_on_status | set(codes))

    def with_retry_on_error(self, *substrings: str) -> "RetryPolicy":
        return dataclasses.replace(self, retry_on_errors=self.retry_on_errors + substrings)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

@lru_cache(maxsize=64)
def _status_pattern(status: int) -> re.Pattern[str]:
    # "[429]", "status 429", "status code 429", "status: 429", "http 429"
    return re.compile(
        rf"\[{status}\]|\b(?:status(?:[ _]code)?|http)[\s:=]*{status}\b"
    )


def is_retryable(error: BaseException, policy: RetryPolicy) -> bool:
    """
    Decide whether `error` is transient under `policy`.

    Cancellation and interrupted streams are never retryable. Otherwise,
    in order:
    1. the message contains a bracketed or worded transient status;
    2. the message contains a transient substring (case-insensitive);
    3. the error is a ProviderError whose numeric code is transient,
       or a transport failure when the policy retries those.
    """
    if isinstance(error, (OperationCancelled, StreamInterruptedError)):
        return False

    text = str(error).lower()

    for status in policy.retry_on_status:
        if _status_pattern(status).search(text):
            return True

    for substring in policy.retry_on_errors:
        if substring.lower() in text:
            return True

    if isinstance(error, ProviderError):
        code = error.status_code
        if code is not None and code in policy.retry_on_status:
            return True
        if policy.retry_transport_errors and error.code == TRANSPORT_ERROR_CODE:
            return True

    return False


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------

def base_delay(policy: RetryPolicy, attempt: int) -> float:
    """Capped exponential delay before jitter for a zero-based attempt."""
    return min(policy.max_delay, policy.initial_delay * (policy.multiplier ** attempt))


def compute_delay(
    policy: RetryPolicy,
    attempt: int,
    rng: Optional[random.Random] = None,
) -> float:
    delay = base_delay(policy, attempt)
    if policy.jitter > 0 and delay > 0:
        spread = delay * policy.jitter
        delay += (rng or random).uniform(-spread, spread)
    return max(0.0, delay)


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------

RetryCallback = Callable[[int, BaseException, float], None]


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    scope: Optional[Scope] = None,
    *,
    on_retry: Optional[RetryCallback] = None,
) -> T:
    """
    Run `operation` until it succeeds, fails terminally, or retries run out.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        policy: Retry policy (default: RetryPolicy.default()).
        scope: Cancellation scope; every attempt and every wait runs on it.
        on_retry: Called as on_retry(attempt, error, delay) before each wait.

    Raises:
        The operation's own error when it is not retryable,
        RetryExhaustedError when a transient error outlived every attempt,
        OperationCancelled / DeadlineExceeded when the scope finishes.
    """
    policy = policy or RetryPolicy.default()
    scope = scope or Scope()

    last_error: Optional[BaseException] = None
    attempt = 0
    while True:
        scope.check()

        try:
            return await scope.run(operation())
        except OperationCancelled:
            raise
        except Exception as e:
            last_error = e

        if not is_retryable(last_error, policy):
            logger.debug(
                "retry_not_retryable",
                extra={"attempt": attempt + 1, "error": str(last_error)[:200]},
            )
            raise last_error

        if attempt >= policy.max_retries:
            break

        delay = compute_delay(policy, attempt)
        logger.debug(
            "retry_scheduled",
            extra={
                "attempt": attempt + 1,
                "max_retries": policy.max_retries,
                "delay": round(delay, 3),
                "error": str(last_error)[:200],
            },
        )
        if on_retry is not None:
            on_retry(attempt + 1, last_error, delay)

        await scope.sleep(delay)
        attempt += 1

    logger.debug(
        "retry_exhausted",
        extra={"attempts": attempt + 1, "error": str(last_error)[:200]},
    )
    raise RetryExhaustedError(attempt + 1, last_error)

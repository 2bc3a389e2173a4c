"""
Custom exception hierarchy for the LLM execution core.

Structured error handling with clear categories:
- Configuration errors (caught at startup)
- Provider errors (vendor or transport failures, the retry classifier's input)
- Retry exhaustion (transient failures that never cleared)
- Cancellation, deadlines and interrupted streams (terminal, never retried)
- Fallback exhaustion (every model in the chain failed)

Usage:
    from llmcore.exceptions import ProviderError, RetryExhaustedError

    try:
        response = await executor.send(request)
    except RetryExhaustedError as e:
        logger.error("gave up", extra={"attempts": e.attempts})
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class LLMCoreError(Exception):
    """
    Base exception for all llmcore errors.

    All custom exceptions inherit from this, so you can catch
    `LLMCoreError` to handle any library-specific error.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class ConfigurationError(LLMCoreError):
    """
    Raised when settings (YAML, environment, constructor args) are invalid.

    Examples:
    - jitter outside 0..1
    - unknown provider name
    - malformed YAML file
    """

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.config_path = config_path


class CapabilityWarning(UserWarning):
    """
    Emitted when a request uses a feature the chosen provider does not
    advertise. This is NOT an error: capability tables are best-effort.
    """


# ── Provider Errors ───────────────────────────────────────────────


class ProviderError(LLMCoreError):
    """
    A vendor-reported or transport-level failure from a provider adapter.

    `code` carries the vendor's status/code string verbatim (an HTTP
    status like "429" or a vendor code like "overloaded_error").
    """

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        code: str = "",
        cause: Optional[BaseException] = None,
        details: Optional[dict] = None,
    ):
        self.provider = provider
        self.code = code
        self.message = message
        self.cause = cause
        super().__init__(self._render(), details=details)
        if cause is not None:
            self.__cause__ = cause

    def _render(self) -> str:
        text = f"[{self.provider}]"
        if self.code:
            text += f" {self.code}:"
        text += f" {self.message}"
        if self.cause is not None:
            text += f": {self.cause}"
        return text

    @property
    def status_code(self) -> Optional[int]:
        """The code as an integer when it is numeric, else None."""
        try:
            return int(self.code)
        except (TypeError, ValueError):
            return None


# ── Retry / Cancellation ──────────────────────────────────────────


class RetryExhaustedError(LLMCoreError):
    """
    Raised when a retryable error persisted through every allowed attempt.

    `attempts` counts every call made (initial call plus retries).
    """

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(
            f"max retries ({max(attempts - 1, 0)}) exceeded after {attempts} attempts: {last_error}",
            details={"attempts": attempts},
        )
        self.attempts = attempts
        self.last_error = last_error
        self.__cause__ = last_error


class OperationCancelled(LLMCoreError):
    """
    Raised when the cancellation scope of an operation is done.

    This is a terminal condition: the retry engine never retries it and
    the fallback executor never advances past it.
    """

    def __init__(self, reason: str = "operation cancelled", *, details: Optional[dict] = None):
        super().__init__(reason, details=details)
        self.reason = reason


class DeadlineExceeded(OperationCancelled):
    """Raised when a scope's deadline passes before the operation finished."""

    def __init__(self, reason: str = "deadline exceeded", *, timeout: Optional[float] = None):
        super().__init__(reason, details={"timeout": timeout} if timeout is not None else None)
        self.timeout = timeout


class StreamInterruptedError(LLMCoreError):
    """
    Raised when a stream fails after deltas already reached the callback.

    Terminal: replaying the call would deliver those deltas twice, so it
    is neither retried nor handed to the next model. `delivered` holds the
    text the callback has seen.
    """

    def __init__(self, model: str, delivered: str, cause: BaseException):
        super().__init__(
            f"stream from {model} interrupted after {len(delivered)} chars: {cause}",
            details={"model": model, "delivered_chars": len(delivered)},
        )
        self.model = model
        self.delivered = delivered
        self.__cause__ = cause


# ── Fallback ──────────────────────────────────────────────────────


class FallbackExhaustedError(LLMCoreError):
    """
    Raised when every model in a fallback chain failed.

    The last model's error is the chained cause; the full per-model
    history stays available in `errors` for diagnostics.
    """

    def __init__(
        self,
        errors: Sequence[tuple[str, BaseException]],
        *,
        retries: int = 0,
    ):
        last_model, last_error = errors[-1]
        attempts = sum(
            e.attempts if isinstance(e, RetryExhaustedError) else 1
            for _, e in errors
        )
        super().__init__(
            f"all {len(errors)} model(s) failed after {attempts} attempts; "
            f"last ({last_model}): {last_error}",
            details={"models": [m for m, _ in errors], "retries": retries},
        )
        self.errors: list[tuple[str, BaseException]] = list(errors)
        self.last_model = last_model
        self.last_error = last_error
        self.attempts = attempts
        self.retries = retries
        self.__cause__ = last_error

    def errors_by_model(self) -> dict[str, Any]:
        return {model: err for model, err in self.errors}

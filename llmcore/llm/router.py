"""
Executor — runs one request through cache, rate limiter, retry engine and
an ordered fallback chain.

Per call:
1. Cache lookup (only when caching is enabled and the request declares no
   tools); a hit skips the provider entirely.
2. For each model in [primary, *fallbacks]:
   - soft capability check (CapabilityWarning, never an error)
   - `with_retry` around: before_request hook → rate limiter → provider call,
     firing on_error for every failed attempt
   - success: stats, on_tokens / after_response hooks, cache population
   - cancellation: raised immediately, no further models are tried
   - a stream that fails after delivering deltas: StreamInterruptedError,
     no retry and no further models
3. Every model failed → FallbackExhaustedError wrapping the last error,
   with each model's error kept in `.errors`.

Usage:
    from llmcore.llm.providers import create_provider
    from llmcore.llm.router import Executor

    executor = Executor(create_provider("anthropic"), fallbacks=["anthropic/claude-haiku-4.5"])
    response = await executor.send(ChatRequest(model=CLAUDE_SONNET, messages=[Message.user("hi")]))
    print(response.content, response.model, response.retries)
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from llmcore.context import ExecutionContext
from llmcore.exceptions import (
    FallbackExhaustedError,
    OperationCancelled,
    StreamInterruptedError,
)
from llmcore.llm.capabilities import check_capabilities
from llmcore.llm.providers.base import BaseProvider
from llmcore.llm.retry import RetryPolicy, with_retry
from llmcore.llm.types import ChatRequest, ChatResponse, StreamCallback
from llmcore.observability.logging_config import (
    get_request_id,
    new_request_id,
    reset_request_id,
    set_request_id,
)
from llmcore.scope import Scope

logger = logging.getLogger(__name__)


class Executor:
    """
    Sends requests through one provider with retry and model fallback.

    Args:
        provider: The adapter every model in the chain is sent to.
        fallbacks: Models tried in order after the request's own model fails.
        retry_policy: Overrides the context's default policy.
        context: Shared toggles/resources (default: ExecutionContext.default()).

    Safe to share between concurrent tasks: per-call state lives on the
    stack; the cache, limiter and stats carry their own locks.
    """

    def __init__(
        self,
        provider: BaseProvider,
        *,
        fallbacks: Sequence[str] = (),
        retry_policy: Optional[RetryPolicy] = None,
        context: Optional[ExecutionContext] = None,
    ):
        self.provider = provider
        self.fallbacks = tuple(fallbacks)
        self.context = context or ExecutionContext.default()
        self._retry_policy = retry_policy

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy or self.context.retry_policy

    def models_for(self, request: ChatRequest) -> list[str]:
        """The fallback chain for `request`, primary first, without repeats."""
        chain: list[str] = []
        for model in (request.model, *self.fallbacks):
            if model and model not in chain:
                chain.append(model)
        return chain

    def with_fallbacks(self, fallbacks: Sequence[str]) -> "Executor":
        """A copy sharing provider, policy and context, with another chain."""
        return Executor(
            self.provider,
            fallbacks=fallbacks,
            retry_policy=self._retry_policy,
            context=self.context,
        )

    def get_usage_stats(self) -> dict:
        return self.context.stats.get_usage_stats()

    # --- Public API ---

    async def send(
        self,
        request: ChatRequest,
        scope: Optional[Scope] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> ChatResponse:
        """Non-streaming call with cache, retries and fallback."""
        scope = scope or Scope()
        token = set_request_id(get_request_id() or new_request_id())
        try:
            cached = self._cache_lookup(request)
            if cached is not None:
                return cached
            response = await self._run_chain(request, scope, retry_policy, callback=None)
            self._cache_store(request, response)
            return response
        finally:
            reset_request_id(token)

    async def stream(
        self,
        request: ChatRequest,
        callback: StreamCallback,
        scope: Optional[Scope] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> ChatResponse:
        """
        Streaming call. `callback` receives text deltas in arrival order.

        Providers without streaming get a non-streaming call whose whole
        content is delivered as a single callback. Streamed responses are
        never cached.

        Retries and fallbacks apply only until the first delta reaches
        `callback`; a later failure raises StreamInterruptedError.
        """
        scope = scope or Scope()
        token = set_request_id(get_request_id() or new_request_id())
        try:
            return await self._run_chain(
                request, scope, retry_policy, callback=_Delivery(callback),
            )
        finally:
            reset_request_id(token)

    # --- Cache ---

    def _cacheable(self, request: ChatRequest) -> bool:
        return self.context.cache_enabled and not request.tools

    def _cache_lookup(self, request: ChatRequest) -> Optional[ChatResponse]:
        if not self._cacheable(request):
            return None
        content = self.context.cache.get(self.context.cache.make_key(request))
        if content is None:
            return None
        self.context.stats.record_cache_hit()
        logger.log(
            self.context.log_level,
            "llm_cache_hit",
            extra={"provider": self.provider.name, "model": request.model},
        )
        return ChatResponse(
            content=content,
            model=request.model,
            provider=self.provider.name,
            cached=True,
        )

    def _cache_store(self, request: ChatRequest, response: ChatResponse) -> None:
        if not self._cacheable(request) or response.has_tool_calls:
            return
        # Keyed by the request as submitted, whichever model answered.
        self.context.cache.put(
            self.context.cache.make_key(request),
            response.content,
            model=response.model,
        )

    # --- Fallback chain ---

    async def _run_chain(
        self,
        request: ChatRequest,
        scope: Scope,
        retry_policy: Optional[RetryPolicy],
        callback: Optional[StreamCallback],
    ) -> ChatResponse:
        policy = retry_policy or self.retry_policy
        errors: list[tuple[str, BaseException]] = []
        total_retries = 0

        for index, model in enumerate(self.models_for(request)):
            model_request = request if model == request.model else request.with_model(model)
            check_capabilities(self.provider.name, model_request, self.provider.capabilities())

            retries = 0

            def count_retry(attempt: int, error: BaseException, delay: float) -> None:
                nonlocal retries
                retries += 1
                logger.log(
                    self.context.log_level,
                    "llm_request_retry",
                    extra={
                        "provider": self.provider.name,
                        "model": model,
                        "attempt": attempt,
                        "delay": round(delay, 3),
                        "error": str(error)[:200],
                    },
                )

            try:
                response = await with_retry(
                    lambda: self._attempt(model_request, scope, callback),
                    policy,
                    scope,
                    on_retry=count_retry,
                )
            except OperationCancelled:
                raise
            except StreamInterruptedError as e:
                logger.error(
                    "llm_stream_interrupted",
                    extra={
                        "provider": self.provider.name,
                        "model": model,
                        "delivered_chars": len(e.delivered),
                        "error": str(e.__cause__)[:200],
                    },
                )
                raise
            except Exception as e:
                total_retries += retries
                errors.append((model, e))
                logger.warning(
                    "llm_model_failed",
                    extra={
                        "provider": self.provider.name,
                        "model": model,
                        "retries": retries,
                        "error": str(e)[:200],
                    },
                )
                continue

            total_retries += retries
            response.model = model
            response.retries = total_retries
            if not response.provider:
                response.provider = self.provider.name
            self._record_success(model, response)

            if index > 0:
                logger.info(
                    "llm_fallback_used",
                    extra={
                        "provider": self.provider.name,
                        "model": model,
                        "primary": request.model,
                        "primary_error": str(errors[0][1])[:100],
                    },
                )
            return response

        logger.error(
            "llm_fallback_exhausted",
            extra={
                "provider": self.provider.name,
                "models": [m for m, _ in errors],
                "retries": total_retries,
            },
        )
        raise FallbackExhaustedError(errors, retries=total_retries)

    async def _attempt(
        self,
        request: ChatRequest,
        scope: Scope,
        callback: Optional[StreamCallback],
    ) -> ChatResponse:
        """One provider call: hook, rate limit, send; on_error on failure."""
        hooks = self.context.hooks
        hooks.fire_before_request(request.model, request.messages)
        try:
            if self.context.limiter is not None:
                await self.context.limiter.wait(scope)

            logger.log(
                self.context.log_level,
                "llm_request",
                extra={"provider": self.provider.name, "model": request.model},
            )
            if callback is None:
                return await self.provider.send(request, scope)
            if self.provider.capabilities().streaming:
                return await self.provider.send_stream(request, callback, scope)

            response = await self.provider.send(request, scope)
            if response.content:
                callback(response.content)
            return response
        except OperationCancelled:
            raise
        except Exception as e:
            self.context.stats.record_error()
            hooks.fire_error(request.model, e)
            if isinstance(callback, _Delivery) and callback.started:
                raise StreamInterruptedError(request.model, callback.text, e) from e
            raise

    def _record_success(self, model: str, response: ChatResponse) -> None:
        ctx = self.context
        ctx.stats.record_request(
            prompt_tokens=response.prompt_tokens,
            completion_tokens=response.completion_tokens,
            latency_ms=response.latency_ms,
            retries=response.retries,
        )
        ctx.hooks.fire_tokens(model, response.prompt_tokens, response.completion_tokens)
        ctx.hooks.fire_after_response(model, response.content, response.latency_ms)

        logger.log(
            ctx.log_level,
            "llm_response",
            extra={
                "provider": response.provider,
                "model": model,
                "tokens": response.total_tokens,
                "latency_ms": round(response.latency_ms, 1),
                "retries": response.retries,
            },
        )


class _Delivery:
    """Stream callback wrapper that remembers which deltas reached the caller."""

    def __init__(self, callback: StreamCallback):
        self._callback = callback
        self.chunks: list[str] = []

    def __call__(self, text: str) -> None:
        self.chunks.append(text)
        self._callback(text)

    @property
    def started(self) -> bool:
        return bool(self.chunks)

    @property
    def text(self) -> str:
        return "".join(self.chunks)

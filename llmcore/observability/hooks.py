"""
Request lifecycle hooks.

The executor fires four events around every model attempt:

- before_request(model, messages)
- after_response(model, content, latency_ms)
- on_error(model, error)
- on_tokens(model, prompt_tokens, completion_tokens)

Hooks are observers. A hook that raises is logged and skipped; it never
changes the outcome of the call it observes.

Usage:
    hooks = Hooks()
    hooks.on_error(lambda model, err: alerts.push(model, err))

    metrics = MetricsCollector()
    metrics.attach(hooks)
    ...
    metrics.snapshot()
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from llmcore.llm.types import Message

logger = logging.getLogger(__name__)

BeforeRequestHook = Callable[[str, Sequence[Message]], None]
AfterResponseHook = Callable[[str, str, float], None]
ErrorHook = Callable[[str, BaseException], None]
TokensHook = Callable[[str, int, int], None]


class Hooks:
    """Registry of lifecycle callbacks. Registration methods return the hook."""

    def __init__(self) -> None:
        self._before: list[BeforeRequestHook] = []
        self._after: list[AfterResponseHook] = []
        self._error: list[ErrorHook] = []
        self._tokens: list[TokensHook] = []

    # --- Registration ---

    def before_request(self, hook: BeforeRequestHook) -> BeforeRequestHook:
        self._before.append(hook)
        return hook

    def after_response(self, hook: AfterResponseHook) -> AfterResponseHook:
        self._after.append(hook)
        return hook

    def on_error(self, hook: ErrorHook) -> ErrorHook:
        self._error.append(hook)
        return hook

    def on_tokens(self, hook: TokensHook) -> TokensHook:
        self._tokens.append(hook)
        return hook

    def clear(self) -> None:
        self._before.clear()
        self._after.clear()
        self._error.clear()
        self._tokens.clear()

    def __len__(self) -> int:
        return len(self._before) + len(self._after) + len(self._error) + len(self._tokens)

    # --- Dispatch ---

    def _fire(self, event: str, hooks: list[Callable[..., None]], *args: Any) -> None:
        for hook in list(hooks):
            try:
                hook(*args)
            except Exception as e:
                logger.warning(
                    "llm_hook_failed",
                    extra={"hook_event": event, "error": str(e)[:200]},
                )

    def fire_before_request(self, model: str, messages: Sequence[Message]) -> None:
        self._fire("before_request", self._before, model, messages)

    def fire_after_response(self, model: str, content: str, latency_ms: float) -> None:
        self._fire("after_response", self._after, model, content, latency_ms)

    def fire_error(self, model: str, error: BaseException) -> None:
        self._fire("on_error", self._error, model, error)

    def fire_tokens(self, model: str, prompt_tokens: int, completion_tokens: int) -> None:
        self._fire("on_tokens", self._tokens, model, prompt_tokens, completion_tokens)


# ---------------------------------------------------------------------------
# Metrics Collector
# ---------------------------------------------------------------------------

@dataclass
class ModelMetrics:
    requests: int = 0
    responses: int = 0
    errors: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_latency_ms: float = 0.0

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.responses if self.responses else 0.0


class MetricsCollector:
    """Per-model counters fed from a Hooks registry."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._models: dict[str, ModelMetrics] = {}

    def attach(self, hooks: Hooks) -> "MetricsCollector":
        hooks.before_request(self._on_before)
        hooks.after_response(self._on_after)
        hooks.on_error(self._on_error)
        hooks.on_tokens(self._on_tokens)
        return self

    def _entry(self, model: str) -> ModelMetrics:
        return self._models.setdefault(model, ModelMetrics())

    def _on_before(self, model: str, messages: Sequence[Message]) -> None:
        with self._lock:
            self._entry(model).requests += 1

    def _on_after(self, model: str, content: str, latency_ms: float) -> None:
        with self._lock:
            entry = self._entry(model)
            entry.responses += 1
            entry.total_latency_ms += latency_ms

    def _on_error(self, model: str, error: BaseException) -> None:
        with self._lock:
            self._entry(model).errors += 1

    def _on_tokens(self, model: str, prompt_tokens: int, completion_tokens: int) -> None:
        with self._lock:
            entry = self._entry(model)
            entry.prompt_tokens += prompt_tokens
            entry.completion_tokens += completion_tokens

    def for_model(self, model: str) -> ModelMetrics:
        with self._lock:
            entry = self._models.get(model, ModelMetrics())
            return ModelMetrics(**vars(entry))

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {
                model: {
                    "requests": m.requests,
                    "responses": m.responses,
                    "errors": m.errors,
                    "prompt_tokens": m.prompt_tokens,
                    "completion_tokens": m.completion_tokens,
                    "avg_latency_ms": round(m.avg_latency_ms, 2),
                }
                for model, m in self._models.items()
            }

    def reset(self) -> None:
        with self._lock:
            self._models.clear()

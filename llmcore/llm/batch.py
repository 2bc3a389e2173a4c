"""
Batch and fan-out execution.

BatchExecutor runs N requests concurrently under a permit pool. Results
are pre-sized and index-addressed, so `results[i]` always belongs to
`ops[i]`. A batch never raises: every failure, including cancellation
and per-operation timeouts, lands in its slot.

With `stop_on_error`, the first failure cancels the shared batch scope:
in-flight operations are abandoned and operations still waiting for a
permit record the cancellation without ever calling a provider.

Usage:
    from llmcore.llm.batch import BatchExecutor, BatchOptions, batch_prompts

    ops = batch_prompts(CLAUDE_HAIKU, ["Summarize A", "Summarize B", "Summarize C"])
    results = await BatchExecutor(executor, BatchOptions(concurrency=2)).run(ops)
    print(results.success_rate(), results.contents())

    content, model = await fan_out(executor, request, [CLAUDE_HAIKU, GPT_4O_MINI])
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from llmcore.config.schema import BatchSettings
from llmcore.exceptions import FallbackExhaustedError
from llmcore.llm.retry import RetryPolicy
from llmcore.llm.router import Executor
from llmcore.llm.types import ChatRequest, ChatResponse, Message
from llmcore.scope import Scope

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


# ---------------------------------------------------------------------------
# Operations & Results
# ---------------------------------------------------------------------------

@dataclass
class BatchOp:
    """One request in a batch; `retry_policy` overrides the batch default."""

    request: ChatRequest
    retry_policy: Optional[RetryPolicy] = None


@dataclass
class BatchResult:
    index: int
    content: str = ""
    error: Optional[BaseException] = None
    model: str = ""
    tokens: int = 0
    latency_ms: float = 0.0
    response: Optional[ChatResponse] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchResults(Sequence[BatchResult]):
    """Positional batch results with aggregate helpers."""

    def __init__(self, results: Sequence[BatchResult]):
        self._results = list(results)

    def __len__(self) -> int:
        return len(self._results)

    def __getitem__(self, index):
        return self._results[index]

    def __iter__(self) -> Iterator[BatchResult]:
        return iter(self._results)

    def __repr__(self) -> str:
        return f"BatchResults(n={len(self)}, ok={len(self.successful())})"

    def successful(self) -> list[BatchResult]:
        return [r for r in self._results if r.ok]

    def failed(self) -> list[BatchResult]:
        return [r for r in self._results if not r.ok]

    def errors(self) -> list[BaseException]:
        return [r.error for r in self._results if r.error is not None]

    def contents(self) -> list[str]:
        """Content per slot, in order; failed slots give ""."""
        return [r.content for r in self._results]

    def total_tokens(self) -> int:
        return sum(r.tokens for r in self._results)

    def total_latency(self) -> float:
        """Summed per-operation latency in milliseconds."""
        return sum(r.latency_ms for r in self._results)

    def success_rate(self) -> float:
        if not self._results:
            return 0.0
        return len(self.successful()) / len(self._results)


@dataclass
class BatchOptions:
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: Optional[float] = None         # per operation, seconds
    stop_on_error: bool = False
    retry_policy: Optional[RetryPolicy] = None

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

    @classmethod
    def from_settings(cls, settings: BatchSettings) -> "BatchOptions":
        return cls(
            concurrency=settings.concurrency,
            timeout=settings.timeout,
            stop_on_error=settings.stop_on_error,
        )


# ---------------------------------------------------------------------------
# Batch Executor
# ---------------------------------------------------------------------------

class BatchExecutor:
    """Runs many requests through one Executor with bounded concurrency."""

    def __init__(self, executor: Executor, options: Optional[BatchOptions] = None):
        self.executor = executor
        self.options = options or BatchOptions()

    async def run(self, ops: Sequence[BatchOp], scope: Optional[Scope] = None) -> BatchResults:
        options = self.options
        parent = scope or Scope()
        batch_scope = parent.derive()
        semaphore = asyncio.Semaphore(options.concurrency)
        results: list[BatchResult] = [
            BatchResult(index=i, model=op.request.model) for i, op in enumerate(ops)
        ]

        async def run_one(index: int, op: BatchOp) -> None:
            slot = results[index]
            start: Optional[float] = None
            try:
                async with batch_scope.permit(semaphore):
                    start = time.monotonic()
                    with batch_scope.derive(options.timeout) as op_scope:
                        response = await self.executor.send(
                            op.request,
                            op_scope,
                            retry_policy=op.retry_policy or options.retry_policy,
                        )
                slot.response = response
                slot.content = response.content
                slot.model = response.model or slot.model
                slot.tokens = response.total_tokens
            except Exception as e:
                slot.error = e
                if options.stop_on_error and not batch_scope.done:
                    logger.warning(
                        "batch_stopped_on_error",
                        extra={"index": index, "error": str(e)[:200]},
                    )
                    batch_scope.cancel(f"batch stopped: operation {index} failed")
            finally:
                # Time spent waiting for a permit is not latency.
                if start is not None:
                    slot.latency_ms = (time.monotonic() - start) * 1000

        try:
            await asyncio.gather(*(run_one(i, op) for i, op in enumerate(ops)))
        finally:
            batch_scope.close()

        batch = BatchResults(results)
        logger.info(
            "batch_completed",
            extra={
                "operations": len(batch),
                "succeeded": len(batch.successful()),
                "failed": len(batch.failed()),
                "tokens": batch.total_tokens(),
            },
        )
        return batch


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def batch_prompts(
    model: str,
    prompts: Sequence[str],
    *,
    system: str = "",
    **request_options,
) -> list[BatchOp]:
    """One op per prompt, all against `model`."""
    ops = []
    for prompt in prompts:
        messages = [Message.system(system)] if system else []
        messages.append(Message.user(prompt))
        ops.append(BatchOp(ChatRequest(model=model, messages=messages, **request_options)))
    return ops


def batch_models(request: ChatRequest, models: Sequence[str]) -> list[BatchOp]:
    """The same request once per model."""
    return [BatchOp(request.with_model(model)) for model in models]


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------

async def fan_out(
    executor: Executor,
    request: ChatRequest,
    models: Sequence[str],
    scope: Optional[Scope] = None,
) -> tuple[str, str]:
    """
    Send `request` to every model at once; the first success wins.

    Remaining calls are cancelled once a winner is known. Each model runs
    without the executor's fallback chain.

    Returns:
        (content, model) of the winner.

    Raises:
        ValueError: `models` is empty.
        FallbackExhaustedError: every model failed.
    """
    if not models:
        raise ValueError("no models provided")

    solo = executor.with_fallbacks(())
    race_scope = (scope or Scope()).derive()
    tasks = {
        asyncio.ensure_future(solo.send(request.with_model(model), race_scope)): model
        for model in models
    }
    errors: list[tuple[str, BaseException]] = []
    try:
        pending = set(tasks)
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                model = tasks[task]
                error = task.exception()
                if error is None:
                    response = task.result()
                    logger.info(
                        "fan_out_winner",
                        extra={"model": model, "latency_ms": round(response.latency_ms, 1)},
                    )
                    return response.content, model
                errors.append((model, error))
    finally:
        race_scope.cancel("fan-out finished")
        await asyncio.gather(*tasks, return_exceptions=True)

    raise FallbackExhaustedError(errors)


race = fan_out

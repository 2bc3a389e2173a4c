"""
Cancellation scopes — cooperative cancellation and deadlines for asyncio.

A Scope is the "is my call still wanted?" signal threaded through every
suspension point in the execution core: retry backoff waits, batch permit
acquisition and the network call itself. Scopes form a tree: cancelling a
parent cancels every derived child, and a child may carry its own,
shorter deadline.

Usage:
    from llmcore.scope import Scope

    root = Scope()
    with root.derive(timeout=30) as call_scope:
        response = await call_scope.run(provider.send(request, call_scope))

    # From another task:
    root.cancel("user aborted")

Native asyncio task cancellation (CancelledError) is left untouched and
propagates normally; a Scope adds an explicit, inspectable reason on top.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Optional, TypeVar

from llmcore.exceptions import DeadlineExceeded, OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Scope:
    """
    A cancellable, optionally time-limited execution scope.

    Thread-safety: a Scope belongs to the event loop that created it.
    All methods must be called from that loop.
    """

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        parent: Optional["Scope"] = None,
    ):
        self._event = asyncio.Event()
        self._error: Optional[OperationCancelled] = None
        self._children: set[Scope] = set()
        self._parent = parent
        self._timer: Optional[asyncio.TimerHandle] = None
        self.timeout = timeout

        if parent is not None:
            if parent.done:
                self._finish(parent.error)
                return
            parent._children.add(self)

        if timeout is not None:
            if timeout <= 0:
                self._finish(DeadlineExceeded(timeout=timeout))
            else:
                loop = asyncio.get_running_loop()
                self._timer = loop.call_later(timeout, self._expire)

    # --- State ---

    @property
    def done(self) -> bool:
        return self._event.is_set()

    @property
    def error(self) -> Optional[OperationCancelled]:
        """The cancellation error once the scope is done, else None."""
        return self._error

    def check(self) -> None:
        """Raise the scope's cancellation error if it is done."""
        if self._error is not None:
            raise self._error

    # --- Cancellation ---

    def cancel(self, reason: str = "operation cancelled") -> None:
        """Cancel this scope and every scope derived from it."""
        self._finish(OperationCancelled(reason))

    def _expire(self) -> None:
        self._timer = None
        logger.debug("scope_deadline_exceeded", extra={"timeout": self.timeout})
        self._finish(DeadlineExceeded(timeout=self.timeout))

    def _finish(self, error: Optional[OperationCancelled]) -> None:
        if self._event.is_set():
            return
        self._error = error or OperationCancelled()
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for child in list(self._children):
            child._finish(self._error)
        self._children.clear()
        if self._parent is not None:
            self._parent._children.discard(self)

    def close(self) -> None:
        """
        Release the scope: stop its timer and detach it from its parent.

        A closed scope reports done with a plain cancellation, mirroring
        what any caller still holding it should observe.
        """
        self._finish(OperationCancelled("scope closed"))

    # --- Derivation ---

    def derive(self, timeout: Optional[float] = None) -> "Scope":
        """
        Create a child scope, optionally with its own deadline.

        The child is done when either its deadline passes or this scope
        is cancelled, whichever happens first.
        """
        return Scope(timeout=timeout, parent=self)

    def __enter__(self) -> "Scope":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # --- Interruptible waits ---

    async def wait(self) -> OperationCancelled:
        """Block until the scope is done and return its error."""
        await self._event.wait()
        assert self._error is not None
        return self._error

    async def sleep(self, delay: float) -> None:
        """
        Sleep for `delay` seconds unless the scope finishes first.

        Raises the scope's cancellation error if it is (or becomes) done.
        """
        self.check()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        self.check()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable`, abandoning it if the scope finishes first.

        On cancellation the inner task is cancelled and the scope's
        error is raised in place of its result.
        """
        if self.done:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.check()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug(
                "scope_abandoned_task_failed",
                extra={"error": str(task.exception())[:200]},
            )
        self.check()
        raise OperationCancelled()  # pragma: no cover

    @contextlib.asynccontextmanager
    async def permit(self, semaphore: asyncio.Semaphore) -> AsyncIterator[None]:
        """
        Acquire a semaphore permit interruptibly; release it unconditionally.

            async with scope.permit(sem):
                ...
        """
        await self.run(semaphore.acquire())
        try:
            yield
        finally:
            semaphore.release()


def background() -> Scope:
    """A root scope that is never cancelled unless asked to."""
    return Scope()

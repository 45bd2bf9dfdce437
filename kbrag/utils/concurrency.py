"""Shared concurrency primitives for the ingestion pipeline.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with each awaitable wrapped in
   a semaphore acquire/release.  Used by the embedding generator to issue
   batch windows concurrently while bounding in-flight provider calls.

2. **BackgroundTaskRunner** -- fire-and-forget submission of document
   processing.  The runner holds strong references to its tasks (the event
   loop only keeps weak ones), logs any task that dies with an exception,
   and offers :meth:`BackgroundTaskRunner.drain` for shutdown and tests.
   Callers never receive the task: the document status column is the only
   externally observable progress signal.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Coroutine, TypeVar

import structlog

from kbrag.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables run at once.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  If ``False``, the first failure is raised, no
        awaitable still waiting on the semaphore is started, and the ones
        in flight are cancelled.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    failed = False

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        nonlocal failed
        async with semaphore:
            if failed:
                raise asyncio.CancelledError
            try:
                return await coro
            except Exception:
                failed = not return_exceptions
                raise

    tasks = [asyncio.ensure_future(_wrapped(c)) for c in coros]
    try:
        return await asyncio.gather(*tasks, return_exceptions=return_exceptions)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    finally:
        # Awaitables that never started would otherwise warn on collection.
        for coro in coros:
            if asyncio.iscoroutine(coro):
                coro.close()


class BackgroundTaskRunner:
    """Detached executor for per-document pipeline runs.

    Parameters
    ----------
    max_concurrency:
        Optional cap on simultaneously running jobs.  ``None`` means every
        submitted job starts immediately.
    """

    def __init__(self, max_concurrency: int | None = None) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._semaphore = (
            asyncio.Semaphore(max(1, max_concurrency)) if max_concurrency else None
        )

    @property
    def pending(self) -> int:
        """Number of jobs submitted but not yet finished."""
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> None:
        """Schedule *coro* on the running loop and return immediately."""
        task = asyncio.create_task(self._run(coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    async def drain(self) -> None:
        """Wait until every submitted job (including ones they submit) finishes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        if self._semaphore is None:
            return await coro
        async with self._semaphore:
            return await coro

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            _logger.warning("background_task_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            _logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

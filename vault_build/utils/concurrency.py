"""
Bounded Worker Pool and Cancellation

Per-item work inside a stage (one document, one media file, one similarity
chunk) runs through run_bounded(), which caps in-flight coroutines with a
semaphore and threads a single CancellationToken through every task.

Example:
    >>> token = CancellationToken()
    >>> results = await run_bounded(paths, process_one, concurrency=4, token=token)
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from vault_build.errors import BuildCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CancellationToken:
    """
    Cooperative cancellation flag shared by all tasks of one build.

    Backed by threading.Event so it can be checked from worker threads
    started with asyncio.to_thread().
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        """Trip the token. Idempotent; the first reason wins."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()
            logger.info(f"Build cancellation requested: {reason}")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise BuildCancelledError if the token has been tripped."""
        if self._event.is_set():
            raise BuildCancelledError(self._reason or "cancelled")


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    concurrency: int,
    token: CancellationToken | None = None,
) -> list[R]:
    """
    Run worker over items with at most `concurrency` in flight.

    On the first failure no further items start, and the call returns only
    after every started worker has finished. Started workers are never
    cancelled: a thread behind asyncio.to_thread() keeps running regardless.

    Args:
        items: Work items (consumed eagerly)
        worker: Coroutine function applied to each item
        concurrency: Max concurrent workers (-1 for unlimited)
        token: Optional cancellation token checked before each item starts

    Returns:
        Worker results in input order

    Raises:
        BuildCancelledError: If the token is tripped before all items start
        Exception: The first worker failure, once in-flight workers have settled
    """
    work = list(items)
    if not work:
        return []
    if concurrency == 0 or concurrency < -1:
        raise ValueError(f"concurrency must be positive or -1, got {concurrency}")

    semaphore = asyncio.Semaphore(concurrency) if concurrency != -1 else None
    halted = False

    async def start(item: T) -> R:
        nonlocal halted
        if halted:
            raise _Skipped()
        try:
            if token is not None:
                token.raise_if_cancelled()
            return await worker(item)
        except BaseException:
            halted = True
            raise

    async def run_one(item: T) -> R:
        if semaphore is None:
            return await start(item)
        async with semaphore:
            return await start(item)

    tasks = [asyncio.ensure_future(run_one(item)) for item in work]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        halted = True
        await _settle(tasks)
        raise

    failure = _first_failure(tasks)
    if failure is not None:
        halted = True
        await _settle(tasks)
        raise failure
    return [task.result() for task in tasks]


class _Skipped(Exception):
    """Raised by items still queued when an earlier item failed."""


async def _settle(tasks: list[asyncio.Future]) -> None:
    """Wait for every task to finish and mark its exception as retrieved."""
    pending = [task for task in tasks if not task.done()]
    if pending:
        await asyncio.wait(pending)
    for task in tasks:
        if not task.cancelled():
            task.exception()


def _first_failure(tasks: list[asyncio.Future]) -> BaseException | None:
    for task in tasks:
        if task.done() and not task.cancelled():
            error = task.exception()
            if error is not None and not isinstance(error, _Skipped):
                return error
    return None


def chunked(items: list[T], size: int) -> list[list[T]]:
    """Split a list into consecutive chunks of at most `size` items."""
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [items[i : i + size] for i in range(0, len(items), size)]

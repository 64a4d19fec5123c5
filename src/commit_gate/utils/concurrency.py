"""Async primitives shared by the orchestrator and the CLI."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Collection


class CancellationToken:
    """Cooperative cancellation flag backed by ``asyncio.Event``.

    ``cancel`` is idempotent and safe to call from a signal handler running on the
    event loop.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError(self._reason or "operation cancelled")


class BoundedSemaphore:
    """``asyncio.Semaphore`` wrapper that tracks usage and its high-water mark."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def peak(self) -> int:
        return self._peak

    async def acquire(self) -> None:
        # Cancellation while waiting here does not take a permit.
        await self._semaphore.acquire()
        self._in_use += 1
        self._peak = max(self._peak, self._in_use)

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("release called more times than acquire")
        self._in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def snapshot(self) -> dict[str, int]:
        return {"limit": self._limit, "in_use": self._in_use, "peak": self._peak}


async def wait_all(
    tasks: Collection[asyncio.Task[Any]],
    *,
    cancel_token: CancellationToken | None = None,
) -> bool:
    """Wait until every task finishes or the token fires.

    Returns ``True`` when the token fired before all tasks were done. Tasks are never
    cancelled here; see ``cancel_and_drain``.
    """

    pending = {task for task in tasks if not task.done()}
    if cancel_token is None:
        if pending:
            await asyncio.wait(pending)
        return False
    if cancel_token.is_cancelled:
        return bool(pending)
    if not pending:
        return False

    token_waiter = asyncio.create_task(cancel_token.wait())
    try:
        while pending:
            done, _ = await asyncio.wait(
                {*pending, token_waiter}, return_when=asyncio.FIRST_COMPLETED
            )
            pending.difference_update(done)
            if token_waiter in done:
                return bool(pending)
        return False
    finally:
        token_waiter.cancel()
        with suppress(asyncio.CancelledError):
            await token_waiter


async def cancel_and_drain(tasks: Collection[asyncio.Task[Any]]) -> None:
    """Cancel unfinished tasks and wait for them to unwind."""

    unfinished = [task for task in tasks if not task.done()]
    for task in unfinished:
        task.cancel()
    if unfinished:
        await asyncio.gather(*unfinished, return_exceptions=True)


__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "cancel_and_drain",
    "wait_all",
]

"""Concurrency control utilities for async operations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Coroutine


@dataclass
class ConcurrencyLimiter:
    """Counting limiter; waiting acquirers queue in FIFO order."""

    max_concurrent: int
    _semaphore: asyncio.Semaphore = field(init=False)
    _running: int = field(default=0)

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._semaphore = asyncio.Semaphore(self.max_concurrent)

    async def acquire(self) -> None:
        """Acquire a slot, waiting for one to free up if necessary."""
        await self._semaphore.acquire()
        self._running += 1

    def release(self) -> None:
        """Release a slot."""
        self._running -= 1
        self._semaphore.release()

    async def __aenter__(self) -> ConcurrencyLimiter:
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    @property
    def running(self) -> int:
        """Get number of held slots."""
        return self._running


class TaskPool:
    """Tracks tasks that each hold one limiter slot.

    Unlike a plain semaphore-wrapped gather, the caller acquires the slot *before* deciding what
    to run (:meth:`admit`), so work is only chosen once there is capacity to run it.
    """

    def __init__(self, max_concurrent: int = 10) -> None:
        """Initialize task pool.

        Args:
            max_concurrent: Maximum concurrent tasks.
        """
        self._limiter = ConcurrencyLimiter(max_concurrent)
        self._tasks: set[asyncio.Task] = set()

    async def admit(self) -> None:
        """Wait for a free slot. Pair with :meth:`spawn` or :meth:`cancel_admission`."""
        await self._limiter.acquire()

    def cancel_admission(self) -> None:
        """Give back a slot obtained from :meth:`admit` that will not be used."""
        self._limiter.release()

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run `coro` in the admitted slot; the slot is released when the task finishes.

        Args:
            coro: Coroutine object.

        Returns:
            Task object.
        """

        async def _wrapped() -> Any:
            try:
                return await coro
            finally:
                self._limiter.release()

        task = asyncio.create_task(_wrapped())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_any(self) -> None:
        """Wait until at least one running task finishes."""
        if self._tasks:
            await asyncio.wait(set(self._tasks), return_when=asyncio.FIRST_COMPLETED)

    async def wait_all(self) -> None:
        """Wait for all tasks to complete."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def active_count(self) -> int:
        """Get number of active tasks."""
        return len([t for t in self._tasks if not t.done()])

    @property
    def running(self) -> int:
        """Slots currently held, admitted-but-not-spawned included."""
        return self._limiter.running

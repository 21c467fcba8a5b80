"""Task helpers for tracking and cancelling background tasks."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Coroutine


class BackgroundTaskGroup:
    """Tracks background tasks for easier cancellation and cleanup."""

    def __init__(self) -> None:
        """Initialize empty task group."""
        self._tasks: set[asyncio.Task[Any]] = set()

    def create(
        self, coro: Coroutine[Any, Any, Any], *, name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track an asyncio task from a coroutine."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def __len__(self) -> int:
        return len(self._tasks)

    async def cancel_and_wait(self, timeout: float | None = None) -> None:
        """Cancel all tracked tasks and wait for completion (with optional timeout)."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        for t in tasks:
            if not t.done():
                t.cancel()
        if timeout is None:
            await asyncio.gather(*tasks, return_exceptions=True)
        else:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    asyncio.gather(*tasks, return_exceptions=True),
                    timeout=timeout,
                )
        self._tasks.clear()

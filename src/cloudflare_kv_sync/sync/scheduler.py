"""Per-key debounce timers on the running event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class DebounceScheduler:
    """Collapse bursts of notifications into one callback per key.

    Scheduling a key that already has a pending timer cancels that timer
    and starts a new one, so only the last notification in a quiet
    period fires. Keys are independent of each other.

    Args:
        on_error: Awaited with ``(key, exc)`` when a callback raises.
    """

    def __init__(
        self,
        on_error: Callable[[str, Exception], Awaitable[object]] | None = None,
    ) -> None:
        self._tasks: dict[str, asyncio.Task] = {}
        self._on_error = on_error

    def schedule(
        self,
        key: str,
        delay: float,
        callback: Callable[[], Awaitable[object]],
    ) -> asyncio.Task:
        """(Re)start the timer for *key*; *callback* runs after *delay* seconds."""
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(
            self._fire(key, delay, callback)
        )
        self._tasks[key] = task
        return task

    async def _fire(
        self,
        key: str,
        delay: float,
        callback: Callable[[], Awaitable[object]],
    ) -> None:
        await asyncio.sleep(delay)
        # Cleared before the call: a notification arriving now starts a new timer.
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        try:
            await callback()
        except Exception as exc:
            logger.error("Debounced callback for %s failed: %s", key, exc)
            if self._on_error is not None:
                await self._on_error(key, exc)

    def cancel(self, key: str) -> bool:
        """Cancel the pending timer for *key*. Returns whether one existed."""
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every pending timer without firing it."""
        count = len(self._tasks)
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()
        return count

    def pending(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

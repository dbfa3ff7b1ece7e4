"""Trailing-edge debounce for filter auto-apply.

Each key owns at most one pending timer task. Scheduling again within the
delay cancels the previous task, so only the last call survives.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Callback = Callable[[], Any]


class Debouncer:
    """Per-key cancellable timers on the running event loop."""

    def __init__(self, delay: float = 0.5):
        """
        Args:
            delay: Seconds to wait after the last call before firing
        """
        self.delay = delay
        self._tasks: dict[str, asyncio.Task] = {}

    def schedule(self, key: str, callback: Callback) -> asyncio.Task:
        """Fire ``callback`` after ``delay`` unless superseded for ``key``."""
        self.cancel(key)
        task = asyncio.ensure_future(self._run(key, callback))
        self._tasks[key] = task
        return task

    def cancel(self, key: str) -> bool:
        """Cancel the pending call for ``key``. Returns True if one was pending."""
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)

    def is_pending(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def flush(self, key: str, callback: Optional[Callback] = None) -> bool:
        """Cancel the timer for ``key`` and run ``callback`` right away.

        Returns False when nothing was pending and no callback was given.
        """
        was_pending = self.cancel(key)
        if callback is None:
            return was_pending
        await self._invoke(key, callback)
        return True

    async def _run(self, key: str, callback: Callback) -> None:
        await asyncio.sleep(self.delay)
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        await self._invoke(key, callback)

    async def _invoke(self, key: str, callback: Callback) -> None:
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Debounced callback for '{key}' failed")

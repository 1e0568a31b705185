"""Detached task runner for work that must never block a response.

Cache writes and stale-while-revalidate refreshes run here. The runner keeps a
strong reference to every task (the event loop only keeps weak ones), logs
failures instead of letting them surface as "Task exception was never
retrieved", and drains outstanding work on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from edge_service.infra.metrics import tracking

if TYPE_CHECKING:
    from collections.abc import Coroutine

logger = logging.getLogger(__name__)


class DetachedTaskRunner:
    """Run coroutines in the background, optionally deduplicated by key.

    Example:
        runner = DetachedTaskRunner()
        runner.spawn(store.set(key, value, ttl), name="cache_write")

        # At most one refresh per key in flight
        runner.spawn(refresh(key), name="swr_refresh", key=key)

        await runner.drain()  # on shutdown
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._keyed: dict[str, asyncio.Task[Any]] = {}
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def is_running(self, key: str) -> bool:
        task = self._keyed.get(key)
        return task is not None and not task.done()

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        name: str,
        key: str | None = None,
    ) -> asyncio.Task[Any] | None:
        """Schedule ``coro`` without awaiting it.

        Args:
            coro: Coroutine to run detached.
            name: Task category, used in logs and the failure metric label.
            key: Deduplication key. When a task with the same key is still
                running the coroutine is closed unscheduled and None returned.

        Returns:
            The scheduled task, or None when skipped.
        """
        if self._closed or (key is not None and self.is_running(key)):
            coro.close()
            return None

        task = asyncio.create_task(coro, name=f"{name}:{key}" if key else name)
        self._tasks.add(task)
        if key is not None:
            self._keyed[key] = task
        task.add_done_callback(lambda t: self._on_done(t, name, key))
        tracking.update_background_tasks_in_flight(len(self._tasks))
        return task

    def _on_done(self, task: asyncio.Task[Any], name: str, key: str | None) -> None:
        self._tasks.discard(task)
        if key is not None and self._keyed.get(key) is task:
            del self._keyed[key]
        tracking.update_background_tasks_in_flight(len(self._tasks))

        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            tracking.track_background_task_failure(name)
            logger.error(
                "Detached task failed",
                extra={"task": name, "key": key, "error": str(exc)},
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self, timeout: float | None = 5.0) -> None:
        """Wait for outstanding tasks, cancelling whatever outlives ``timeout``."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Cancelled detached tasks on shutdown",
                extra={"cancelled": len(pending), "completed": len(done)},
            )

    async def close(self, timeout: float | None = 5.0) -> None:
        self._closed = True
        await self.drain(timeout)

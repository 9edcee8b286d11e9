"""Detached background work that outlives the webhook request."""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

_logger = logging.getLogger(__name__)


@dataclass
class BackgroundTaskRunner:
    """Own the event-loop tasks started for training and generation runs.

    Tasks are strongly referenced until they finish so the loop cannot
    garbage-collect them mid-flight, and every failure lands in the log.
    """

    _tasks: set[asyncio.Task[None]] = field(default_factory=set, repr=False)

    def submit(self, name: str, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        """Schedule ``coro`` on the running loop and return its task."""
        task = asyncio.create_task(self._run(name, coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        _logger.info("Background task started: %s", name)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait for every task submitted so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding tasks on shutdown."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            _logger.info("Cancelled %s background task(s)", len(tasks))

    async def _run(self, name: str, coro: Coroutine[Any, Any, None]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            _logger.warning("Background task cancelled: %s", name)
            raise
        except Exception:
            _logger.exception("Background task failed: %s", name)

"""
Task orchestrator: owns the asyncio tasks behind every registered prober.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from core.background_task import BackgroundTask


class TaskOrchestrator:
    """Starts registered background tasks and stops them in bounded time."""

    def __init__(self) -> None:
        self._tasks: list[BackgroundTask] = []
        self._running: list[asyncio.Task] = []

    def register(self, task: BackgroundTask) -> None:
        self._tasks.append(task)

    def register_all(self, tasks: Iterable[BackgroundTask]) -> None:
        for task in tasks:
            self.register(task)

    @property
    def tasks(self) -> list[BackgroundTask]:
        return list(self._tasks)

    @property
    def registered_names(self) -> list[str]:
        return [t.name for t in self._tasks]

    @property
    def running(self) -> list[asyncio.Task]:
        """asyncio tasks that have not finished yet."""
        return [t for t in self._running if not t.done()]

    def start_all(self) -> list[asyncio.Task]:
        """Schedule every enabled task on the running loop."""
        self._running = [
            asyncio.create_task(task.run(), name=task.name)
            for task in self._tasks
            if task.enabled
        ]
        logging.info(f"Started {len(self._running)} of {len(self._tasks)} background tasks")
        return list(self._running)

    async def stop_all(self, timeout: float = 5.0) -> int:
        """Give tasks ``timeout`` seconds to see the stop event, then cancel the rest.

        Returns the number of tasks that had to be cancelled.
        """
        pending = self.running
        cancelled = 0
        if pending:
            _, stragglers = await asyncio.wait(pending, timeout=timeout)
            for task in stragglers:
                task.cancel()
            cancelled = len(stragglers)
            if stragglers:
                logging.warning(f"{cancelled} background tasks ignored the stop request, cancelled")
                await asyncio.gather(*stragglers, return_exceptions=True)

        self._running.clear()
        return cancelled

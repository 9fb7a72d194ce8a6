"""
Base class for fixed-rate background tasks.

Ticks follow a fixed schedule measured from the first tick, like a
wall-clock ticker: a slow ``execute()`` does not shift later ticks, and
ticks missed while it ran are dropped instead of fired back to back.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable


class BackgroundTask(ABC):
    """Fixed-rate task driven by a shared stop event.

    Subclasses implement ``execute()`` for one tick. ``run()`` owns the
    schedule, the stop check and error absorption.
    """

    def __init__(
        self,
        *,
        name: str,
        interval: float,
        enabled: bool = True,
        stop_event: asyncio.Event,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.name = name
        self.interval = interval
        self.enabled = enabled
        self.stop_event = stop_event
        self.executor = executor
        self.ticks = 0
        self.dropped_ticks = 0
        self._next_tick: float | None = None

    async def run_blocking(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking function in the task's executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.executor,
            lambda: func(*args, **kwargs),
        )

    async def wait_tick(self) -> bool:
        """Wait for the next scheduled tick. Returns True once stop is requested."""
        if self.stop_event.is_set():
            return True

        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._next_tick is None:
            self._next_tick = now + self.interval
        elif now > self._next_tick:
            missed = int((now - self._next_tick) // self.interval) + 1
            self.dropped_ticks += missed
            self._next_tick += missed * self.interval
            logging.debug(f"{self.name}: dropped {missed} ticks")

        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=self._next_tick - now)
        except asyncio.TimeoutError:
            self._next_tick += self.interval
            return False
        return True

    @abstractmethod
    async def execute(self) -> None:
        """One tick of work."""

    async def setup(self) -> None:
        """Called once before the first tick."""

    async def run(self) -> None:
        """Tick until the stop event is set. Errors from a tick are logged and absorbed."""
        if not self.enabled:
            return

        await self.setup()

        while not await self.wait_tick():
            self.ticks += 1
            try:
                await self.execute()
            except Exception as exc:
                logging.error(f"{self.name} failed: {exc}")

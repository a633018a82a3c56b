"""Cancellable periodic callbacks (timer tick, autosave)."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run `callback` every `interval` seconds until `cancel()` is called."""

    def __init__(self, name: str, interval: float, callback: Callable[[], Awaitable[None]]) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    async def _run(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self.interval)
            if self._stopped:
                break
            try:
                await self._callback()
            except Exception:
                logger.exception("Periodic task %s failed", self.name)

    def cancel(self) -> None:
        self._stopped = True
        if self._task is None:
            return
        # A callback may cancel its own task; let it finish and exit the loop.
        if self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

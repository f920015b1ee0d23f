"""Periodic background saving of workflow state."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class AutoSaveScheduler:
    """Invoke ``save`` every ``interval_ms`` milliseconds on the running loop."""

    def __init__(
        self, save: Callable[[], Awaitable[bool]], interval_ms: int, name: str = ""
    ) -> None:
        self._save = save
        self.interval = interval_ms / 1000
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug(f"Auto-save started for {self.name} every {self.interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Auto-save stopped for {self.name}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._save()
            except Exception as e:
                # a failed tick must not end the schedule
                logger.error(f"Auto-save tick failed for {self.name}: {e}")

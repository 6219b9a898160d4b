import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs an async callback every ``interval`` seconds until cancelled."""

    def __init__(self, name: str, interval: float, callback: Callable[[], Awaitable[object]]) -> None:
        if interval <= 0:
            raise ValueError(f"Interval for {name} must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self.callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self.running:
            return
        loop = loop or asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=self.name)
        logger.debug("Started %s (every %.1fs)", self.name, self.interval)

    def stop(self) -> None:
        """Cancel the loop. An in-flight callback is not awaited."""
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.debug("Stopped %s", self.name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.callback()
            except Exception as exc:
                logger.exception("%s tick failed: %s", self.name, exc)

"""
Fixed-delay gate between LLM batch dispatches.

The gate only enforces spacing between consecutive dispatches made through
the same instance; the orchestrator creates one per request.
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional

from core.logger import setup_logger

logger = setup_logger(__name__)


class BatchPacer:
    """Blocks until at least delay_seconds have passed since the last dispatch."""

    def __init__(
        self,
        delay_seconds: float = 1.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.delay_seconds = max(0.0, delay_seconds)
        self._sleep = sleep or asyncio.sleep
        self._clock = clock
        self._last_dispatch: Optional[float] = None
        self.waits = 0

    async def wait(self) -> None:
        """Wait out the remaining delay, then mark a dispatch."""
        if self._last_dispatch is not None and self.delay_seconds > 0:
            remaining = self.delay_seconds - (self._clock() - self._last_dispatch)
            if remaining > 0:
                logger.debug(f"Pacing next batch by {remaining:.2f}s")
                self.waits += 1
                await self._sleep(remaining)
        self._last_dispatch = self._clock()

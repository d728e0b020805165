import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional

# Default pause (seconds) after each kind of request, tuned to stay under
# GitHub's secondary rate limits.
DEFAULT_INTERVALS: Dict[str, float] = {
    "listing": 1.5,
    "file_read": 0.3,
    "commit": 0.5,
    "repository": 1.5,
}


class Pacer:
    """
    Fixed-interval scheduler shared by the client and the updater service.

    All waiting in the application goes through this object, so tests can
    swap the sleep function and the clock instead of patching asyncio.
    """

    def __init__(
        self,
        intervals: Optional[Dict[str, float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.intervals = dict(DEFAULT_INTERVALS)
        if intervals:
            self.intervals.update(intervals)
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.time

    def now(self) -> float:
        """Current wall-clock time in epoch seconds."""
        return self._clock()

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            return
        await self._sleep(seconds)

    async def pause(self, channel: str) -> None:
        """Waits the configured interval for ``channel`` (unknown channels don't wait)."""
        await self.sleep(self.intervals.get(channel, 0.0))

"""
Periodic progress reporting for the download pool.
"""

import asyncio
import contextlib
from typing import Callable, Optional, Tuple

from ..utils.constants import PROGRESS_INTERVAL
from ..utils.log import get_logger


ProgressCallback = Callable[[int, int], None]


class ProgressReporter:
    """
    Calls ``callback(completed, total)`` at most once per interval.

    The callback only observes; an exception raised by it is logged and
    never reaches the pool.
    """

    def __init__(
        self,
        snapshot: Callable[[], Tuple[int, int]],
        callback: ProgressCallback,
        interval: float = PROGRESS_INTERVAL
    ):
        self.snapshot = snapshot
        self.callback = callback
        self.interval = interval
        self.logger = get_logger("progress")
        self._task: Optional[asyncio.Task] = None
        self._last: Optional[Tuple[int, int]] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop ticking and report the final state once."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._emit(force=True)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._emit()

    def _emit(self, force: bool = False) -> None:
        current = self.snapshot()
        if not force and current == self._last:
            return
        self._last = current
        try:
            self.callback(*current)
        except Exception as e:
            self.logger.debug(f"Progress callback failed: {e}")

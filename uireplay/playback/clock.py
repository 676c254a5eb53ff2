"""
Frame and timer primitives for cooperative playback.

Everything in playback runs on one asyncio loop; the only suspension points
are a frame tick, a timed sleep, and a manual advance in step mode.
"""

from __future__ import annotations
import asyncio
import logging
import time

from uireplay.exceptions import PlaybackCancelled

logger = logging.getLogger(__name__)


class FrameClock:
    """Frame tick and timer source backed by asyncio."""

    def __init__(self, frame_rate: int = 60):
        self.frame_rate = frame_rate
        self.frame_time = 1.0 / frame_rate

    async def next_frame(self) -> None:
        """Suspend until the next frame tick."""
        await asyncio.sleep(self.frame_time)

    async def sleep(self, seconds: float) -> None:
        """Suspend for ``seconds`` of real time."""
        await asyncio.sleep(max(0.0, seconds))

    def now(self) -> float:
        return time.monotonic()


class PlaybackControl:
    """
    Shared cancellation flag and step-mode advance counter.

    Both are plain attributes polled at suspension points, so ``cancel`` and
    ``advance`` may be called from a signal handler or another thread.
    """

    def __init__(self):
        self._cancelled = False
        self._advances = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if not self._cancelled:
            logger.info("Cancellation requested")
        self._cancelled = True

    def advance(self) -> None:
        """Release one step-mode wait."""
        self._advances += 1

    def consume_advance(self) -> bool:
        if self._advances > 0:
            self._advances -= 1
            return True
        return False

    def check(self) -> None:
        """Raise PlaybackCancelled if cancellation was requested."""
        if self._cancelled:
            raise PlaybackCancelled("Playback cancelled")

    def reset(self) -> None:
        self._cancelled = False
        self._advances = 0

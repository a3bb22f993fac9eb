"""Self-correcting periodic executor for async callbacks.

Behavior:
 - Invokes ``callback(now)`` every ``interval`` seconds until stopped.
 - Drift correction: each scheduling point adds the clamped deviation from the
   ideal period to an error accumulator (clamped to +/- interval) and sleeps
   ``interval - error/2`` before the next invocation.
 - Never overlaps invocations: the next sleep starts only after the previous
   callback settled (success or failure).
 - Callback exceptions are logged and the schedule continues; callbacks that
   outlast the interval emit a warning (no catch-up, no skipped ticks).
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from .utils.formatting import clamp

logger = logging.getLogger(__name__)

TickCallback = Callable[[float], Awaitable[None]]


class Scheduler:
    def __init__(
        self,
        name: str,
        interval: float,
        callback: TickCallback,
        *,
        verbose: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        if interval <= 0:
            raise ValueError(f"scheduler interval must be > 0 (got {interval})")
        self.name = name
        self.interval = float(interval)
        self.callback = callback
        self.verbose = verbose
        self._clock = clock
        self._running = False
        self._last = 0.0
        self._error_sum = 0.0
        self._task: asyncio.Task[None] | None = None
        self._in_callback = False
        self.ticks = 0
        logger.debug("[%s-scheduler] constructor interval=%.3fs", self.name, self.interval)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def error_sum(self) -> float:
        return self._error_sum

    def start(self) -> None:
        """Begin scheduling (no-op when already running); needs a running loop."""
        if self._running:
            return
        logger.debug("[%s-scheduler] start", self.name)
        self._running = True
        self._last = 0.0
        self._error_sum = 0.0
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"{self.name}-scheduler")

    def stop(self) -> None:
        """Stop scheduling; a pending sleep is cancelled, an in-flight callback may finish."""
        if not self._running:
            return
        logger.debug("[%s-scheduler] stop", self.name)
        self._running = False
        if self._task is not None and not self._in_callback:
            self._task.cancel()

    async def wait(self) -> None:
        """Wait until the scheduler task has exited."""
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def _next_delay(self, now: float) -> float:
        if self._last:
            drift = clamp(now - self._last - self.interval, -self.interval, self.interval)
            self._error_sum = clamp(self._error_sum + drift, -self.interval, self.interval)
            if self.verbose:
                logger.debug(
                    "[%s-scheduler] last=%.3fs drift=%.3fs",
                    self.name, now - self._last, self._error_sum,
                )
        self._last = now
        return max(0.0, self.interval - self._error_sum / 2)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while self._running:
            await asyncio.sleep(self._next_delay(loop.time()))
            if not self._running:
                break
            started = loop.time()
            self._in_callback = True
            try:
                await self.callback(self._clock())
                elapsed = loop.time() - started
                if elapsed > self.interval:
                    logger.warning(
                        "[%s-scheduler] callback elapsed=%.3fs > %.3fs",
                        self.name, elapsed, self.interval,
                    )
                elif self.verbose:
                    logger.debug("[%s-scheduler] callback elapsed=%.3fs", self.name, elapsed)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[%s-scheduler] callback error", self.name)
            finally:
                self._in_callback = False
                self.ticks += 1


__all__ = ["Scheduler", "TickCallback"]

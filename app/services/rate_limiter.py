"""
Fixed-window rate limiter for the charge trigger, keyed by caller identity.

State is process-local: with several worker processes each enforces its own
budget. Expired windows are replaced lazily on access and removed by
``RateLimitSweeper``.
"""
from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: Optional[int] = None


class FixedWindowRateLimiter:
    """Allow ``max_requests`` per ``window_seconds`` for each caller."""

    def __init__(
        self,
        window_seconds: float = 60,
        max_requests: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = Lock()

    def check(self, caller_id: str) -> RateLimitDecision:
        now = self.clock()
        with self._lock:
            window = self._windows.get(caller_id)
            if window is None or now >= window.reset_at:
                self._windows[caller_id] = _Window(count=1, reset_at=now + self.window_seconds)
                return RateLimitDecision(allowed=True)

            if window.count >= self.max_requests:
                retry_after = max(1, math.ceil(window.reset_at - now))
                return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

            window.count += 1
            return RateLimitDecision(allowed=True)

    def count_for(self, caller_id: str) -> int:
        """Requests counted in the caller's live window (0 if none)."""
        now = self.clock()
        with self._lock:
            window = self._windows.get(caller_id)
            if window is None or now >= window.reset_at:
                return 0
            return window.count

    def sweep(self) -> int:
        """Drop expired windows; return how many were removed."""
        now = self.clock()
        with self._lock:
            expired = [key for key, window in self._windows.items() if now >= window.reset_at]
            for key in expired:
                del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


class RateLimitSweeper:
    """Background task that periodically sweeps a limiter."""

    def __init__(self, limiter: FixedWindowRateLimiter, interval_seconds: float = 60):
        self.limiter = limiter
        self.interval_seconds = interval_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        """Start sweep loop as background task."""
        if self._task and not self._task.done():
            return
        # Fresh event per start; the sweeper may be restarted under a new loop.
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop())
        logger.info("RateLimitSweeper started")

    async def stop(self) -> None:
        """Stop sweep loop and wait for completion."""
        self._stop_event.set()
        if self._task:
            await self._task
        logger.info("RateLimitSweeper stopped")

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
            removed = self.limiter.sweep()
            if removed:
                logger.debug("Swept %s expired rate-limit window(s)", removed)

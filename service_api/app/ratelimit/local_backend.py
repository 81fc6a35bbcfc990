"""
In-process fixed-window rate limit backend.

Counters live in this process only: they reset on restart and each
concurrently running instance counts on its own, so a fleet of N instances
can admit up to N times the policy limit. Use the Redis backend when
cross-instance accuracy matters.
"""

import asyncio
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from afkmate_shared.logging import get_logger
from .policies import AdmissionResult, RateLimitBackend, RateLimitPolicy, make_key


@dataclass
class RateLimitCounter:
    count: int
    window_reset_at: float


class LocalRateLimitBackend(RateLimitBackend):
    """Fixed-window counters in a process-wide dict guarded by a lock."""

    name = "local"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._counters: Dict[str, RateLimitCounter] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None
        self.logger = get_logger("api.rate_limiter.local")

    def __len__(self) -> int:
        return len(self._counters)

    def check(self, client_id: str, policy: RateLimitPolicy) -> AdmissionResult:
        """Synchronous admission; the read-or-create and increment happen under one lock."""
        key = make_key(client_id, policy)

        with self._lock:
            now = self._clock()
            counter = self._counters.get(key)
            if counter is None or now > counter.window_reset_at:
                counter = RateLimitCounter(count=0, window_reset_at=now + policy.window_seconds)
                self._counters[key] = counter
            counter.count += 1
            count = counter.count
            reset_at = counter.window_reset_at

        return AdmissionResult(
            allowed=count <= policy.limit,
            limit=policy.limit,
            remaining=max(0, policy.limit - count),
            reset_in_seconds=max(0, math.ceil(reset_at - now)),
            backend=self.name,
        )

    async def admit(self, client_id: str, policy: RateLimitPolicy) -> AdmissionResult:
        return self.check(client_id, policy)

    def sweep(self) -> int:
        """Drop counters whose window has elapsed. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, counter in self._counters.items() if now > counter.window_reset_at]
            for key in expired:
                del self._counters[key]
        if expired:
            self.logger.debug("Swept expired rate limit counters", removed=len(expired), remaining=len(self._counters))
        return len(expired)

    async def _sweep_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                self.logger.error("Rate limit sweep failed", error=str(e))

    def start_sweeper(self, interval_seconds: float = 60.0) -> asyncio.Task:
        """Start the periodic sweep on the running event loop (idempotent)."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(interval_seconds))
            self.logger.info("Rate limit sweeper started", interval_seconds=interval_seconds)
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        self.logger.info("Rate limit sweeper stopped")

    async def close(self) -> None:
        await self.stop_sweeper()

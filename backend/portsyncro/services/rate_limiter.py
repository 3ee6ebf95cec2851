# backend/portsyncro/services/rate_limiter.py
"""
Sliding-window admission control for price resolution.

Each caller identity may be admitted at most ``max_requests`` times within a
trailing window of ``window_seconds``. Admission timestamps older than the
window are discarded on every check; a background sweep drops identities
whose lists have gone empty so memory stays bounded by active callers.

Unlike the per-address slowapi limits on the HTTP layer, this limiter is
keyed by the resolved caller identity (authenticated user first, address
and client string only as a fallback) so that users behind a shared network
do not exhaust each other's allowance.

Usage:
    limiter = RateLimiter()
    limiter.start()  # inside a running event loop (application lifespan)

    if not await limiter.admit("user:42"):
        raise RateLimitExceededError("user:42")

    await limiter.stop()
"""

import asyncio
import contextlib
import logging
import time
from collections import OrderedDict, deque
from collections.abc import Callable
from dataclasses import dataclass

from portsyncro.services.constants import (
    PRICE_RATE_LIMIT_MAX_REQUESTS,
    PRICE_RATE_LIMIT_WINDOW_SECONDS,
    RATE_LIMITER_SWEEP_INTERVAL_SECONDS,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_IDENTITIES = 10_000
MAX_RECORDED_VIOLATIONS = 1_000


@dataclass(frozen=True)
class RateLimitViolation:
    """A rejected admission, kept for diagnostics."""

    identity: str
    occurred_at: float
    admitted_in_window: int


@dataclass(frozen=True)
class RateLimiterStats:
    tracked_identities: int
    admitted: int
    rejected: int
    evicted: int


class RateLimiter:
    """
    Per-identity sliding-window limiter with a lifecycle-managed sweep.

    All state lives on the instance and is guarded by a single asyncio.Lock;
    admission decisions never await anything while holding it.

    Args:
        max_requests: Admissions allowed per identity inside the window
        window_seconds: Length of the trailing window
        sweep_interval_seconds: Period of the background cleanup task
        max_identities: Upper bound on tracked identities. When a new identity
            arrives at the bound, the least recently admitted one is evicted.
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(
            self,
            max_requests: int = PRICE_RATE_LIMIT_MAX_REQUESTS,
            window_seconds: float = PRICE_RATE_LIMIT_WINDOW_SECONDS,
            sweep_interval_seconds: float = RATE_LIMITER_SWEEP_INTERVAL_SECONDS,
            max_identities: int = DEFAULT_MAX_IDENTITIES,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.max_identities = max_identities
        self._clock = clock

        self._lock = asyncio.Lock()
        self._requests: OrderedDict[str, list[float]] = OrderedDict()
        self._violations: deque[RateLimitViolation] = deque(maxlen=MAX_RECORDED_VIOLATIONS)
        self._sweep_task: asyncio.Task | None = None

        self._admitted = 0
        self._rejected = 0
        self._evicted = 0

    # =========================================================================
    # ADMISSION
    # =========================================================================

    async def admit(self, identity: str, now: float | None = None) -> bool:
        """
        Decide whether ``identity`` may make another request.

        Args:
            identity: Caller identity key
            now: Current time in clock seconds (defaults to the injected clock)

        Returns:
            True if admitted (the timestamp is recorded), False if rejected
        """
        if now is None:
            now = self._clock()

        async with self._lock:
            window_start = now - self.window_seconds
            timestamps = [ts for ts in self._requests.get(identity, ()) if ts > window_start]

            if len(timestamps) >= self.max_requests:
                self._requests[identity] = timestamps
                self._record_violation(identity, now, len(timestamps))
                return False

            timestamps.append(now)
            if identity not in self._requests:
                self._evict_if_full()
            self._requests[identity] = timestamps
            self._requests.move_to_end(identity)
            self._admitted += 1
            return True

    def _record_violation(self, identity: str, now: float, count: int) -> None:
        self._rejected += 1
        self._violations.append(RateLimitViolation(identity, now, count))
        logger.warning(
            f"Rate limit exceeded for {identity}: {count} requests in {self.window_seconds:g}s",
            extra={"identity": identity, "requests_in_window": count},
        )

    def _evict_if_full(self) -> None:
        while len(self._requests) >= self.max_identities:
            evicted, _ = self._requests.popitem(last=False)
            self._evicted += 1
            logger.debug(f"Evicted idle rate limit identity {evicted}")

    # =========================================================================
    # CLEANUP
    # =========================================================================

    async def sweep(self, now: float | None = None) -> int:
        """
        Drop identities with no admissions left inside the window.

        Returns:
            Number of identities removed
        """
        if now is None:
            now = self._clock()

        async with self._lock:
            window_start = now - self.window_seconds
            stale = []
            for identity, timestamps in self._requests.items():
                live = [ts for ts in timestamps if ts > window_start]
                if live:
                    self._requests[identity] = live
                else:
                    stale.append(identity)
            for identity in stale:
                del self._requests[identity]

        if stale:
            logger.debug(f"Rate limiter sweep removed {len(stale)} idle identities")
        return len(stale)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            await self.sweep()

    def start(self) -> None:
        """Start the background sweep on the running event loop. Idempotent."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._sweep_loop(), name="rate-limiter-sweep"
        )
        logger.info(
            f"Rate limiter started: {self.max_requests} requests per "
            f"{self.window_seconds:g}s, sweep every {self.sweep_interval_seconds:g}s"
        )

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Rate limiter stopped")

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    @property
    def stats(self) -> RateLimiterStats:
        return RateLimiterStats(
            tracked_identities=len(self._requests),
            admitted=self._admitted,
            rejected=self._rejected,
            evicted=self._evicted,
        )

    @property
    def violations(self) -> list[RateLimitViolation]:
        return list(self._violations)

    def tracked_identities(self) -> list[str]:
        return list(self._requests)

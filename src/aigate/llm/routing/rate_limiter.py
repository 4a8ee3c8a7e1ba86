# Copyright 2026 The aigate Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Per-client sliding-window rate limiting.

Every client id owns a log of request timestamps. A check prunes entries
that left the trailing window, then either rejects (window full) or appends
the current time. Only admitted requests are recorded.

Idle clients are dropped by a periodic sweep that runs as a background task,
never on the request path.

References:
    - https://blog.cloudflare.com/counting-things-a-lot-of-different-things/
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .config import RateLimitConfig

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate-limit check.

    Attributes:
        allowed: Whether the request may proceed
        limit: Configured maximum for the window
        remaining: Slots left after this request
        reset_at: Epoch seconds when the oldest counted request leaves the window
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float


@dataclass
class RateLimitMetrics:
    """Counters for limiter monitoring."""

    allowed_requests: int = 0
    rejected_requests: int = 0
    swept_clients: int = 0

    def reset(self) -> None:
        """Reset all metrics."""
        self.allowed_requests = 0
        self.rejected_requests = 0
        self.swept_clients = 0


@dataclass
class _ClientWindow:
    timestamps: deque[float] = field(default_factory=deque)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SlidingWindowRateLimiter:
    """Sliding-window-log limiter keyed by client id.

    Example:
        >>> limiter = SlidingWindowRateLimiter(RateLimitConfig(max_requests=100))
        >>> decision = await limiter.check("ip:203.0.113.7")
        >>> decision.allowed, decision.remaining
        (True, 99)

    Thread Safety:
        Checks for the same client are serialized by a per-client
        asyncio.Lock. Not thread-safe.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize rate limiter.

        Args:
            config: Default limits, used when a check passes none
            retention_seconds: Idle time after which the sweep forgets a client
            clock: Source of epoch seconds (injectable for tests)
        """
        self.config = config or RateLimitConfig()
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._clients: dict[str, _ClientWindow] = {}
        self._metrics = RateLimitMetrics()
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def metrics(self) -> RateLimitMetrics:
        return self._metrics

    @property
    def tracked_clients(self) -> int:
        return len(self._clients)

    async def check(
        self, client_id: str, config: RateLimitConfig | None = None
    ) -> RateLimitDecision:
        """Admit or reject one request for ``client_id``.

        Args:
            client_id: Caller identity (e.g. "user:<hash>" or "ip:<addr>")
            config: Per-client override of the default limits

        Returns:
            RateLimitDecision; a rejected check is not recorded
        """
        cfg = config or self.config
        window = self._clients.get(client_id)
        if window is None:
            window = self._clients.setdefault(client_id, _ClientWindow())

        async with window.lock:
            now = self._clock()
            timestamps = window.timestamps
            cutoff = now - cfg.window_seconds
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()

            if len(timestamps) >= cfg.max_requests:
                self._metrics.rejected_requests += 1
                oldest = timestamps[0] if timestamps else now
                logger.debug(f"Rate limit exceeded for '{client_id}'")
                return RateLimitDecision(
                    allowed=False,
                    limit=cfg.max_requests,
                    remaining=0,
                    reset_at=oldest + cfg.window_seconds,
                )

            timestamps.append(now)
            self._metrics.allowed_requests += 1
            return RateLimitDecision(
                allowed=True,
                limit=cfg.max_requests,
                remaining=cfg.max_requests - len(timestamps),
                reset_at=timestamps[0] + cfg.window_seconds,
            )

    def sweep(self, now: float | None = None) -> int:
        """Forget clients whose newest request is older than the retention ceiling.

        Clients with a check in progress are left alone.

        Returns:
            Number of clients removed
        """
        now = self._clock() if now is None else now
        cutoff = now - self.retention_seconds
        stale = [
            client_id
            for client_id, window in self._clients.items()
            if not window.lock.locked()
            and (not window.timestamps or window.timestamps[-1] < cutoff)
        ]
        for client_id in stale:
            del self._clients[client_id]

        if stale:
            self._metrics.swept_clients += len(stale)
            logger.info(f"Rate limiter swept {len(stale)} idle clients")
        return len(stale)

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def start_sweeper(self, interval: float = 600.0) -> None:
        """Run :meth:`sweep` every ``interval`` seconds in a background task."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(interval))
        logger.debug(f"Rate limiter sweeper started (interval={interval}s)")

    async def stop_sweeper(self) -> None:
        """Cancel the background sweep task, if running."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    def reset(self, client_id: str | None = None) -> None:
        """Forget one client's window, or every window when ``client_id`` is None."""
        if client_id is None:
            self._clients.clear()
            self._metrics.reset()
            logger.info("Rate limiter reset")
        else:
            self._clients.pop(client_id, None)

    def get_status(self) -> dict[str, Any]:
        """Get rate limiter status for monitoring.

        Returns:
            Dictionary with limits and counters
        """
        return {
            "max_requests": self.config.max_requests,
            "window_seconds": self.config.window_seconds,
            "retention_seconds": self.retention_seconds,
            "tracked_clients": len(self._clients),
            "sweeper_running": self._sweeper is not None and not self._sweeper.done(),
            "metrics": {
                "allowed_requests": self._metrics.allowed_requests,
                "rejected_requests": self._metrics.rejected_requests,
                "swept_clients": self._metrics.swept_clients,
            },
        }

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

"""Gateway facade: rate limiter in front of the fallback router.

A single Gateway instance owns all process-wide mutable state (rate-limit
windows and adapter health). Its lifecycle is tied to the process through
:meth:`Gateway.start` and :meth:`Gateway.close`.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from aigate.core.models import CompletionRequest, CompletionResult
from aigate.llm.base import LocalRateLimitExceededError
from aigate.llm.factory import build_adapters
from aigate.utils.config import Settings

from .config import AdapterConfig, HealthConfig, RateLimitConfig, RouterConfig
from .health import HealthRegistry
from .multiplexer import StreamEvent
from .rate_limiter import RateLimitDecision, SlidingWindowRateLimiter
from .router import FallbackRouter

logger = logging.getLogger(__name__)

RateLimitSource = Callable[[str], RateLimitConfig | None]


class Gateway:
    """Rate-limited entry point for completions.

    Example:
        >>> gateway = Gateway.from_settings(get_settings())
        >>> await gateway.start()
        >>> result = await gateway.complete("ip:127.0.0.1", CompletionRequest(prompt="Hi"))
        >>> await gateway.close()
    """

    def __init__(
        self,
        router: FallbackRouter,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        rate_limit_source: RateLimitSource | None = None,
        sweep_interval: float = 600.0,
    ) -> None:
        """Initialize gateway.

        Args:
            router: Fallback router over the configured adapters
            rate_limiter: Per-client limiter (defaults: 100 requests / 15 minutes)
            rate_limit_source: Optional per-client limits lookup; None means defaults
            sweep_interval: Seconds between idle-client sweeps
        """
        self.router = router
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self.rate_limit_source = rate_limit_source
        self.sweep_interval = sweep_interval

    @classmethod
    def from_settings(
        cls, settings: Settings, rate_limit_source: RateLimitSource | None = None
    ) -> Gateway:
        """Build adapters, health registry, router and limiter from settings."""
        adapters = build_adapters(settings)
        adapter_configs = {
            name: AdapterConfig(
                priority=index + 1,
                timeout=settings.request_timeout,
                stream_timeout=settings.stream_timeout,
            )
            for index, name in enumerate(settings.fallback_chain)
        }
        health = HealthRegistry(
            HealthConfig(
                failure_threshold=settings.health_failure_threshold,
                cooldown_seconds=settings.health_cooldown_seconds,
            )
        )
        router = FallbackRouter(
            adapters,
            health=health,
            adapter_configs=adapter_configs,
            config=RouterConfig(total_timeout=settings.total_timeout),
        )
        limiter = SlidingWindowRateLimiter(
            RateLimitConfig(
                max_requests=settings.rate_limit_max_requests,
                window_seconds=settings.rate_limit_window_seconds,
            ),
            retention_seconds=settings.rate_limit_retention_seconds,
        )
        return cls(
            router,
            limiter,
            rate_limit_source=rate_limit_source,
            sweep_interval=settings.rate_limit_sweep_interval,
        )

    async def start(self) -> None:
        """Start background maintenance (idle-client sweep)."""
        self.rate_limiter.start_sweeper(self.sweep_interval)
        providers = self.router.get_available_providers()
        logger.info(f"Gateway started; available providers: {providers}")

    async def close(self) -> None:
        """Stop background tasks and release adapter resources."""
        await self.rate_limiter.stop_sweeper()
        await self.router.close()
        logger.info("Gateway stopped")

    async def admit(self, client_id: str) -> RateLimitDecision:
        """Run the rate-limit check for ``client_id``.

        Raises:
            LocalRateLimitExceededError: If the client's window is full
        """
        config = self.rate_limit_source(client_id) if self.rate_limit_source else None
        decision = await self.rate_limiter.check(client_id, config)
        if not decision.allowed:
            logger.warning(f"Local rate limit exceeded for '{client_id}'")
            raise LocalRateLimitExceededError(
                f"Rate limit of {decision.limit} requests exceeded", reset_at=decision.reset_at
            )
        return decision

    async def complete(
        self,
        client_id: str,
        request: CompletionRequest,
        admitted: RateLimitDecision | None = None,
    ) -> CompletionResult:
        """Rate-limit then route a non-streaming request.

        Args:
            client_id: Caller identity the limit is keyed by
            request: Unified completion request
            admitted: Decision from an earlier ``admit`` call for this request;
                when given the limiter is not consulted again

        Raises:
            LocalRateLimitExceededError: If the client is over its limit
        """
        if admitted is None:
            await self.admit(client_id)
        return await self.router.route(request)

    async def stream(
        self,
        client_id: str,
        request: CompletionRequest,
        admitted: RateLimitDecision | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Rate-limit a streaming request and open its event stream.

        The limit is checked before the stream is returned, so a rejection
        surfaces before any response headers are sent.

        Raises:
            LocalRateLimitExceededError: If the client is over its limit
        """
        if admitted is None:
            await self.admit(client_id)
        return self.router.route_stream(request)

    def get_status(self) -> dict[str, Any]:
        return {
            "router": self.router.get_status(),
            "rate_limiter": self.rate_limiter.get_status(),
        }


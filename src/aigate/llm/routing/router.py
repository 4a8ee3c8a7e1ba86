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

"""Fallback router across provider adapters.

Attempts adapters one at a time until one succeeds:
- Preferred provider first when it is healthy, then static priority order
- Disabled adapters are skipped until their cool-down expires
- Every attempt is bounded by a per-adapter timeout and an overall budget
- Failures are classified by a configurable RoutingPolicy

Streams only fall back before the first fragment has been delivered; a
failure after that ends the stream with an error event.

Example:
    >>> router = FallbackRouter([anthropic_adapter, openai_adapter, gemini_adapter])
    >>> result = await router.route(CompletionRequest(prompt="Hello"))
    >>> result.provider
    'anthropic'
    >>>
    >>> async for event in router.route_stream(CompletionRequest(prompt="Hello")):
    ...     print(event.content, end="")
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

from aigate.core.models import CompletionRequest, CompletionResult, ErrorKind
from aigate.llm.base import GatewayError, ProviderAdapter, ProviderError, ProviderTimeoutError

from .config import AdapterConfig, FailureAction, RouterConfig, get_default_config_for_adapter
from .health import HealthRegistry, HealthState
from .multiplexer import StreamEvent, adapter_fragments, close_fragments, next_fragment

logger = logging.getLogger(__name__)

NO_PROVIDER = "none"


class FallbackRouter:
    """Routes a request through an ordered chain of adapters.

    Attributes:
        health: Shared health registry (injected, process-scoped)
        config: Router-wide settings including the failure policy
    """

    def __init__(
        self,
        adapters: Iterable[ProviderAdapter],
        health: HealthRegistry | None = None,
        adapter_configs: dict[str, AdapterConfig] | None = None,
        config: RouterConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize router.

        Args:
            adapters: Adapters to route across; registration order breaks priority ties
            health: Health registry (a fresh one is created if None)
            adapter_configs: Per-adapter routing config keyed by adapter name
            config: Router configuration (uses defaults if None)
            clock: Monotonic clock used for the overall budget
        """
        self.health = health or HealthRegistry()
        self.config = config or RouterConfig()
        self._clock = clock
        self._adapters: dict[str, ProviderAdapter] = {}
        self._configs: dict[str, AdapterConfig] = {}

        overrides = adapter_configs or {}
        for adapter in adapters:
            self.register(adapter, overrides.get(adapter.name))

    def register(self, adapter: ProviderAdapter, config: AdapterConfig | None = None) -> None:
        """Add an adapter to the chain.

        Args:
            adapter: Adapter instance
            config: Routing config (defaults by adapter name if None)
        """
        self._adapters[adapter.name] = adapter
        self._configs[adapter.name] = config or get_default_config_for_adapter(adapter.name)
        self.health.register(adapter.name, available=adapter.available)
        logger.info(
            f"Registered adapter '{adapter.name}' with priority "
            f"{self._configs[adapter.name].priority}"
        )

    @property
    def adapters(self) -> dict[str, ProviderAdapter]:
        return dict(self._adapters)

    def _ranked(self) -> list[str]:
        enabled = [name for name in self._adapters if self._configs[name].enabled]
        return sorted(enabled, key=lambda name: self._configs[name].priority)

    def order(self, request: CompletionRequest) -> list[str]:
        """Adapters to attempt for ``request``, in order.

        Disabled adapters are left out and counted as skipped.
        """
        ranked = self._ranked()

        preferred = request.preferred_provider
        if preferred:
            if preferred not in ranked:
                logger.warning(f"Preferred provider '{preferred}' is not registered; ignoring")
            elif self.health.state_of(preferred) == HealthState.HEALTHY:
                ranked.remove(preferred)
                ranked.insert(0, preferred)

        eligible = []
        for name in ranked:
            if self.health.is_eligible(name):
                eligible.append(name)
            else:
                self.health.record_skip(name)
                logger.debug(f"Skipping disabled adapter '{name}'")
        return eligible

    @staticmethod
    def _request_for(
        name: str, request: CompletionRequest, model_owner: str | None
    ) -> CompletionRequest:
        """``request`` as sent to ``name``; only ``model_owner`` sees the model override."""
        if request.preferred_model is None or name == model_owner:
            return request
        return request.model_copy(update={"preferred_model": None})

    @staticmethod
    def _model_owner(request: CompletionRequest, order: list[str]) -> str | None:
        if request.preferred_provider:
            return request.preferred_provider
        return order[0] if order else None

    def get_available_providers(self) -> list[str]:
        """Names of adapters that have credentials, in priority order."""
        return [name for name in self._ranked() if self._adapters[name].available]

    def primary_provider(self) -> str | None:
        """Adapter a request without preferences would try first."""
        eligible = [name for name in self._ranked() if self.health.is_eligible(name)]
        return eligible[0] if eligible else None

    def _deadline(self) -> float | None:
        if self.config.total_timeout is None:
            return None
        return self._clock() + self.config.total_timeout

    def _budget(self, per_attempt: float, deadline: float | None) -> float:
        if deadline is None:
            return per_attempt
        return min(per_attempt, deadline - self._clock())

    async def _classify(self, name: str, error: GatewayError) -> FailureAction:
        """Apply the policy for ``error`` and update health accordingly."""
        action = self.config.policy.action_for(error.kind)
        if action == FailureAction.FALLBACK_WITH_PENALTY:
            await self.health.record_failure(name, error.kind)
        return action

    @staticmethod
    def _wrap_unexpected(name: str, error: Exception) -> GatewayError:
        logger.error(f"Unexpected error from adapter '{name}': {error}", exc_info=True)
        return ProviderError(f"Unexpected error from '{name}': {error}")

    @staticmethod
    def _invalid(message: str) -> CompletionResult:
        return CompletionResult.failure(ErrorKind.INVALID_REQUEST, message)

    @staticmethod
    def _exhausted(attempts: list[str], errors: list[str]) -> CompletionResult:
        detail = "; ".join(errors) if errors else "no eligible providers"
        logger.warning(f"All providers exhausted: {detail}")
        return CompletionResult.failure(
            ErrorKind.ALL_PROVIDERS_EXHAUSTED,
            f"All providers failed: {detail}",
            provider=NO_PROVIDER,
            attempts=attempts,
        )

    async def route(self, request: CompletionRequest) -> CompletionResult:
        """Serve a non-streaming request.

        Args:
            request: Unified completion request

        Returns:
            The first successful result, or a structured failure
            (InvalidRequest, or AllProvidersExhausted with provider "none")
        """
        if request.is_empty:
            return self._invalid("Request must include a prompt or history")

        deadline = self._deadline()
        attempts: list[str] = []
        errors: list[str] = []
        order = self.order(request)
        model_owner = self._model_owner(request, order)

        for name in order:
            budget = self._budget(self._configs[name].timeout, deadline)
            if budget <= 0:
                errors.append("total timeout budget exhausted")
                break

            adapter = self._adapters[name]
            attempts.append(name)
            logger.info(f"Routing request to '{name}' (timeout={budget:.1f}s)")

            try:
                result = await asyncio.wait_for(
                    adapter.complete(self._request_for(name, request, model_owner)),
                    timeout=budget,
                )
            except TimeoutError:
                error: GatewayError = ProviderTimeoutError(
                    f"'{name}' did not respond within {budget:.1f}s"
                )
            except GatewayError as e:
                error = e
            except Exception as e:
                error = self._wrap_unexpected(name, e)
            else:
                await self.health.record_success(name)
                return result.model_copy(update={"attempts": attempts})

            action = await self._classify(name, error)
            if action == FailureAction.ABORT:
                logger.warning(f"'{name}' rejected the request ({error.kind.value}); aborting")
                return CompletionResult.failure(
                    error.kind, str(error), provider=name, attempts=attempts
                )

            errors.append(f"{name}: {error.kind.value}: {error}")
            logger.warning(f"Falling back from '{name}' ({error.kind.value}): {error}")

        return self._exhausted(attempts, errors)

    async def route_stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        """Serve a streaming request.

        Yields fragment events in arrival order followed by exactly one
        terminal event: DONE (with the aggregated result) or ERROR.
        Closing this generator closes the active adapter stream.
        """
        if request.is_empty:
            yield StreamEvent.error(self._invalid("Request must include a prompt or history"))
            return

        deadline = self._deadline()
        attempts: list[str] = []
        errors: list[str] = []
        order = self.order(request)
        model_owner = self._model_owner(request, order)

        for name in order:
            config = self._configs[name]
            budget = self._budget(config.stream_timeout, deadline)
            if budget <= 0:
                errors.append("total timeout budget exhausted")
                break

            adapter = self._adapters[name]
            attempt_request = self._request_for(name, request, model_owner)
            model = attempt_request.preferred_model or adapter.model
            attempts.append(name)
            logger.info(f"Streaming request from '{name}' (first fragment within {budget:.1f}s)")

            fragments = adapter_fragments(adapter, attempt_request)
            delivered: list[str] = []
            try:
                try:
                    first = await next_fragment(fragments, budget)
                except StopAsyncIteration:
                    raise ProviderError(f"'{name}' returned an empty stream") from None
                delivered.append(first)
                yield StreamEvent.fragment(first)

                while True:
                    try:
                        fragment = await next_fragment(fragments, config.stream_timeout)
                    except StopAsyncIteration:
                        break
                    delivered.append(fragment)
                    yield StreamEvent.fragment(fragment)
            except GatewayError as e:
                error: GatewayError = e
            except Exception as e:
                error = self._wrap_unexpected(name, e)
            else:
                await self.health.record_success(name)
                yield StreamEvent.done(
                    CompletionResult(
                        content="".join(delivered),
                        provider=name,
                        model=model,
                        attempts=attempts,
                    )
                )
                return
            finally:
                await close_fragments(fragments)

            action = await self._classify(name, error)

            if delivered:
                logger.warning(
                    f"Stream from '{name}' failed after {len(delivered)} fragments "
                    f"({error.kind.value}): {error}"
                )
                yield StreamEvent.error(
                    CompletionResult.failure(
                        error.kind,
                        str(error),
                        provider=name,
                        model=model,
                        content="".join(delivered),
                        attempts=attempts,
                    )
                )
                return

            if action == FailureAction.ABORT:
                logger.warning(f"'{name}' rejected the request ({error.kind.value}); aborting")
                yield StreamEvent.error(
                    CompletionResult.failure(
                        error.kind, str(error), provider=name, attempts=attempts
                    )
                )
                return

            errors.append(f"{name}: {error.kind.value}: {error}")
            logger.warning(f"Falling back from '{name}' ({error.kind.value}): {error}")

        yield StreamEvent.error(self._exhausted(attempts, errors))

    def get_status(self) -> dict[str, Any]:
        """Get router status for monitoring.

        Returns:
            Dictionary with per-adapter configuration, capabilities and health
        """
        health = self.health.get_status()
        return {
            "primary_provider": self.primary_provider(),
            "total_timeout": self.config.total_timeout,
            "adapters": {
                name: {
                    "model": adapter.model,
                    "available": adapter.available,
                    "priority": self._configs[name].priority,
                    "enabled": self._configs[name].enabled,
                    "timeout": self._configs[name].timeout,
                    "stream_timeout": self._configs[name].stream_timeout,
                    "supports_streaming": adapter.capabilities.supports_streaming,
                    "supports_image_input": adapter.capabilities.supports_image_input,
                    "health": health[name],
                }
                for name, adapter in sorted(
                    self._adapters.items(), key=lambda item: self._configs[item[0]].priority
                )
            },
        }

    async def close(self) -> None:
        """Release adapter resources (HTTP sessions, SDK clients)."""
        for adapter in self._adapters.values():
            await adapter.close()

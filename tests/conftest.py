"""Shared pytest fixtures for aigate tests.

Provides scripted fake adapters, settings and common utilities.
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest

from aigate.core.models import CompletionRequest, CompletionResult
from aigate.llm.base import ProviderCapabilities, ensure_supported
from aigate.llm.routing import (
    AdapterConfig,
    FallbackRouter,
    HealthConfig,
    HealthRegistry,
    RouterConfig,
)
from aigate.utils.config import Settings

# ============================================================================
# Fake Adapter
# ============================================================================


class FakeAdapter:
    """Scripted adapter for testing without real API calls.

    Args:
        name: Adapter name
        fragments: Text fragments produced by stream(); complete() joins them
        error: Exception raised instead of (or part-way through) the output
        error_after: Number of fragments streamed before ``error`` is raised
        delay: Seconds to wait before the first output
        fragment_delay: Seconds to wait after each streamed fragment
        supports_streaming: Capability flag
        supports_image_input: Capability flag
        available: Whether credentials are "configured"
    """

    def __init__(
        self,
        name: str,
        fragments: list[str] | None = None,
        error: Exception | None = None,
        error_after: int = 0,
        delay: float = 0.0,
        fragment_delay: float = 0.0,
        supports_streaming: bool = True,
        supports_image_input: bool = True,
        available: bool = True,
        model: str | None = None,
    ):
        self.name = name
        self.model = model or f"{name}-model"
        self.capabilities = ProviderCapabilities(
            supports_streaming=supports_streaming,
            supports_image_input=supports_image_input,
        )
        self.fragments = fragments if fragments is not None else [f"response from {name}"]
        self.error = error
        self.error_after = error_after
        self.delay = delay
        self.fragment_delay = fragment_delay
        self._available = available

        self.complete_calls = 0
        self.stream_calls = 0
        self.stream_closed = False
        self.closed = False
        self.last_request: CompletionRequest | None = None

    @property
    def available(self) -> bool:
        return self._available

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        self.complete_calls += 1
        self.last_request = request
        ensure_supported(self, request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return CompletionResult(
            content="".join(self.fragments),
            provider=self.name,
            model=request.preferred_model or self.model,
        )

    async def stream(self, request: CompletionRequest) -> AsyncGenerator[str, None]:
        self.stream_calls += 1
        self.last_request = request
        try:
            ensure_supported(self, request)
            if self.delay:
                await asyncio.sleep(self.delay)
            for index, fragment in enumerate(self.fragments):
                if self.error is not None and index == self.error_after:
                    raise self.error
                yield fragment
                if self.fragment_delay:
                    await asyncio.sleep(self.fragment_delay)
            if self.error is not None and self.error_after >= len(self.fragments):
                raise self.error
        finally:
            self.stream_closed = True

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_adapter_class() -> type[FakeAdapter]:
    """Provide FakeAdapter class for tests that need custom instances."""
    return FakeAdapter


@pytest.fixture
def make_router() -> Callable[..., FallbackRouter]:
    """Build a router over fake adapters with priorities in list order.

    Example:
        def test_fallback(make_router, fake_adapter_class):
            router = make_router([fake_adapter_class("a"), fake_adapter_class("b")])
    """

    def _make(
        adapters: list[Any],
        timeout: float = 1.0,
        stream_timeout: float = 1.0,
        total_timeout: float | None = 10.0,
        health: HealthRegistry | None = None,
        config: RouterConfig | None = None,
    ) -> FallbackRouter:
        configs = {
            adapter.name: AdapterConfig(
                priority=index + 1, timeout=timeout, stream_timeout=stream_timeout
            )
            for index, adapter in enumerate(adapters)
        }
        return FallbackRouter(
            adapters,
            health=health or HealthRegistry(HealthConfig(failure_threshold=3)),
            adapter_configs=configs,
            config=config or RouterConfig(total_timeout=total_timeout),
        )

    return _make


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        anthropic_api_key="sk-ant-test",
        openai_api_key="sk-test",
        gemini_api_key=None,
        api_tokens=["secret-token"],
    )


# ============================================================================
# Pytest Configuration Hooks
# ============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Modify test collection to auto-mark tests based on location."""
    for item in items:
        # Auto-mark based on test file location
        path = str(item.fspath)
        if "unit" in path:
            item.add_marker(pytest.mark.unit)
        elif "api" in path:
            item.add_marker(pytest.mark.integration)

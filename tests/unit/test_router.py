"""Unit tests for the fallback router.

Tests adapter ordering, failure classification, health penalties, overall
budgets and stream fallback rules.
"""

import asyncio
import time

import pytest

from aigate.core.models import ChatMessage, CompletionRequest, ErrorKind, ImageAttachment, Role
from aigate.llm.base import (
    CapabilityUnsupportedError,
    InvalidRequestError,
    ProviderError,
    ProviderRateLimitError,
)
from aigate.llm.routing import (
    FailureAction,
    HealthConfig,
    HealthRegistry,
    HealthState,
    RouterConfig,
    RoutingPolicy,
    StreamEventType,
)


async def collect(stream):
    return [event async for event in stream]


@pytest.mark.unit
class TestRouteOrdering:
    """Test which adapters are attempted and in what order."""

    @pytest.mark.asyncio
    async def test_empty_request_is_invalid_without_contacting_adapters(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a")
        router = make_router([a])

        result = await router.route(CompletionRequest(prompt="   "))

        assert result.success is False
        assert result.error_kind == ErrorKind.INVALID_REQUEST
        assert a.complete_calls == 0

    @pytest.mark.asyncio
    async def test_history_only_request_is_routed(self, make_router, fake_adapter_class) -> None:
        a = fake_adapter_class("a")
        router = make_router([a])
        request = CompletionRequest(history=(ChatMessage(role=Role.USER, text="Hi"),))

        result = await router.route(request)

        assert result.success is True
        assert a.complete_calls == 1

    @pytest.mark.asyncio
    async def test_priority_one_serves_healthy_chain(self, make_router, fake_adapter_class) -> None:
        a, b, c = (fake_adapter_class(n) for n in ("a", "b", "c"))
        router = make_router([a, b, c])

        result = await router.route(CompletionRequest(prompt="hello"))

        assert result.success is True
        assert result.provider == "a"
        assert result.content
        assert result.attempts == ["a"]
        assert b.complete_calls == 0
        assert c.complete_calls == 0

    @pytest.mark.asyncio
    async def test_preferred_provider_goes_first_when_healthy(
        self, make_router, fake_adapter_class
    ) -> None:
        a, b = fake_adapter_class("a"), fake_adapter_class("b")
        router = make_router([a, b])

        result = await router.route(CompletionRequest(prompt="hello", preferred_provider="b"))

        assert result.provider == "b"
        assert a.complete_calls == 0

    @pytest.mark.asyncio
    async def test_degraded_preferred_provider_keeps_priority_position(
        self, make_router, fake_adapter_class
    ) -> None:
        a, b = fake_adapter_class("a"), fake_adapter_class("b")
        router = make_router([a, b])
        await router.health.record_failure("b", ErrorKind.TIMEOUT)

        result = await router.route(CompletionRequest(prompt="hello", preferred_provider="b"))

        assert result.provider == "a"

    @pytest.mark.asyncio
    async def test_unknown_preferred_provider_is_ignored(
        self, make_router, fake_adapter_class
    ) -> None:
        router = make_router([fake_adapter_class("a")])

        result = await router.route(CompletionRequest(prompt="hello", preferred_provider="zzz"))

        assert result.provider == "a"

    @pytest.mark.asyncio
    async def test_preferred_model_is_passed_through(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a")
        router = make_router([a])

        result = await router.route(CompletionRequest(prompt="hello", preferred_model="big-1"))

        assert result.model == "big-1"
        assert a.last_request is not None
        assert a.last_request.preferred_model == "big-1"

    @pytest.mark.asyncio
    async def test_preferred_model_stays_with_preferred_provider_on_fallback(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a")
        b = fake_adapter_class("b", error=ProviderError("down"))
        router = make_router([a, b])
        request = CompletionRequest(prompt="hello", preferred_provider="b", preferred_model="big-1")

        result = await router.route(request)

        assert result.attempts == ["b", "a"]
        assert b.last_request.preferred_model == "big-1"
        assert a.last_request.preferred_model is None
        assert result.provider == "a"
        assert result.model == "a-model"

    @pytest.mark.asyncio
    async def test_preferred_model_without_provider_applies_to_first_attempt_only(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a", error=ProviderError("down"))
        b = fake_adapter_class("b")
        router = make_router([a, b])

        result = await router.route(CompletionRequest(prompt="hello", preferred_model="big-1"))

        assert a.last_request.preferred_model == "big-1"
        assert b.last_request.preferred_model is None
        assert result.model == "b-model"

    @pytest.mark.asyncio
    async def test_stream_fallback_uses_fallback_adapter_model(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a")
        b = fake_adapter_class("b", error=ProviderError("down"))
        router = make_router([a, b])
        request = CompletionRequest(prompt="hello", preferred_provider="b", preferred_model="big-1")

        events = await collect(router.route_stream(request))

        assert events[-1].type == StreamEventType.DONE
        assert events[-1].result.model == "a-model"
        assert a.last_request.preferred_model is None
        assert b.last_request.preferred_model == "big-1"

    def test_unavailable_adapter_is_left_out(self, make_router, fake_adapter_class) -> None:
        router = make_router([fake_adapter_class("a", available=False), fake_adapter_class("b")])

        assert router.order(CompletionRequest(prompt="hi")) == ["b"]
        assert router.get_available_providers() == ["b"]
        assert router.primary_provider() == "b"


@pytest.mark.unit
class TestRouteFallback:
    """Test failure handling and fallback."""

    @pytest.mark.asyncio
    async def test_timeouts_fall_back_and_degrade(self, make_router, fake_adapter_class) -> None:
        a = fake_adapter_class("a", delay=1.0)
        b = fake_adapter_class("b", delay=1.0)
        c = fake_adapter_class("c")
        router = make_router([a, b, c], timeout=0.05)

        result = await router.route(CompletionRequest(prompt="hello"))

        assert result.success is True
        assert result.provider == "c"
        assert result.attempts == ["a", "b", "c"]

        status = router.health.get_status()
        assert status["a"]["state"] == "degraded"
        assert status["a"]["consecutive_failures"] == 1
        assert status["a"]["last_error_kind"] == "Timeout"
        assert status["b"]["state"] == "degraded"
        assert status["b"]["consecutive_failures"] == 1
        assert status["c"]["state"] == "healthy"
        assert status["c"]["consecutive_failures"] == 0

    @pytest.mark.asyncio
    async def test_all_provider_errors_exhaust_chain(self, make_router, fake_adapter_class) -> None:
        adapters = [fake_adapter_class(n, error=ProviderError("boom")) for n in ("a", "b", "c")]
        router = make_router(adapters)

        result = await router.route(CompletionRequest(prompt="hello"))

        assert result.success is False
        assert result.error_kind == ErrorKind.ALL_PROVIDERS_EXHAUSTED
        assert result.provider == "none"
        assert result.attempts == ["a", "b", "c"]
        assert all(adapter.complete_calls == 1 for adapter in adapters)

    @pytest.mark.asyncio
    async def test_invalid_request_aborts_chain(self, make_router, fake_adapter_class) -> None:
        a = fake_adapter_class("a", error=InvalidRequestError("bad payload"))
        b = fake_adapter_class("b")
        router = make_router([a, b])

        result = await router.route(CompletionRequest(prompt="hello"))

        assert result.success is False
        assert result.error_kind == ErrorKind.INVALID_REQUEST
        assert result.provider == "a"
        assert b.complete_calls == 0
        assert router.health.state_of("a") == HealthState.HEALTHY

    @pytest.mark.asyncio
    async def test_capability_mismatch_falls_back_without_penalty(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a", supports_image_input=False)
        b = fake_adapter_class("b")
        router = make_router([a, b])
        request = CompletionRequest(prompt="describe", image=ImageAttachment(data="AAAA"))

        result = await router.route(request)

        assert result.provider == "b"
        status = router.health.get_status()["a"]
        assert status["state"] == "healthy"
        assert status["failures"] == 0

    @pytest.mark.asyncio
    async def test_adapter_raising_capability_error_is_not_penalized(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a", error=CapabilityUnsupportedError("no images"))
        router = make_router([a, fake_adapter_class("b")])

        result = await router.route(CompletionRequest(prompt="hi"))

        assert result.provider == "b"
        assert router.health.get_status()["a"]["consecutive_failures"] == 0

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_treated_as_provider_error(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a", error=RuntimeError("kaboom"))
        router = make_router([a, fake_adapter_class("b")])

        result = await router.route(CompletionRequest(prompt="hi"))

        assert result.provider == "b"
        assert router.health.get_status()["a"]["last_error_kind"] == "ProviderError"

    @pytest.mark.asyncio
    async def test_policy_override_can_abort_on_rate_limit(
        self, make_router, fake_adapter_class
    ) -> None:
        policy = RoutingPolicy().with_overrides({ErrorKind.RATE_LIMITED: FailureAction.ABORT})
        a = fake_adapter_class("a", error=ProviderRateLimitError("slow down"))
        b = fake_adapter_class("b")
        router = make_router([a, b], config=RouterConfig(policy=policy))

        result = await router.route(CompletionRequest(prompt="hi"))

        assert result.error_kind == ErrorKind.RATE_LIMITED
        assert b.complete_calls == 0

    @pytest.mark.asyncio
    async def test_total_budget_caps_the_chain(self, make_router, fake_adapter_class) -> None:
        adapters = [fake_adapter_class(n, delay=5.0) for n in ("a", "b", "c")]
        router = make_router(adapters, timeout=1.0, total_timeout=0.1)

        start = time.monotonic()
        result = await router.route(CompletionRequest(prompt="hi"))
        elapsed = time.monotonic() - start

        assert result.error_kind == ErrorKind.ALL_PROVIDERS_EXHAUSTED
        assert result.attempts[0] == "a"
        assert elapsed < 1.0
        assert adapters[2].complete_calls == 0


@pytest.mark.unit
class TestRouteHealth:
    """Test health-driven skipping."""

    @pytest.mark.asyncio
    async def test_disabled_adapter_skipped_until_cooldown(
        self, make_router, fake_adapter_class, fake_clock
    ) -> None:
        health = HealthRegistry(
            HealthConfig(failure_threshold=2, cooldown_seconds=30.0), clock=fake_clock
        )
        a = fake_adapter_class("a", error=ProviderError("down"))
        b = fake_adapter_class("b")
        router = make_router([a, b], health=health)
        request = CompletionRequest(prompt="hi")

        await router.route(request)
        await router.route(request)
        assert health.state_of("a") == HealthState.DISABLED

        result = await router.route(request)
        assert result.provider == "b"
        assert a.complete_calls == 2
        assert health.get_status()["a"]["skipped"] == 1

        fake_clock.advance(31.0)
        await router.route(request)
        assert a.complete_calls == 3

    @pytest.mark.asyncio
    async def test_success_resets_failure_counter(self, make_router, fake_adapter_class) -> None:
        a = fake_adapter_class("a")
        router = make_router([a])
        await router.health.record_failure("a", ErrorKind.TIMEOUT)

        await router.route(CompletionRequest(prompt="hi"))

        assert router.health.state_of("a") == HealthState.HEALTHY
        assert router.health.get_status()["a"]["consecutive_failures"] == 0

    @pytest.mark.asyncio
    async def test_no_eligible_adapters_exhausts(self, make_router, fake_adapter_class) -> None:
        router = make_router([fake_adapter_class("a", available=False)])

        result = await router.route(CompletionRequest(prompt="hi"))

        assert result.error_kind == ErrorKind.ALL_PROVIDERS_EXHAUSTED
        assert result.attempts == []


@pytest.mark.unit
class TestRouteStream:
    """Test streaming routing."""

    @pytest.mark.asyncio
    async def test_fragments_then_done(self, make_router, fake_adapter_class) -> None:
        a = fake_adapter_class("a", fragments=["Hel", "lo", " world"])
        router = make_router([a])

        events = await collect(router.route_stream(CompletionRequest(prompt="hi")))

        assert [e.content for e in events[:-1]] == ["Hel", "lo", " world"]
        assert all(e.type == StreamEventType.FRAGMENT for e in events[:-1])
        assert events[-1].type == StreamEventType.DONE
        assert events[-1].result.content == "Hello world"
        assert events[-1].result.provider == "a"
        assert a.stream_closed is True

    @pytest.mark.asyncio
    async def test_empty_request_yields_single_error(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a")
        router = make_router([a])

        events = await collect(router.route_stream(CompletionRequest()))

        assert len(events) == 1
        assert events[0].type == StreamEventType.ERROR
        assert events[0].result.error_kind == ErrorKind.INVALID_REQUEST
        assert a.stream_calls == 0

    @pytest.mark.asyncio
    async def test_failure_before_first_fragment_falls_back(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a", error=ProviderError("down"))
        b = fake_adapter_class("b", fragments=["ok"])
        router = make_router([a, b])

        events = await collect(router.route_stream(CompletionRequest(prompt="hi")))

        assert [e.content for e in events if e.type == StreamEventType.FRAGMENT] == ["ok"]
        assert events[-1].type == StreamEventType.DONE
        assert events[-1].result.provider == "b"
        assert events[-1].result.attempts == ["a", "b"]
        assert router.health.state_of("a") == HealthState.DEGRADED

    @pytest.mark.asyncio
    async def test_first_fragment_timeout_falls_back(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a", delay=1.0)
        b = fake_adapter_class("b", fragments=["fast"])
        router = make_router([a, b], stream_timeout=0.05)

        events = await collect(router.route_stream(CompletionRequest(prompt="hi")))

        assert events[-1].type == StreamEventType.DONE
        assert events[-1].result.provider == "b"
        assert a.stream_closed is True

    @pytest.mark.asyncio
    async def test_mid_stream_failure_ends_with_error_and_no_fallback(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class(
            "a", fragments=["Hel", "lo"], error=ProviderError("connection reset"), error_after=1
        )
        b = fake_adapter_class("b")
        router = make_router([a, b])

        events = await collect(router.route_stream(CompletionRequest(prompt="hi")))

        assert [e.type for e in events] == [StreamEventType.FRAGMENT, StreamEventType.ERROR]
        assert events[0].content == "Hel"
        assert events[1].result.provider == "a"
        assert events[1].result.content == "Hel"
        assert events[1].result.error_kind == ErrorKind.PROVIDER_ERROR
        assert b.stream_calls == 0
        assert b.complete_calls == 0
        assert router.health.state_of("a") == HealthState.DEGRADED

    @pytest.mark.asyncio
    async def test_idle_gap_timeout_mid_stream(self, make_router, fake_adapter_class) -> None:
        a = fake_adapter_class("a", fragments=["one", "two"], fragment_delay=1.0)
        router = make_router([a, fake_adapter_class("b")], stream_timeout=0.05)

        events = await collect(router.route_stream(CompletionRequest(prompt="hi")))

        assert events[0].content == "one"
        assert events[-1].type == StreamEventType.ERROR
        assert events[-1].result.error_kind == ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_non_streaming_adapter_yields_single_fragment(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a", fragments=["Hel", "lo"], supports_streaming=False)
        router = make_router([a])

        events = await collect(router.route_stream(CompletionRequest(prompt="hi")))

        assert [e.content for e in events[:-1]] == ["Hello"]
        assert events[-1].type == StreamEventType.DONE
        assert a.stream_calls == 0
        assert a.complete_calls == 1

    @pytest.mark.asyncio
    async def test_empty_stream_falls_back(self, make_router, fake_adapter_class) -> None:
        a = fake_adapter_class("a", fragments=[])
        router = make_router([a, fake_adapter_class("b")])

        events = await collect(router.route_stream(CompletionRequest(prompt="hi")))

        assert events[-1].result.provider == "b"

    @pytest.mark.asyncio
    async def test_all_failing_stream_exhausts(self, make_router, fake_adapter_class) -> None:
        adapters = [fake_adapter_class(n, error=ProviderError("x")) for n in ("a", "b")]
        router = make_router(adapters)

        events = await collect(router.route_stream(CompletionRequest(prompt="hi")))

        assert len(events) == 1
        assert events[0].type == StreamEventType.ERROR
        assert events[0].result.error_kind == ErrorKind.ALL_PROVIDERS_EXHAUSTED
        assert events[0].result.provider == "none"

    @pytest.mark.asyncio
    async def test_abort_stream_on_invalid_request(self, make_router, fake_adapter_class) -> None:
        a = fake_adapter_class("a", error=InvalidRequestError("bad"))
        b = fake_adapter_class("b")
        router = make_router([a, b])

        events = await collect(router.route_stream(CompletionRequest(prompt="hi")))

        assert len(events) == 1
        assert events[0].result.error_kind == ErrorKind.INVALID_REQUEST
        assert b.stream_calls == 0

    @pytest.mark.asyncio
    async def test_exactly_one_terminal_event(self, make_router, fake_adapter_class) -> None:
        scenarios = [
            [fake_adapter_class("a", fragments=["x", "y"])],
            [fake_adapter_class("a", error=ProviderError("x"))],
            [fake_adapter_class("a", fragments=["x", "y"], error=ProviderError("x"), error_after=1)],
        ]
        for adapters in scenarios:
            router = make_router(adapters)
            events = await collect(router.route_stream(CompletionRequest(prompt="hi")))
            assert sum(1 for e in events if e.is_terminal) == 1
            assert events[-1].is_terminal

    @pytest.mark.asyncio
    async def test_closing_stream_closes_adapter_stream(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a", fragments=["a", "b", "c", "d"], fragment_delay=0.01)
        router = make_router([a])

        stream = router.route_stream(CompletionRequest(prompt="hi"))
        first = await stream.__anext__()
        await stream.aclose()

        assert first.content == "a"
        assert a.stream_closed is True
        status = router.health.get_status()["a"]
        assert status["failures"] == 0
        assert status["successes"] == 0

    @pytest.mark.asyncio
    async def test_cancelling_consumer_task_closes_adapter_stream(
        self, make_router, fake_adapter_class
    ) -> None:
        a = fake_adapter_class("a", fragments=["a", "b"], fragment_delay=10.0)
        router = make_router([a], stream_timeout=30.0)
        received: list[str] = []

        async def consume() -> None:
            async for event in router.route_stream(CompletionRequest(prompt="hi")):
                received.append(event.content)

        task = asyncio.create_task(consume())
        while not received:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert a.stream_closed is True
        assert router.health.get_status()["a"]["failures"] == 0


@pytest.mark.unit
class TestRouterStatus:
    """Test monitoring helpers."""

    @pytest.mark.asyncio
    async def test_get_status_lists_adapters_in_priority_order(
        self, make_router, fake_adapter_class
    ) -> None:
        router = make_router([fake_adapter_class("a"), fake_adapter_class("b")])

        status = router.get_status()

        assert status["primary_provider"] == "a"
        assert list(status["adapters"]) == ["a", "b"]
        assert status["adapters"]["a"]["priority"] == 1
        assert status["adapters"]["b"]["health"]["state"] == "healthy"

    @pytest.mark.asyncio
    async def test_close_closes_adapters(self, make_router, fake_adapter_class) -> None:
        adapters = [fake_adapter_class("a"), fake_adapter_class("b")]
        router = make_router(adapters)

        await router.close()

        assert all(adapter.closed for adapter in adapters)

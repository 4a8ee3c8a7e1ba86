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

"""Configuration models for provider routing.

Defines per-adapter settings, health thresholds, the failure classification
policy and rate-limit defaults. Default fallback order:
1. Anthropic
2. OpenAI
3. Gemini
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from aigate.core.models import ErrorKind


class FailureAction(Enum):
    """What the router does after an attempt fails.

    Actions:
    - FALLBACK_WITH_PENALTY: Count a health failure, advance to next adapter
    - FALLBACK: Advance to next adapter, health untouched
    - ABORT: Stop the whole chain and surface the error
    """

    FALLBACK_WITH_PENALTY = "fallback_with_penalty"
    FALLBACK = "fallback"
    ABORT = "abort"


@dataclass
class AdapterConfig:
    """Routing configuration for a single adapter.

    Attributes:
        priority: Static rank (lower = tried earlier)
        timeout: Per-attempt budget for non-streaming calls, in seconds
        stream_timeout: Budget for the first fragment and for each idle gap
            between fragments, in seconds
        enabled: Whether the adapter takes part in routing at all
    """

    priority: int = 100
    timeout: float = 30.0
    stream_timeout: float = 60.0
    enabled: bool = True


DEFAULT_ADAPTER_CONFIGS: dict[str, AdapterConfig] = {
    "anthropic": AdapterConfig(priority=1),
    "openai": AdapterConfig(priority=2),
    "gemini": AdapterConfig(priority=3),
}


def get_default_config_for_adapter(name: str) -> AdapterConfig:
    """Get default configuration for an adapter.

    Args:
        name: Adapter name (anthropic, openai, gemini)

    Returns:
        A fresh AdapterConfig; unknown adapters get the lowest priority
    """
    default = DEFAULT_ADAPTER_CONFIGS.get(name.lower())
    if default is None:
        return AdapterConfig(priority=100)
    return AdapterConfig(
        priority=default.priority,
        timeout=default.timeout,
        stream_timeout=default.stream_timeout,
        enabled=default.enabled,
    )


@dataclass
class HealthConfig:
    """Thresholds of the per-adapter health machine.

    Attributes:
        failure_threshold: Consecutive failures before the adapter is disabled
        cooldown_seconds: How long a disabled adapter stays out of rotation
    """

    failure_threshold: int = 3
    cooldown_seconds: float = 60.0


def _default_policy_table() -> dict[ErrorKind, FailureAction]:
    return {
        ErrorKind.RATE_LIMITED: FailureAction.FALLBACK_WITH_PENALTY,
        ErrorKind.TIMEOUT: FailureAction.FALLBACK_WITH_PENALTY,
        ErrorKind.PROVIDER_ERROR: FailureAction.FALLBACK_WITH_PENALTY,
        ErrorKind.CAPABILITY_UNSUPPORTED: FailureAction.FALLBACK,
        ErrorKind.INVALID_REQUEST: FailureAction.ABORT,
    }


@dataclass
class RoutingPolicy:
    """Maps failure kinds to router actions.

    Kinds missing from ``actions`` fall back to ``default_action``.
    """

    actions: dict[ErrorKind, FailureAction] = field(default_factory=_default_policy_table)
    default_action: FailureAction = FailureAction.FALLBACK_WITH_PENALTY

    def action_for(self, kind: ErrorKind) -> FailureAction:
        return self.actions.get(kind, self.default_action)

    def with_overrides(self, overrides: dict[ErrorKind, FailureAction]) -> RoutingPolicy:
        """Return a copy with some kinds reclassified."""
        return RoutingPolicy(
            actions={**self.actions, **overrides}, default_action=self.default_action
        )


@dataclass
class RouterConfig:
    """Configuration for the fallback router.

    Attributes:
        total_timeout: Overall budget for all attempts of one call (None = unbounded)
        policy: Failure classification table
    """

    total_timeout: float | None = 90.0
    policy: RoutingPolicy = field(default_factory=RoutingPolicy)


@dataclass(frozen=True)
class RateLimitConfig:
    """Sliding-window limits for one client.

    Attributes:
        max_requests: Requests allowed inside the window
        window_seconds: Trailing window length in seconds (default 15 minutes)
    """

    max_requests: int = 100
    window_seconds: float = 900.0

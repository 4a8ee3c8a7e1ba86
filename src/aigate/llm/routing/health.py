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

"""Per-adapter health tracking.

Each adapter moves through a three-state machine:

- HEALTHY: Normal operation
- DEGRADED: Recent failures, still eligible for routing
- DISABLED: Skipped by the router until the cool-down expires

State transitions:
    HEALTHY → DEGRADED: On a penalized failure
    DEGRADED → DISABLED: After `failure_threshold` consecutive failures
    DISABLED → HEALTHY: When `cooldown_seconds` have elapsed
    any → HEALTHY: On a success

Adapters registered without credentials are disabled permanently.

References:
    - https://martinfowler.com/bliki/CircuitBreaker.html
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from aigate.core.models import ErrorKind

from .config import HealthConfig

logger = logging.getLogger(__name__)


class HealthState(Enum):
    """Adapter health states."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DISABLED = "disabled"


@dataclass
class AdapterHealth:
    """Mutable health record for one adapter.

    Attributes:
        name: Adapter name
        state: Current state (may be stale until the next read)
        consecutive_failures: Penalized failures since the last success
        disabled_until: Clock value at which a disabled adapter recovers
        permanent: True when the adapter can never recover (no credentials)
        successes: Successful attempts
        failures: Penalized failed attempts
        skipped: Route calls that skipped this adapter while disabled
        last_error_kind: Kind of the most recent penalized failure
    """

    name: str
    state: HealthState = HealthState.HEALTHY
    consecutive_failures: int = 0
    disabled_until: float | None = None
    permanent: bool = False
    successes: int = 0
    failures: int = 0
    skipped: int = 0
    last_error_kind: ErrorKind | None = None


class HealthRegistry:
    """Process-scoped health state for every registered adapter.

    One instance is owned by the gateway and injected into the router, so
    tests get fresh state by building a new registry.

    Example:
        >>> registry = HealthRegistry(HealthConfig(failure_threshold=3))
        >>> registry.register("openai")
        >>> await registry.record_failure("openai", ErrorKind.TIMEOUT)
        >>> registry.state_of("openai")
        <HealthState.DEGRADED: 'degraded'>

    Thread Safety:
        Async-safe (per-adapter asyncio.Lock) but not thread-safe.
    """

    def __init__(
        self,
        config: HealthConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or HealthConfig()
        self._clock = clock
        self._records: dict[str, AdapterHealth] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def register(self, name: str, available: bool = True) -> None:
        """Start tracking an adapter.

        Args:
            name: Adapter name
            available: False disables the adapter permanently
        """
        record = AdapterHealth(name=name)
        if not available:
            record.state = HealthState.DISABLED
            record.disabled_until = math.inf
            record.permanent = True
            logger.warning(f"Adapter '{name}' has no credentials; disabled permanently")
        self._records[name] = record
        self._locks[name] = asyncio.Lock()

    def _record(self, name: str) -> AdapterHealth:
        try:
            return self._records[name]
        except KeyError:
            raise KeyError(f"Adapter '{name}' is not registered") from None

    def _transition_to(self, record: AdapterHealth, new_state: HealthState) -> None:
        old_state = record.state
        if old_state == new_state:
            return
        record.state = new_state
        logger.info(f"Adapter '{record.name}' health: {old_state.value} → {new_state.value}")

    def state_of(self, name: str) -> HealthState:
        """Current state, applying cool-down expiry on read."""
        record = self._record(name)
        if (
            record.state == HealthState.DISABLED
            and not record.permanent
            and record.disabled_until is not None
            and self._clock() >= record.disabled_until
        ):
            record.consecutive_failures = 0
            record.disabled_until = None
            self._transition_to(record, HealthState.HEALTHY)
        return record.state

    def is_eligible(self, name: str) -> bool:
        """True unless the adapter is currently disabled."""
        return self.state_of(name) != HealthState.DISABLED

    def record_skip(self, name: str) -> None:
        self._record(name).skipped += 1

    async def record_success(self, name: str) -> None:
        """Record a successful attempt."""
        record = self._record(name)
        async with self._locks[name]:
            record.successes += 1
            if record.permanent:
                return
            record.consecutive_failures = 0
            record.disabled_until = None
            self._transition_to(record, HealthState.HEALTHY)

    async def record_failure(self, name: str, kind: ErrorKind) -> None:
        """Record a penalized failure.

        Args:
            name: Adapter name
            kind: Failure category (kept for monitoring)
        """
        record = self._record(name)
        async with self._locks[name]:
            record.failures += 1
            record.last_error_kind = kind
            if record.permanent:
                return
            record.consecutive_failures += 1

            if record.consecutive_failures >= self.config.failure_threshold:
                record.disabled_until = self._clock() + self.config.cooldown_seconds
                self._transition_to(record, HealthState.DISABLED)
                logger.warning(
                    f"Adapter '{name}' disabled for {self.config.cooldown_seconds}s after "
                    f"{record.consecutive_failures} consecutive failures"
                )
            else:
                self._transition_to(record, HealthState.DEGRADED)

    def reset(self, name: str | None = None) -> None:
        """Return one adapter (or all of them) to HEALTHY.

        Permanently disabled adapters stay disabled.
        """
        names = [name] if name is not None else list(self._records)
        for adapter_name in names:
            record = self._record(adapter_name)
            if record.permanent:
                continue
            self._records[adapter_name] = AdapterHealth(name=adapter_name)
            logger.info(f"Adapter '{adapter_name}' health reset")

    def get_status(self) -> dict[str, Any]:
        """Get health status for monitoring.

        Returns:
            Mapping of adapter name to its state and counters
        """
        status: dict[str, Any] = {}
        now = self._clock()
        for name, record in self._records.items():
            state = self.state_of(name)
            cooldown_remaining = None
            if state == HealthState.DISABLED and not record.permanent and record.disabled_until:
                cooldown_remaining = max(0.0, record.disabled_until - now)
            status[name] = {
                "state": state.value,
                "consecutive_failures": record.consecutive_failures,
                "permanent": record.permanent,
                "cooldown_remaining": cooldown_remaining,
                "successes": record.successes,
                "failures": record.failures,
                "skipped": record.skipped,
                "last_error_kind": record.last_error_kind.value if record.last_error_kind else None,
            }
        return status

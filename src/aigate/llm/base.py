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

"""Provider adapter interface and shared error taxonomy.

Every upstream (Anthropic, OpenAI, Gemini) is wrapped by an adapter that
satisfies the ``ProviderAdapter`` protocol. Adapters are structurally typed:
there is no common base class, only the capability-set contract below.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from aigate.core.models import CompletionRequest, CompletionResult, ErrorKind

DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7


@dataclass(frozen=True)
class ProviderCapabilities:
    """Static capability flags of an adapter.

    Attributes:
        supports_streaming: Adapter exposes a native incremental stream
        supports_image_input: Adapter can encode image attachments
    """

    supports_streaming: bool = True
    supports_image_input: bool = True


@runtime_checkable
class ProviderAdapter(Protocol):
    """Contract implemented once per upstream provider.

    Attributes:
        name: Stable adapter identifier (e.g. "anthropic")
        model: Default model used when the request has no override
        capabilities: Streaming / image support flags
        available: False when credentials are missing
    """

    name: str
    model: str
    capabilities: ProviderCapabilities

    @property
    def available(self) -> bool: ...

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Generate one aggregated completion.

        Raises:
            GatewayError: Any failure, already mapped onto the shared taxonomy
        """
        ...

    def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        """Generate text fragments in arrival order.

        The returned iterator is finite and cannot be restarted. Closing it
        early must cancel the underlying network call.
        """
        ...

    async def close(self) -> None: ...


class GatewayError(Exception):
    """Base exception for gateway errors.

    Attributes:
        kind: Taxonomy category used by the routing policy
    """

    kind: ErrorKind = ErrorKind.PROVIDER_ERROR


class InvalidRequestError(GatewayError):
    """Raised when the caller's payload is malformed."""

    kind = ErrorKind.INVALID_REQUEST


class CapabilityUnsupportedError(GatewayError):
    """Raised when an adapter cannot serve the request shape."""

    kind = ErrorKind.CAPABILITY_UNSUPPORTED


class ProviderRateLimitError(GatewayError):
    """Raised when the provider throttles the request."""

    kind = ErrorKind.RATE_LIMITED


class ProviderTimeoutError(GatewayError):
    """Raised when the provider does not answer within budget."""

    kind = ErrorKind.TIMEOUT


class ProviderError(GatewayError):
    """Raised when the provider returns an application error."""

    kind = ErrorKind.PROVIDER_ERROR


class ProviderAuthenticationError(ProviderError):
    """Raised when the provider rejects the credentials."""

    pass


class ProviderUnavailableError(ProviderError):
    """Raised when an adapter without credentials is called."""

    pass


class LocalRateLimitExceededError(GatewayError):
    """Raised when the gateway's own rate limiter rejects a call.

    Attributes:
        reset_at: Epoch seconds at which the client regains a slot
    """

    kind = ErrorKind.LOCAL_RATE_LIMIT_EXCEEDED

    def __init__(self, message: str, reset_at: float) -> None:
        super().__init__(message)
        self.reset_at = reset_at


def ensure_supported(adapter: ProviderAdapter, request: CompletionRequest) -> None:
    """Fail fast when the adapter cannot serve this request.

    Raises:
        ProviderUnavailableError: If the adapter has no credentials
        CapabilityUnsupportedError: If the request carries an image the
            adapter cannot encode
    """
    if not adapter.available:
        raise ProviderUnavailableError(f"Provider '{adapter.name}' is not configured")
    if request.has_image and not adapter.capabilities.supports_image_input:
        raise CapabilityUnsupportedError(
            f"Provider '{adapter.name}' does not support image input"
        )


def resolve_generation_params(
    request: CompletionRequest,
    default_max_tokens: int = DEFAULT_MAX_TOKENS,
    default_temperature: float = DEFAULT_TEMPERATURE,
) -> tuple[int, float]:
    """Return ``(max_tokens, temperature)`` with defaults applied."""
    max_tokens = request.max_tokens if request.max_tokens is not None else default_max_tokens
    temperature = (
        request.temperature if request.temperature is not None else default_temperature
    )
    return max_tokens, temperature

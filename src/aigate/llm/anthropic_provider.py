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

"""Anthropic (Claude) provider adapter.

Wraps the official Anthropic Python SDK and maps the unified request onto
the Messages API (``system`` parameter, base64 image blocks).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import anthropic

from aigate.core.models import ChatMessage, CompletionRequest, CompletionResult

from .base import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    GatewayError,
    InvalidRequestError,
    ProviderAuthenticationError,
    ProviderCapabilities,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ensure_supported,
    resolve_generation_params,
)

# Messages API rejects temperatures above 1.0
MAX_TEMPERATURE = 1.0

# Retries are the router's decision, never the SDK's
MAX_RETRIES = 0


class AnthropicAdapter:
    """Anthropic Claude adapter.

    Example:
        >>> adapter = AnthropicAdapter(api_key="sk-ant-...")
        >>> result = await adapter.complete(CompletionRequest(prompt="Hello"))
        >>> result.provider
        'anthropic'
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None,
        model: str = "claude-sonnet-4-5-20250929",
        timeout: float = 30.0,
        capabilities: ProviderCapabilities | None = None,
        default_max_tokens: int = DEFAULT_MAX_TOKENS,
        default_temperature: float = DEFAULT_TEMPERATURE,
        http_client: Any = None,
    ):
        """Initialize Anthropic adapter.

        Args:
            api_key: Anthropic API key; None leaves the adapter unavailable
            model: Default model name
            timeout: SDK-level request timeout in seconds
            capabilities: Capability overrides (defaults: streaming + images)
            default_max_tokens: Max tokens when the request sets none
            default_temperature: Temperature when the request sets none
            http_client: Optional httpx2.AsyncClient handed to the SDK
        """
        self.model = model
        self.timeout = timeout
        self.capabilities = capabilities or ProviderCapabilities()
        self.default_max_tokens = default_max_tokens
        self.default_temperature = default_temperature
        self.client = (
            anthropic.AsyncAnthropic(
                api_key=api_key,
                timeout=timeout,
                max_retries=MAX_RETRIES,
                http_client=http_client,
            )
            if api_key
            else None
        )

    @property
    def available(self) -> bool:
        return self.client is not None

    @staticmethod
    def _encode_message(message: ChatMessage) -> dict[str, Any]:
        if message.image is None:
            return {"role": message.role.value, "content": message.text}

        content: list[dict[str, Any]] = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": message.image.mime_type,
                    "data": message.image.data,
                },
            }
        ]
        if message.text:
            content.append({"type": "text", "text": message.text})
        return {"role": message.role.value, "content": content}

    def _build_params(self, request: CompletionRequest) -> dict[str, Any]:
        max_tokens, temperature = resolve_generation_params(
            request, self.default_max_tokens, self.default_temperature
        )
        params: dict[str, Any] = {
            "model": request.preferred_model or self.model,
            "max_tokens": max_tokens,
            "messages": [self._encode_message(m) for m in request.conversation()],
            # The 1.x SDK no longer takes temperature as a keyword
            "extra_body": {"temperature": min(temperature, MAX_TEMPERATURE)},
        }
        if request.system_prompt:
            params["system"] = request.system_prompt
        return params

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Generate a single completion from Claude.

        Raises:
            ProviderAuthenticationError: If API key is invalid
            ProviderRateLimitError: If rate limit is exceeded
            ProviderTimeoutError: If request times out
            InvalidRequestError: If the API rejects the payload
            ProviderError: For other API errors
        """
        ensure_supported(self, request)
        assert self.client is not None
        params = self._build_params(request)

        try:
            response = await self.client.messages.create(**params)
        except anthropic.APIError as e:
            raise self._map_error(e) from e

        text = "".join(
            block.text for block in response.content or [] if getattr(block, "type", "") == "text"
        )
        if not text:
            raise ProviderError("Anthropic returned empty response")

        return CompletionResult(content=text, provider=self.name, model=params["model"])

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        """Stream text fragments from Claude."""
        ensure_supported(self, request)
        assert self.client is not None
        params = self._build_params(request)

        try:
            async with self.client.messages.stream(**params) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except anthropic.APIError as e:
            raise self._map_error(e) from e

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()

    @staticmethod
    def _map_error(e: anthropic.APIError) -> GatewayError:
        if isinstance(e, anthropic.AuthenticationError):
            return ProviderAuthenticationError(f"Anthropic authentication failed: {e}")
        if isinstance(e, anthropic.RateLimitError):
            return ProviderRateLimitError(f"Anthropic rate limit exceeded: {e}")
        if isinstance(e, anthropic.APITimeoutError):
            return ProviderTimeoutError(f"Anthropic request timed out: {e}")
        if isinstance(e, (anthropic.BadRequestError, anthropic.UnprocessableEntityError)):
            return InvalidRequestError(f"Anthropic rejected the request: {e}")
        return ProviderError(f"Anthropic API error: {e}")

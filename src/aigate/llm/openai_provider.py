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

"""OpenAI provider adapter.

Maps the unified request onto Chat Completions: the system prompt becomes the
first message and images are sent as ``image_url`` data URLs.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import openai

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

# Retries are the router's decision, never the SDK's
MAX_RETRIES = 0


class OpenAIAdapter:
    """OpenAI chat completions adapter.

    Uses the official OpenAI Python SDK.

    Example:
        >>> adapter = OpenAIAdapter(api_key="sk-...", model="gpt-4-turbo")
        >>> result = await adapter.complete(CompletionRequest(prompt="Hello"))
    """

    name = "openai"

    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4-turbo",
        timeout: float = 30.0,
        capabilities: ProviderCapabilities | None = None,
        default_max_tokens: int = DEFAULT_MAX_TOKENS,
        default_temperature: float = DEFAULT_TEMPERATURE,
        http_client: Any = None,
    ):
        """Initialize OpenAI adapter.

        Args:
            api_key: OpenAI API key; None leaves the adapter unavailable
            model: Default model name (e.g., "gpt-4-turbo", "gpt-4o")
            timeout: SDK-level request timeout in seconds
            capabilities: Capability overrides
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
            openai.AsyncOpenAI(
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

        content: list[dict[str, Any]] = []
        if message.text:
            content.append({"type": "text", "text": message.text})
        content.append({"type": "image_url", "image_url": {"url": message.image.to_data_url()}})
        return {"role": message.role.value, "content": content}

    def _build_params(self, request: CompletionRequest) -> dict[str, Any]:
        max_tokens, temperature = resolve_generation_params(
            request, self.default_max_tokens, self.default_temperature
        )
        messages: list[dict[str, Any]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.extend(self._encode_message(m) for m in request.conversation())
        return {
            "model": request.preferred_model or self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Generate a single completion from OpenAI.

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
            response = await self.client.chat.completions.create(**params)
        except openai.APIError as e:
            raise self._map_error(e) from e

        if not response.choices:
            raise ProviderError("OpenAI returned no choices")
        content = response.choices[0].message.content
        if not content:
            raise ProviderError("OpenAI returned empty response")

        return CompletionResult(content=content, provider=self.name, model=params["model"])

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        """Stream text fragments from OpenAI."""
        ensure_supported(self, request)
        assert self.client is not None
        params = self._build_params(request)

        try:
            stream = await self.client.chat.completions.create(**params, stream=True)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.APIError as e:
            raise self._map_error(e) from e

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()

    @staticmethod
    def _map_error(e: openai.APIError) -> GatewayError:
        if isinstance(e, openai.AuthenticationError):
            return ProviderAuthenticationError(f"OpenAI authentication failed: {e}")
        if isinstance(e, openai.RateLimitError):
            return ProviderRateLimitError(f"OpenAI rate limit exceeded: {e}")
        if isinstance(e, openai.APITimeoutError):
            return ProviderTimeoutError(f"OpenAI request timed out: {e}")
        if isinstance(e, (openai.BadRequestError, openai.UnprocessableEntityError)):
            return InvalidRequestError(f"OpenAI rejected the request: {e}")
        return ProviderError(f"OpenAI API error: {e}")

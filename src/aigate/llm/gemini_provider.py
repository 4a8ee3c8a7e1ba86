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

"""Google Gemini provider adapter.

Talks to the Generative Language REST API via aiohttp for lightweight async
operation without the Google SDK.

Supported models:
- gemini-2.0-flash (default, fast and capable)
- gemini-2.0-flash-lite (fastest, cost-effective)
- gemini-1.5-pro (most capable)
- gemini-1.5-flash (balanced)
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from aigate.core.models import ChatMessage, CompletionRequest, CompletionResult, Role

from .base import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    InvalidRequestError,
    ProviderAuthenticationError,
    ProviderCapabilities,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ensure_supported,
    resolve_generation_params,
)

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GeminiAdapter:
    """Google Gemini adapter.

    Example:
        >>> adapter = GeminiAdapter(api_key="your-api-key", model="gemini-2.0-flash")
        >>> result = await adapter.complete(CompletionRequest(prompt="Hello"))
        >>> await adapter.close()
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-2.0-flash",
        timeout: float = 60.0,
        capabilities: ProviderCapabilities | None = None,
        default_max_tokens: int = DEFAULT_MAX_TOKENS,
        default_temperature: float = DEFAULT_TEMPERATURE,
        api_base: str = GEMINI_API_BASE,
    ):
        """Initialize Gemini adapter.

        Args:
            api_key: Google AI API key; None leaves the adapter unavailable
            model: Default model name
            timeout: Socket read timeout in seconds
            capabilities: Capability overrides
            default_max_tokens: Max tokens when the request sets none
            default_temperature: Temperature when the request sets none
            api_base: REST endpoint root
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.capabilities = capabilities or ProviderCapabilities()
        self.default_max_tokens = default_max_tokens
        self.default_temperature = default_temperature
        self.api_base = api_base.rstrip("/")
        self._session: aiohttp.ClientSession | None = None

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None, sock_read=self.timeout),
                headers={
                    "Content-Type": "application/json",
                    "x-goog-api-key": self.api_key or "",
                },
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def _encode_message(message: ChatMessage) -> dict[str, Any]:
        parts: list[dict[str, Any]] = []
        if message.text:
            parts.append({"text": message.text})
        if message.image is not None:
            parts.append(
                {"inlineData": {"mimeType": message.image.mime_type, "data": message.image.data}}
            )
        role = "model" if message.role == Role.ASSISTANT else "user"
        return {"role": role, "parts": parts}

    def _build_request_body(self, request: CompletionRequest) -> dict[str, Any]:
        """Build request body for the Gemini API.

        Args:
            request: Unified completion request

        Returns:
            Request body dictionary
        """
        max_tokens, temperature = resolve_generation_params(
            request, self.default_max_tokens, self.default_temperature
        )
        body: dict[str, Any] = {
            "contents": [self._encode_message(m) for m in request.conversation()],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
                "topP": 0.95,
                "topK": 40,
            },
        }
        if request.system_prompt:
            body["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        return body

    def _url(self, model: str, method: str) -> str:
        return f"{self.api_base}/models/{model}:{method}"

    @staticmethod
    async def _raise_for_status(response: aiohttp.ClientResponse) -> None:
        if response.status < 400:
            return
        error_text = await response.text()
        if response.status in (401, 403):
            raise ProviderAuthenticationError(
                f"Gemini authentication failed ({response.status}): {error_text}"
            )
        if response.status == 429:
            raise ProviderRateLimitError("Gemini rate limit exceeded")
        if response.status == 400:
            raise InvalidRequestError(f"Gemini rejected the request: {error_text}")
        raise ProviderError(f"Gemini API error ({response.status}): {error_text}")

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        if "error" in data:
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise ProviderError(f"Gemini API error: {message}")

        candidates = data.get("candidates", [])
        if not candidates:
            feedback = data.get("promptFeedback", {})
            if feedback.get("blockReason"):
                raise ProviderError(f"Gemini blocked request: {feedback['blockReason']}")
            return ""

        parts = candidates[0].get("content", {}).get("parts", [])
        return "".join(part.get("text", "") for part in parts)

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Generate a single completion from Gemini.

        Raises:
            ProviderAuthenticationError: If API key is invalid
            ProviderRateLimitError: If rate limit is exceeded
            ProviderTimeoutError: If request times out
            InvalidRequestError: If the API rejects the payload
            ProviderError: For other API errors
        """
        ensure_supported(self, request)
        model = request.preferred_model or self.model
        body = self._build_request_body(request)
        session = await self._get_session()

        try:
            async with session.post(self._url(model, "generateContent"), json=body) as response:
                await self._raise_for_status(response)
                data = await response.json()
        except TimeoutError as e:
            raise ProviderTimeoutError(f"Gemini request timed out: {e}") from e
        except aiohttp.ClientError as e:
            raise ProviderError(f"Gemini connection error: {e}") from e

        text = self._extract_text(data)
        if not text:
            raise ProviderError("Gemini returned empty response")

        return CompletionResult(content=text, provider=self.name, model=model)

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        """Stream text fragments from Gemini.

        The endpoint answers with a JSON array whose elements arrive
        incrementally; each element is decoded as soon as it is complete.
        """
        ensure_supported(self, request)
        model = request.preferred_model or self.model
        body = self._build_request_body(request)
        session = await self._get_session()

        try:
            async with session.post(
                self._url(model, "streamGenerateContent"), json=body
            ) as response:
                await self._raise_for_status(response)

                decoder = codecs.getincrementaldecoder("utf-8")()
                buffer = ""
                async for chunk in response.content.iter_any():
                    buffer += decoder.decode(chunk)
                    objects, buffer = self._drain_objects(buffer)
                    for data in objects:
                        text = self._extract_text(data)
                        if text:
                            yield text

        except TimeoutError as e:
            raise ProviderTimeoutError(f"Gemini request timed out: {e}") from e
        except aiohttp.ClientError as e:
            raise ProviderError(f"Gemini connection error: {e}") from e

    def _drain_objects(self, buffer: str) -> tuple[list[dict[str, Any]], str]:
        """Split complete JSON objects off the front of ``buffer``.

        Returns:
            Decoded objects in arrival order and the unconsumed remainder
        """
        drained: list[dict[str, Any]] = []
        while True:
            clean = buffer.lstrip("[,\n\r ")
            if not clean.startswith("{"):
                break
            end = self._find_json_end(clean)
            if end == -1:
                break
            try:
                data = json.loads(clean[:end])
            except json.JSONDecodeError as e:
                raise ProviderError(f"Failed to parse Gemini stream chunk: {e}") from e
            buffer = clean[end:]
            drained.append(data)
        return drained, buffer

    def _find_json_end(self, s: str) -> int:
        """Find the end of a JSON object in a string.

        Args:
            s: String starting with '{'

        Returns:
            Index after the closing '}', or -1 if not found
        """
        if not s.startswith("{"):
            return -1

        depth = 0
        in_string = False
        escape_next = False

        for i, c in enumerate(s):
            if escape_next:
                escape_next = False
                continue
            if c == "\\":
                escape_next = True
                continue
            if c == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    return i + 1

        return -1

    def __del__(self) -> None:
        if self._session and not self._session.closed:
            logger.warning("GeminiAdapter session not properly closed. Use 'await adapter.close()'")

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

"""Core data models for the aigate request/response contract.

This module defines the provider-neutral structures shared by every layer:
- Chat messages and image attachments
- Completion requests (immutable for the lifetime of a call)
- Completion results and the error kinds callers can branch on
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_IMAGE_MIME_TYPE = "image/png"


class Role(str, Enum):
    """Conversation turn author."""

    USER = "user"
    ASSISTANT = "assistant"


class ErrorKind(str, Enum):
    """Caller-visible failure categories.

    The router decides fallback vs. abort from these values:
    - InvalidRequest: malformed payload, never retried
    - CapabilityUnsupported: adapter can't serve this request shape, no health penalty
    - RateLimited / Timeout / ProviderError: fallback-eligible, health penalty
    - AllProvidersExhausted: every eligible adapter failed
    - LocalRateLimitExceeded: rejected by the gateway's own limiter
    """

    INVALID_REQUEST = "InvalidRequest"
    CAPABILITY_UNSUPPORTED = "CapabilityUnsupported"
    RATE_LIMITED = "RateLimited"
    TIMEOUT = "Timeout"
    PROVIDER_ERROR = "ProviderError"
    ALL_PROVIDERS_EXHAUSTED = "AllProvidersExhausted"
    LOCAL_RATE_LIMIT_EXCEEDED = "LocalRateLimitExceeded"


class ImageAttachment(BaseModel):
    """Base64 image payload attached to a user turn."""

    data: str = Field(..., description="Base64-encoded image bytes", min_length=1)
    mime_type: str = Field(default=DEFAULT_IMAGE_MIME_TYPE, description="Image MIME type")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_data_url(cls, value: str) -> ImageAttachment:
        """Build an attachment from a data URL or a bare base64 string.

        Args:
            value: ``data:image/jpeg;base64,...`` or raw base64 data

        Returns:
            Parsed attachment; the MIME type falls back to image/png

        Example:
            >>> ImageAttachment.from_data_url("data:image/jpeg;base64,AAAA").mime_type
            'image/jpeg'
        """
        if not value.startswith("data:") or "," not in value:
            return cls(data=value)

        header, data = value.split(",", 1)
        mime_type = header[len("data:") :].split(";", 1)[0] or DEFAULT_IMAGE_MIME_TYPE
        return cls(data=data, mime_type=mime_type)

    def to_data_url(self) -> str:
        """Render as a ``data:`` URL."""
        return f"data:{self.mime_type};base64,{self.data}"


class ChatMessage(BaseModel):
    """A single prior turn of a conversation."""

    role: Role = Field(..., description="Who authored the turn")
    text: str = Field(default="", description="Turn text")
    image: ImageAttachment | None = Field(default=None, description="Optional image for the turn")

    model_config = ConfigDict(frozen=True)


class CompletionRequest(BaseModel):
    """A logical generate/chat request, independent of any provider.

    Either ``prompt`` or ``history`` must be non-empty. That check is left to
    the router so it can answer with an InvalidRequest result instead of
    raising at construction time.
    """

    prompt: str = Field(default="", description="Current user prompt")
    history: tuple[ChatMessage, ...] = Field(
        default=(), description="Prior conversation turns, oldest first"
    )
    system_prompt: str | None = Field(default=None, description="System instruction")
    image: ImageAttachment | None = Field(
        default=None, description="Image attached to the current prompt"
    )
    max_tokens: int | None = Field(
        default=None, description="Maximum tokens to generate (provider default if unset)", gt=0
    )
    temperature: float | None = Field(
        default=None, description="Sampling temperature (provider default if unset)", ge=0.0, le=2.0
    )
    preferred_provider: str | None = Field(
        default=None, description="Adapter to try first when it is healthy"
    )
    preferred_model: str | None = Field(
        default=None, description="Model override for the adapter that serves the call"
    )

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "prompt": "Summarise this ticket in one sentence",
                "system_prompt": "You are a helpful support assistant.",
                "max_tokens": 256,
                "temperature": 0.2,
            }
        },
    )

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to send to a provider."""
        return not self.prompt.strip() and not self.history

    @property
    def has_image(self) -> bool:
        """True when any turn of the request carries an image."""
        return self.image is not None or any(m.image is not None for m in self.history)

    def conversation(self) -> list[ChatMessage]:
        """Fold history and the current prompt into one ordered turn list."""
        turns = list(self.history)
        if self.prompt.strip() or self.image is not None:
            turns.append(ChatMessage(role=Role.USER, text=self.prompt, image=self.image))
        return turns


class CompletionResult(BaseModel):
    """Outcome of a completion call.

    ``error_kind`` is set if and only if ``success`` is False.
    """

    content: str = Field(default="", description="Generated text (may be empty on failure)")
    provider: str = Field(..., description="Adapter that produced the result, or 'none'")
    model: str = Field(default="", description="Model reported by the adapter")
    success: bool = Field(default=True, description="Whether the call succeeded")
    error_kind: ErrorKind | None = Field(default=None, description="Failure category")
    error: str | None = Field(default=None, description="Human-readable failure detail")
    reset_at: float | None = Field(
        default=None, description="Epoch seconds when a local rate limit resets"
    )
    attempts: list[str] = Field(
        default_factory=list, description="Adapters attempted, in order"
    )

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        error: str,
        provider: str = "none",
        model: str = "",
        **kwargs: object,
    ) -> CompletionResult:
        """Build a failed result."""
        return cls(
            provider=provider,
            model=model,
            success=False,
            error_kind=kind,
            error=error,
            **kwargs,  # type: ignore[arg-type]
        )

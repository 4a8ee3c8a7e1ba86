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

"""FastAPI server for the aigate HTTP surface.

Routes:
- POST /completions: JSON completion with provider fallback
- POST /completions/stream: Server-Sent-Events stream (bearer token required)
- GET /health: adapter health and rate-limiter status
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing, asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from aigate import __version__
from aigate.core.models import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    ErrorKind,
    ImageAttachment,
    Role,
)
from aigate.llm.base import LocalRateLimitExceededError
from aigate.llm.routing import Gateway, RateLimitDecision
from aigate.llm.routing.multiplexer import StreamEvent, encode_sse, sse_stream
from aigate.utils.config import Settings, get_settings

from aigate.api.auth import AuthenticationError, BearerTokenAuthenticator, client_identity

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessagePayload(_CamelModel):
    """One prior conversation turn."""

    role: str = Field(..., description="'user' or 'assistant' (any other value is the model)")
    content: str = Field(
        default="",
        description="Turn text",
        validation_alias=AliasChoices("content", "text"),
    )
    image: str | None = Field(default=None, description="Data URL or base64 image")

    def to_message(self) -> ChatMessage:
        role = Role.USER if self.role.lower() == "user" else Role.ASSISTANT
        image = ImageAttachment.from_data_url(self.image) if self.image else None
        return ChatMessage(role=role, text=self.content, image=image)


class CompletionPayload(_CamelModel):
    """Request body shared by both completion routes."""

    prompt: str = Field(default="", description="Current user prompt")
    history: list[MessagePayload] = Field(default_factory=list, description="Prior turns")
    system_prompt: str | None = Field(default=None, description="System instruction")
    image: str | None = Field(default=None, description="Data URL or base64 image")
    max_tokens: int | None = Field(default=None, description="Maximum tokens", gt=0)
    temperature: float | None = Field(default=None, description="Temperature", ge=0.0, le=2.0)
    provider: str | None = Field(default=None, description="Preferred provider")
    model: str | None = Field(default=None, description="Preferred model")

    def to_request(self) -> CompletionRequest:
        return CompletionRequest(
            prompt=self.prompt,
            history=tuple(m.to_message() for m in self.history),
            system_prompt=self.system_prompt,
            image=ImageAttachment.from_data_url(self.image) if self.image else None,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            preferred_provider=self.provider,
            preferred_model=self.model,
        )


class CompletionResponse(_CamelModel):
    """Response body of POST /completions."""

    text: str = Field(default="", description="Generated text")
    model: str = Field(default="", description="Model that produced the text")
    provider: str = Field(..., description="Adapter that produced the text, or 'none'")
    success: bool = Field(..., description="Whether the call succeeded")
    error_kind: ErrorKind | None = Field(default=None, description="Failure category")
    error: str | None = Field(default=None, description="Failure detail")
    attempts: list[str] = Field(default_factory=list, description="Adapters attempted")

    @classmethod
    def from_result(cls, result: CompletionResult) -> CompletionResponse:
        return cls(
            text=result.content,
            model=result.model,
            provider=result.provider,
            success=result.success,
            error_kind=result.error_kind,
            error=result.error,
            attempts=result.attempts,
        )


def _rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(int(decision.reset_at * 1000)),
    }


def _rate_limited_response(exc: LocalRateLimitExceededError) -> JSONResponse:
    retry_after = max(0, math.ceil(exc.reset_at - time.time()))
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too Many Requests",
            "message": str(exc),
            "errorKind": exc.kind.value,
            "resetAt": int(exc.reset_at * 1000),
            "retryAfter": retry_after,
        },
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(exc.reset_at * 1000)),
        },
    )


def _invalid_response(message: str) -> JSONResponse:
    body = CompletionResponse.from_result(
        CompletionResult.failure(ErrorKind.INVALID_REQUEST, message)
    )
    return JSONResponse(status_code=400, content=body.model_dump(by_alias=True, mode="json"))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the gateway on startup and release it on shutdown."""
    logger.info("Initializing aigate gateway...")

    if getattr(app.state, "gateway", None) is None:
        app.state.gateway = Gateway.from_settings(app.state.settings)

    gateway: Gateway = app.state.gateway
    if not gateway.router.get_available_providers():
        logger.warning(
            "No provider API keys configured. Completion routes will report "
            "AllProvidersExhausted until AIGATE_*_API_KEY is set."
        )

    await gateway.start()
    logger.info("✅ aigate server ready")

    yield

    logger.info("Shutting down aigate server...")
    await gateway.close()


def create_app(
    gateway: Gateway | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create FastAPI application.

    Args:
        gateway: Pre-built gateway (built from settings at startup if None)
        settings: Application settings (global settings if None)

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="aigate",
        description="AI provider routing and streaming gateway",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings or get_settings()
    app.state.gateway = gateway
    app.state.authenticator = BearerTokenAuthenticator(app.state.settings.api_tokens)

    _configure_middleware(app)
    _register_exception_handlers(app)
    _register_routes(app)

    return app


def _configure_middleware(app: FastAPI) -> None:
    """Configure CORS middleware."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return _invalid_response(f"Malformed request body: {errors}")


def _register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Report adapter health and limiter status."""
        return _handle_health(app)

    @app.post("/completions", response_model=CompletionResponse)
    async def completions(
        payload: CompletionPayload, client_id: str = Depends(caller_identity)
    ) -> JSONResponse:
        """Complete a prompt with automatic provider fallback."""
        return await _handle_completion(app, payload, client_id)

    # The body is parsed inside the handler so the credential check runs first
    @app.post(
        "/completions/stream",
        response_model=None,
        openapi_extra={
            "requestBody": {
                "required": True,
                "content": {
                    "application/json": {
                        "schema": {"$ref": "#/components/schemas/CompletionPayload"}
                    }
                },
            }
        },
    )
    async def completions_stream(
        request: Request, client_id: str = Depends(authenticated_identity)
    ) -> StreamingResponse | JSONResponse:
        """Stream a completion as Server-Sent Events."""
        payload = await _parse_payload(request)
        return await _handle_stream(app, payload, client_id)


def _handle_health(app: FastAPI) -> dict[str, Any]:
    gateway: Gateway = app.state.gateway
    status = gateway.get_status()
    primary = status["router"]["primary_provider"]
    return {
        "status": "ok" if primary else "unavailable",
        "version": __version__,
        "primaryProvider": primary,
        "providers": status["router"]["adapters"],
        "rateLimiter": status["rate_limiter"],
    }


def _identify(request: Request, required: bool) -> str:
    settings: Settings = request.app.state.settings
    try:
        return client_identity(
            request,
            request.app.state.authenticator,
            required=required,
            trust_forwarded_for=settings.trust_forwarded_for,
        )
    except AuthenticationError as e:
        raise HTTPException(
            status_code=401, detail=str(e), headers={"WWW-Authenticate": "Bearer"}
        ) from None


def caller_identity(request: Request) -> str:
    """Rate-limit key for the caller; a bearer token is optional but must be valid."""
    return _identify(request, required=False)


def authenticated_identity(request: Request) -> str:
    """Rate-limit key for a caller that must present a valid bearer token."""
    return _identify(request, required=True)


async def _parse_payload(request: Request) -> CompletionPayload:
    try:
        return CompletionPayload.model_validate_json(await request.body())
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False)) from None


async def _handle_completion(
    app: FastAPI, payload: CompletionPayload, client_id: str
) -> JSONResponse:
    """Handle a non-streaming completion."""
    completion_request = payload.to_request()
    if completion_request.is_empty:
        return _invalid_response("Request must include a prompt or history")

    gateway: Gateway = app.state.gateway
    try:
        decision = await gateway.admit(client_id)
    except LocalRateLimitExceededError as e:
        return _rate_limited_response(e)

    try:
        result = await gateway.complete(client_id, completion_request, admitted=decision)
    except Exception:
        logger.error("Completion failed for client '%s'", client_id, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="Completion failed due to an internal error. Please try again.",
        ) from None

    status_code = 400 if result.error_kind == ErrorKind.INVALID_REQUEST else 200
    body = CompletionResponse.from_result(result)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, mode="json"),
        headers=_rate_limit_headers(decision),
    )


async def _guarded_frames(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    """SSE frames for ``events``; internal faults end the stream with an error frame."""
    async with aclosing(sse_stream(events)) as frames:
        try:
            async for frame in frames:
                yield frame
        except Exception:
            logger.error("Stream failed with an internal error", exc_info=True)
            yield encode_sse(
                StreamEvent.error(
                    CompletionResult.failure(ErrorKind.PROVIDER_ERROR, "Internal stream error")
                )
            )


async def _handle_stream(
    app: FastAPI, payload: CompletionPayload, client_id: str
) -> StreamingResponse | JSONResponse:
    """Handle a streaming completion."""
    completion_request = payload.to_request()
    if completion_request.is_empty:
        return _invalid_response("Request must include a prompt or history")

    gateway: Gateway = app.state.gateway
    try:
        decision = await gateway.admit(client_id)
    except LocalRateLimitExceededError as e:
        return _rate_limited_response(e)

    events = await gateway.stream(client_id, completion_request, admitted=decision)
    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
        **_rate_limit_headers(decision),
    }
    return StreamingResponse(
        _guarded_frames(events), media_type="text/event-stream", headers=headers
    )


def run_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False) -> None:
    """Run the HTTP server.

    Args:
        host: Host to bind to (default: 127.0.0.1)
        port: Port to bind to (default: 8000)
        reload: Enable auto-reload for development
    """
    import uvicorn

    logger.info(f"Starting aigate server on http://{host}:{port}")

    uvicorn.run(
        "aigate.api.server:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )

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

"""Streaming multiplexer.

Turns an adapter's native fragment stream (or the single aggregate result of
a non-streaming adapter) into a uniform sequence of stream events that always
ends with exactly one terminal event, and encodes events as Server-Sent Events
at the transport boundary.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum

from aigate.core.models import CompletionRequest, CompletionResult
from aigate.llm.base import ProviderAdapter, ProviderTimeoutError

SSE_DONE = "data: [DONE]\n\n"


class StreamEventType(Enum):
    """Kinds of stream events."""

    FRAGMENT = "fragment"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class StreamEvent:
    """One element of a routed stream.

    Attributes:
        type: Fragment, or one of the two terminal kinds
        content: Fragment text (empty for terminal events)
        result: Final aggregated result, set on DONE and ERROR
    """

    type: StreamEventType
    content: str = ""
    result: CompletionResult | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type != StreamEventType.FRAGMENT

    @classmethod
    def fragment(cls, text: str) -> StreamEvent:
        return cls(type=StreamEventType.FRAGMENT, content=text)

    @classmethod
    def done(cls, result: CompletionResult) -> StreamEvent:
        return cls(type=StreamEventType.DONE, result=result)

    @classmethod
    def error(cls, result: CompletionResult) -> StreamEvent:
        return cls(type=StreamEventType.ERROR, result=result)


async def _single_fragment(
    adapter: ProviderAdapter, request: CompletionRequest
) -> AsyncIterator[str]:
    result = await adapter.complete(request)
    if result.content:
        yield result.content


def adapter_fragments(adapter: ProviderAdapter, request: CompletionRequest) -> AsyncIterator[str]:
    """Fragment source for ``adapter``.

    Streaming adapters contribute their native stream; the rest contribute
    one synthetic fragment holding the whole completion.
    """
    if adapter.capabilities.supports_streaming:
        return adapter.stream(request)
    return _single_fragment(adapter, request)


async def next_fragment(fragments: AsyncIterator[str], timeout: float | None) -> str:
    """Pull the next fragment, bounded by ``timeout`` seconds.

    Raises:
        StopAsyncIteration: When the source is exhausted
        ProviderTimeoutError: When no fragment arrives in time
    """
    try:
        return await asyncio.wait_for(fragments.__anext__(), timeout=timeout)
    except TimeoutError as e:
        raise ProviderTimeoutError(f"No stream fragment within {timeout}s") from e


async def close_fragments(fragments: AsyncIterator[str]) -> None:
    """Close an async generator, cancelling whatever network call it holds."""
    aclose = getattr(fragments, "aclose", None)
    if aclose is not None:
        await aclose()


def encode_sse(event: StreamEvent) -> str:
    """Encode one event as a Server-Sent-Events frame.

    - fragment: ``data: {"content": "..."}``
    - done: ``data: [DONE]``
    - error: ``event: error`` with errorKind / error / provider
    """
    if event.type == StreamEventType.FRAGMENT:
        return f"data: {json.dumps({'content': event.content})}\n\n"
    if event.type == StreamEventType.DONE:
        return SSE_DONE

    result = event.result
    payload = {
        "error": result.error if result else "Stream failed",
        "errorKind": result.error_kind.value if result and result.error_kind else None,
        "provider": result.provider if result else "none",
    }
    return f"event: error\ndata: {json.dumps(payload)}\n\n"


async def sse_stream(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    """Encode an event stream, closing the source when the consumer stops."""
    try:
        async for event in events:
            yield encode_sse(event)
            if event.is_terminal:
                break
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()

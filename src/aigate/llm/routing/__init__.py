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

"""Provider routing: fallback, health, rate limiting and streaming.

Example:
    >>> from aigate.llm.routing import Gateway
    >>> from aigate.utils.config import get_settings
    >>>
    >>> gateway = Gateway.from_settings(get_settings())
    >>> result = await gateway.complete("ip:127.0.0.1", CompletionRequest(prompt="Hello"))
"""

from .config import (
    AdapterConfig,
    FailureAction,
    HealthConfig,
    RateLimitConfig,
    RouterConfig,
    RoutingPolicy,
)
from .gateway import Gateway
from .health import HealthRegistry, HealthState
from .multiplexer import StreamEvent, StreamEventType, encode_sse, sse_stream
from .rate_limiter import RateLimitDecision, SlidingWindowRateLimiter
from .router import FallbackRouter

__all__ = [
    "AdapterConfig",
    "FailureAction",
    "HealthConfig",
    "RateLimitConfig",
    "RouterConfig",
    "RoutingPolicy",
    "Gateway",
    "HealthRegistry",
    "HealthState",
    "StreamEvent",
    "StreamEventType",
    "encode_sse",
    "sse_stream",
    "RateLimitDecision",
    "SlidingWindowRateLimiter",
    "FallbackRouter",
]

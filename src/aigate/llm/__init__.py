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

"""Provider adapter layer for aigate.

Provides the adapter protocol, the shared error taxonomy and concrete
adapters for Anthropic, OpenAI and Google Gemini.
"""

from .anthropic_provider import AnthropicAdapter
from .base import (
    CapabilityUnsupportedError,
    GatewayError,
    InvalidRequestError,
    LocalRateLimitExceededError,
    ProviderAdapter,
    ProviderAuthenticationError,
    ProviderCapabilities,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from .factory import build_adapters, create_adapter
from .gemini_provider import GeminiAdapter
from .openai_provider import OpenAIAdapter

__all__ = [
    "ProviderAdapter",
    "ProviderCapabilities",
    "AnthropicAdapter",
    "OpenAIAdapter",
    "GeminiAdapter",
    "build_adapters",
    "create_adapter",
    "GatewayError",
    "InvalidRequestError",
    "CapabilityUnsupportedError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "ProviderError",
    "ProviderAuthenticationError",
    "ProviderUnavailableError",
    "LocalRateLimitExceededError",
]

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

"""Adapter factory.

Builds one adapter per known provider from Settings. Providers without an API
key are still built; they report ``available=False`` and the health registry
keeps them disabled instead of the process failing at startup.
"""

from __future__ import annotations

import logging
from typing import Any

from aigate.utils.config import KNOWN_PROVIDERS, Settings

from .anthropic_provider import AnthropicAdapter
from .base import ProviderAdapter, ProviderCapabilities
from .gemini_provider import GeminiAdapter
from .openai_provider import OpenAIAdapter

logger = logging.getLogger(__name__)


def _capabilities(settings: Settings, name: str) -> ProviderCapabilities:
    return ProviderCapabilities(
        supports_streaming=name not in settings.non_streaming_providers,
        supports_image_input=name not in settings.text_only_providers,
    )


def create_adapter(name: str, settings: Settings) -> ProviderAdapter:
    """Create the adapter for a single provider.

    Args:
        name: Provider name (anthropic, openai, gemini)
        settings: Application settings

    Returns:
        Configured adapter instance

    Raises:
        ValueError: If the provider is unknown
    """
    api_key = settings.get_provider_api_key(name)
    common: dict[str, Any] = {
        "timeout": settings.stream_timeout,
        "capabilities": _capabilities(settings, name),
        "default_max_tokens": settings.default_max_tokens,
        "default_temperature": settings.default_temperature,
    }

    adapter: ProviderAdapter
    if name == "anthropic":
        adapter = AnthropicAdapter(api_key=api_key, model=settings.anthropic_model, **common)
    elif name == "openai":
        adapter = OpenAIAdapter(api_key=api_key, model=settings.openai_model, **common)
    else:
        adapter = GeminiAdapter(api_key=api_key, model=settings.gemini_model, **common)

    if not adapter.available:
        logger.warning(
            f"No API key for '{name}'. Set AIGATE_{name.upper()}_API_KEY to enable it"
        )
    return adapter


def build_adapters(settings: Settings) -> list[ProviderAdapter]:
    """Create adapters for every provider named in the fallback chain."""
    adapters: list[ProviderAdapter] = []
    for name in settings.fallback_chain:
        if name not in KNOWN_PROVIDERS:
            raise ValueError(f"Unknown LLM provider in fallback chain: {name}")
        adapters.append(create_adapter(name, settings))
    return adapters

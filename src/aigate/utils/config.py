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

"""Configuration management for aigate.

Handles provider credentials, routing budgets, health thresholds and rate
limits using Pydantic Settings. Supports environment variables and .env files.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

KNOWN_PROVIDERS = ("anthropic", "openai", "gemini")


class Settings(BaseSettings):
    """Application settings.

    Loads configuration from environment variables or .env file.
    All settings can be overridden via environment variables with AIGATE_ prefix.

    Example .env file:
        AIGATE_ANTHROPIC_API_KEY=sk-ant-...
        AIGATE_OPENAI_API_KEY=sk-...
        AIGATE_GEMINI_API_KEY=...
        AIGATE_FALLBACK_CHAIN='["openai", "anthropic"]'
        AIGATE_API_TOKENS='["token-1", "token-2"]'

    Example usage:
        >>> settings = Settings()
        >>> print(settings.fallback_chain)
        ['anthropic', 'openai', 'gemini']
    """

    # Provider credentials
    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key",
        json_schema_extra={"env": "AIGATE_ANTHROPIC_API_KEY"},
    )

    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
        json_schema_extra={"env": "AIGATE_OPENAI_API_KEY"},
    )

    gemini_api_key: str | None = Field(
        default=None,
        description="Google AI (Gemini) API key",
        json_schema_extra={"env": "AIGATE_GEMINI_API_KEY"},
    )

    # Models
    anthropic_model: str = Field(
        default="claude-sonnet-4-5-20250929",
        description="Default Anthropic model",
        json_schema_extra={"env": "AIGATE_ANTHROPIC_MODEL"},
    )

    openai_model: str = Field(
        default="gpt-4-turbo",
        description="Default OpenAI model",
        json_schema_extra={"env": "AIGATE_OPENAI_MODEL"},
    )

    gemini_model: str = Field(
        default="gemini-2.0-flash",
        description="Default Gemini model",
        json_schema_extra={"env": "AIGATE_GEMINI_MODEL"},
    )

    default_temperature: float = Field(
        default=0.7,
        description="Temperature used when a request does not set one",
        ge=0.0,
        le=2.0,
        json_schema_extra={"env": "AIGATE_DEFAULT_TEMPERATURE"},
    )

    default_max_tokens: int = Field(
        default=4096,
        description="Max tokens used when a request does not set them",
        gt=0,
        json_schema_extra={"env": "AIGATE_DEFAULT_MAX_TOKENS"},
    )

    # Routing
    fallback_chain: list[str] = Field(
        default_factory=lambda: list(KNOWN_PROVIDERS),
        description="Adapters in fallback order; adapters not listed are not routed to",
        json_schema_extra={"env": "AIGATE_FALLBACK_CHAIN"},
    )

    request_timeout: float = Field(
        default=30.0,
        description="Per-attempt timeout for non-streaming calls (seconds)",
        gt=0,
        json_schema_extra={"env": "AIGATE_REQUEST_TIMEOUT"},
    )

    stream_timeout: float = Field(
        default=60.0,
        description="Timeout for the first fragment and between fragments (seconds)",
        gt=0,
        json_schema_extra={"env": "AIGATE_STREAM_TIMEOUT"},
    )

    total_timeout: float | None = Field(
        default=90.0,
        description="Overall budget for all attempts of one call (seconds)",
        gt=0,
        json_schema_extra={"env": "AIGATE_TOTAL_TIMEOUT"},
    )

    text_only_providers: list[str] = Field(
        default_factory=list,
        description="Adapters whose model cannot accept image input",
        json_schema_extra={"env": "AIGATE_TEXT_ONLY_PROVIDERS"},
    )

    non_streaming_providers: list[str] = Field(
        default_factory=list,
        description="Adapters served through a single aggregated chunk instead of a stream",
        json_schema_extra={"env": "AIGATE_NON_STREAMING_PROVIDERS"},
    )

    # Health
    health_failure_threshold: int = Field(
        default=3,
        description="Consecutive failures before an adapter is disabled",
        ge=1,
        json_schema_extra={"env": "AIGATE_HEALTH_FAILURE_THRESHOLD"},
    )

    health_cooldown_seconds: float = Field(
        default=60.0,
        description="How long a disabled adapter stays out of rotation (seconds)",
        ge=0,
        json_schema_extra={"env": "AIGATE_HEALTH_COOLDOWN_SECONDS"},
    )

    # Rate limiting
    rate_limit_max_requests: int = Field(
        default=100,
        description="Requests allowed per client inside the window",
        ge=0,
        json_schema_extra={"env": "AIGATE_RATE_LIMIT_MAX_REQUESTS"},
    )

    rate_limit_window_seconds: float = Field(
        default=900.0,
        description="Sliding window length (seconds)",
        gt=0,
        json_schema_extra={"env": "AIGATE_RATE_LIMIT_WINDOW_SECONDS"},
    )

    rate_limit_retention_seconds: float = Field(
        default=86400.0,
        description="Idle time after which a client's window is swept (seconds)",
        gt=0,
        json_schema_extra={"env": "AIGATE_RATE_LIMIT_RETENTION_SECONDS"},
    )

    rate_limit_sweep_interval: float = Field(
        default=600.0,
        description="Interval between idle-client sweeps (seconds)",
        gt=0,
        json_schema_extra={"env": "AIGATE_RATE_LIMIT_SWEEP_INTERVAL"},
    )

    # HTTP server
    api_tokens: list[str] = Field(
        default_factory=list,
        description="Accepted bearer tokens; empty accepts any non-empty token",
        json_schema_extra={"env": "AIGATE_API_TOKENS"},
    )

    trust_forwarded_for: bool = Field(
        default=True,
        description="Use X-Forwarded-For / X-Real-IP to identify anonymous clients",
        json_schema_extra={"env": "AIGATE_TRUST_FORWARDED_FOR"},
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        json_schema_extra={"env": "AIGATE_LOG_LEVEL"},
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="AIGATE_",
        case_sensitive=False,
        extra="ignore",
    )

    def get_provider_api_key(self, provider: str) -> str | None:
        """Get the API key configured for ``provider``.

        Args:
            provider: Provider name (anthropic, openai, gemini)

        Returns:
            The key, or None when it is not configured

        Raises:
            ValueError: If the provider is unknown
        """
        if provider == "anthropic":
            return self.anthropic_api_key
        elif provider == "openai":
            return self.openai_api_key
        elif provider == "gemini":
            return self.gemini_api_key
        else:
            raise ValueError(f"Unknown LLM provider: {provider}")

    def configured_providers(self) -> list[str]:
        """Providers that have credentials, in fallback order."""
        return [
            name
            for name in self.fallback_chain
            if name in KNOWN_PROVIDERS and self.get_provider_api_key(name)
        ]


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

"""Configuration for the trade memory system.

Tunables live in dataclasses with production defaults. Provider credentials
are read from an env binding (attribute access, as in a Workers ``env``) or
from ``os.environ``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any


@dataclass
class MemoryConfig:
    """Cache bounds and BM25 ranking parameters."""

    # Cache
    max_memories_per_agent: int = 100
    cache_ttl_seconds: float = 5 * 60
    load_limit: int = 50

    # BM25 Okapi
    k1: float = 1.5  # term frequency saturation
    b: float = 0.75  # document length normalization

    # Re-weighting
    recency_window_hours: float = 168.0  # linear decay 2x -> 1x over 7 days
    loss_multiplier: float = 1.3  # learn more from mistakes

    default_top_k: int = 3


@dataclass
class ReflectionConfig:
    """Budgets for the LLM reflection call."""

    max_tokens: int = 300
    temperature: float = 0.3
    timeout_ms: int = 15000
    max_context_lines: int = 10


@dataclass
class ProviderSettings:
    """Credentials for one text generation provider."""

    name: str
    url: str
    api_key: str
    model: str
    kind: str = "chat_completions"  # or "anthropic"


@dataclass
class Settings:
    """Top-level settings bundle."""

    memory: MemoryConfig = field(default_factory=MemoryConfig)
    reflection: ReflectionConfig = field(default_factory=ReflectionConfig)
    providers: list[ProviderSettings] = field(default_factory=list)

    @classmethod
    def from_env(cls, env: Any | None = None) -> Settings:
        """Build settings from an env binding or the process environment.

        Providers are registered in fallback order: Cloudflare AI, z.ai GLM,
        Vikey, then Anthropic. A provider is skipped unless all of its
        variables are set.
        """
        return cls(providers=load_provider_settings(env))


def _env_value(env: Any | None, key: str) -> str | None:
    if env is not None:
        if isinstance(env, dict):
            value = env.get(key)
        else:
            value = getattr(env, key, None)
        if value:
            return str(value)
    return os.environ.get(key) or None


def load_provider_settings(env: Any | None = None) -> list[ProviderSettings]:
    """Collect configured providers in fallback order."""
    providers: list[ProviderSettings] = []

    cf_account = _env_value(env, "CF_ACCOUNT_ID")
    cf_token = _env_value(env, "CF_API_TOKEN")
    cf_model = _env_value(env, "CF_AI_MODEL")
    if cf_account and cf_token and cf_model:
        providers.append(
            ProviderSettings(
                name="cloudflare",
                url=f"https://api.cloudflare.com/client/v4/accounts/{cf_account}/ai/v1/chat/completions",
                api_key=cf_token,
                model=cf_model,
            )
        )

    for name, prefix in (("glm-4.7", "ZAI"), ("vikey", "VIKEY")):
        url = _env_value(env, f"{prefix}_API_URL")
        key = _env_value(env, f"{prefix}_API_KEY")
        model = _env_value(env, f"{prefix}_MODEL")
        if url and key and model:
            providers.append(ProviderSettings(name=name, url=url, api_key=key, model=model))

    anthropic_key = _env_value(env, "ANTHROPIC_API_KEY")
    if anthropic_key:
        providers.append(
            ProviderSettings(
                name="anthropic",
                url="https://api.anthropic.com/v1",
                api_key=anthropic_key,
                model=_env_value(env, "ANTHROPIC_MODEL") or "claude-haiku-4-5-20251001",
                kind="anthropic",
            )
        )

    return providers

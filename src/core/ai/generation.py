"""Text generation contract and provider fallback chain.

The reflection engine only depends on ``TextGenerator``: hand it role-tagged
messages plus budgets, get back content or None. Concrete providers speak
the OpenAI-compatible chat completions protocol (Cloudflare AI, z.ai GLM,
Vikey) or the Anthropic Messages API (see ``core.ai.claude``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from core import http

if TYPE_CHECKING:
    from core.config import ProviderSettings

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """A provider failed to produce content."""

    pass


@dataclass
class GenerationOptions:
    """Per-call budgets."""

    max_tokens: int = 200
    temperature: float = 0.3
    timeout_ms: int = 10000

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


@dataclass
class GenerationResult:
    """Generated text and the provider that produced it."""

    content: str
    provider: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"content": self.content, "provider": self.provider}


class TextGenerator(Protocol):
    """Anything that turns messages into text, returning None on failure."""

    async def generate(
        self,
        messages: list[dict],
        options: GenerationOptions | None = None,
    ) -> GenerationResult | None:
        ...


class Provider(Protocol):
    """A single backend. Raises on failure so the chain can fall through."""

    name: str

    async def complete(self, messages: list[dict], options: GenerationOptions) -> str:
        ...


class ChatCompletionsProvider:
    """OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(self, name: str, url: str, api_key: str, model: str):
        self.name = name
        self.url = url
        self.model = model
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def complete(self, messages: list[dict], options: GenerationOptions) -> str:
        """Request a completion and return the trimmed message content."""
        data = await http.post(
            self.url,
            headers=self._headers,
            json_data={
                "model": self.model,
                "messages": messages,
                "max_tokens": options.max_tokens,
                "temperature": options.temperature,
            },
            timeout=options.timeout_seconds,
        )

        try:
            choices = data.get("choices") or []
            if not choices:
                raise GenerationError(f"{self.name}: no choices in response")
            message = choices[0].get("message") or {}
            content = (message.get("content") or "").strip()
        except (AttributeError, TypeError, KeyError, IndexError) as e:
            raise GenerationError(f"{self.name}: malformed response: {e}") from e

        if not content:
            raise GenerationError(f"{self.name}: empty content")
        return content


class FallbackTextGenerator:
    """Tries providers in order until one returns content.

    Every failure falls through to the next provider; when all fail the
    result is None rather than an exception.
    """

    def __init__(self, providers: list[Provider]):
        self.providers = list(providers)

    async def generate(
        self,
        messages: list[dict],
        options: GenerationOptions | None = None,
    ) -> GenerationResult | None:
        options = options or GenerationOptions()

        for provider in self.providers:
            try:
                content = await provider.complete(messages, options)
            except (GenerationError, http.HTTPRequestError) as e:
                logger.debug(f"Provider {provider.name} failed, falling through: {e}")
                continue
            except Exception as e:
                logger.warning(f"Provider {provider.name} raised unexpectedly, falling through: {e}")
                continue
            return GenerationResult(content=content, provider=provider.name)

        if self.providers:
            logger.warning(f"All {len(self.providers)} text generation providers failed")
        return None


def build_text_generator(settings: list[ProviderSettings]) -> FallbackTextGenerator:
    """Build the fallback chain from configured providers."""
    from core.ai.claude import ClaudeProvider

    providers: list[Provider] = []
    for s in settings:
        if s.kind == "anthropic":
            providers.append(ClaudeProvider(api_key=s.api_key, model=s.model, base_url=s.url))
        else:
            providers.append(ChatCompletionsProvider(name=s.name, url=s.url, api_key=s.api_key, model=s.model))
    return FallbackTextGenerator(providers)

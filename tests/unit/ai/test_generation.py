"""Tests for text generation providers and the fallback chain."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from core import http
from core.ai.claude import ClaudeError, ClaudeProvider, ClaudeRateLimitError
from core.ai.generation import (
    ChatCompletionsProvider,
    FallbackTextGenerator,
    GenerationError,
    GenerationOptions,
    build_text_generator,
)
from core.config import ProviderSettings
from core.http import HTTPRequestError

MESSAGES = [
    {"role": "system", "content": "You are an analyst."},
    {"role": "user", "content": "Trade: BUY ..."},
]


def _provider(name: str, content: str | None = None, error: Exception | None = None):
    provider = MagicMock()
    provider.name = name
    provider.complete = AsyncMock(return_value=content, side_effect=error)
    return provider


class TestChatCompletionsProvider:
    @pytest.fixture
    def provider(self):
        return ChatCompletionsProvider(
            name="vikey", url="https://llm.example/v1/chat/completions", api_key="sk-test", model="m-1"
        )

    async def test_posts_payload_and_returns_content(self, provider):
        response = {"choices": [{"message": {"content": "  Lesson text.  "}}]}
        with patch("core.http.post", new=AsyncMock(return_value=response)) as post:
            content = await provider.complete(MESSAGES, GenerationOptions(max_tokens=300, timeout_ms=15000))

        assert content == "Lesson text."
        post.assert_awaited_once()
        kwargs = post.await_args.kwargs
        assert post.await_args.args[0] == "https://llm.example/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["json_data"]["model"] == "m-1"
        assert kwargs["json_data"]["messages"] == MESSAGES
        assert kwargs["json_data"]["max_tokens"] == 300
        assert kwargs["timeout"] == 15.0

    @pytest.mark.parametrize(
        "response",
        [{}, {"choices": []}, {"choices": [{"message": {"content": ""}}]}, {"choices": [{}]}],
    )
    async def test_empty_responses_raise(self, provider, response):
        with patch("core.http.post", new=AsyncMock(return_value=response)):
            with pytest.raises(GenerationError):
                await provider.complete(MESSAGES, GenerationOptions())


class TestClaudeProvider:
    def test_split_system(self):
        system, turns = ClaudeProvider.split_system(MESSAGES)

        assert system == "You are an analyst."
        assert turns == [{"role": "user", "content": "Trade: BUY ..."}]

    async def test_complete_sends_system_field(self):
        provider = ClaudeProvider(api_key="key")
        response = {"content": [{"type": "text", "text": "Reduce size."}]}

        with patch("core.http.post", new=AsyncMock(return_value=response)) as post:
            text = await provider.complete(MESSAGES, GenerationOptions())

        assert text == "Reduce size."
        assert post.await_args.args[0] == "https://api.anthropic.com/v1/messages"
        payload = post.await_args.kwargs["json_data"]
        assert payload["system"] == "You are an analyst."
        assert payload["model"] == ClaudeProvider.DEFAULT_MODEL
        assert all(m["role"] != "system" for m in payload["messages"])

    async def test_rate_limit_error(self):
        provider = ClaudeProvider(api_key="key")
        error = HTTPRequestError('HTTP 429: {"type": "rate_limit_error"}', 429)

        with patch("core.http.post", new=AsyncMock(side_effect=error)):
            with pytest.raises(ClaudeRateLimitError):
                await provider.complete(MESSAGES, GenerationOptions())

    async def test_other_http_error(self):
        provider = ClaudeProvider(api_key="key")

        with patch("core.http.post", new=AsyncMock(side_effect=HTTPRequestError("HTTP 500: oops", 500))):
            with pytest.raises(ClaudeError) as exc_info:
                await provider.complete(MESSAGES, GenerationOptions())

        assert not isinstance(exc_info.value, ClaudeRateLimitError)

    async def test_empty_content(self):
        provider = ClaudeProvider(api_key="key")

        with patch("core.http.post", new=AsyncMock(return_value={"content": []})):
            with pytest.raises(ClaudeError):
                await provider.complete(MESSAGES, GenerationOptions())


class TestFallbackTextGenerator:
    async def test_first_success_wins(self):
        first = _provider("cloudflare", content="from cloudflare")
        second = _provider("glm-4.7", content="from glm")

        result = await FallbackTextGenerator([first, second]).generate(MESSAGES)

        assert result.content == "from cloudflare"
        assert result.provider == "cloudflare"
        second.complete.assert_not_awaited()

    async def test_falls_through_failures_in_order(self):
        first = _provider("cloudflare", error=HTTPRequestError("HTTP 503: busy", 503))
        second = _provider("glm-4.7", error=GenerationError("empty content"))
        third = _provider("anthropic", content="from claude")

        result = await FallbackTextGenerator([first, second, third]).generate(MESSAGES)

        assert result.provider == "anthropic"
        first.complete.assert_awaited_once()
        second.complete.assert_awaited_once()

    async def test_all_fail_returns_none(self):
        providers = [
            _provider("cloudflare", error=HTTPRequestError("Timeout after 15.0s: x")),
            _provider("anthropic", error=ClaudeRateLimitError("rate limit")),
        ]

        assert await FallbackTextGenerator(providers).generate(MESSAGES) is None

    async def test_no_providers_returns_none(self):
        assert await FallbackTextGenerator([]).generate(MESSAGES) is None

    async def test_options_are_forwarded(self):
        provider = _provider("vikey", content="ok")
        options = GenerationOptions(max_tokens=42)

        await FallbackTextGenerator([provider]).generate(MESSAGES, options)

        assert provider.complete.await_args.args == (MESSAGES, options)


def test_build_text_generator_preserves_order_and_kinds():
    settings = [
        ProviderSettings(name="cloudflare", url="https://cf/chat", api_key="t", model="llama"),
        ProviderSettings(
            name="anthropic", url="https://api.anthropic.com/v1", api_key="k", model="claude-x", kind="anthropic"
        ),
    ]

    generator = build_text_generator(settings)

    assert [p.name for p in generator.providers] == ["cloudflare", "anthropic"]
    assert isinstance(generator.providers[0], ChatCompletionsProvider)
    assert isinstance(generator.providers[1], ClaudeProvider)
    assert generator.providers[1].model == "claude-x"


class TestMalformedResponses:
    """Malformed bodies fail the provider, never the whole chain."""

    async def test_chat_completions_array_body(self):
        provider = ChatCompletionsProvider(name="cf", url="https://cf/chat", api_key="t", model="m")

        with patch("core.http.post", new=AsyncMock(return_value=[{"choices": []}])):
            with pytest.raises(GenerationError, match="malformed"):
                await provider.complete(MESSAGES, GenerationOptions())

    async def test_chat_completions_non_text_content(self):
        provider = ChatCompletionsProvider(name="cf", url="https://cf/chat", api_key="t", model="m")
        response = {"choices": [{"message": {"content": ["not", "text"]}}]}

        with patch("core.http.post", new=AsyncMock(return_value=response)):
            with pytest.raises(GenerationError):
                await provider.complete(MESSAGES, GenerationOptions())

    async def test_claude_null_text_block_is_skipped(self):
        provider = ClaudeProvider(api_key="key")
        response = {"content": [{"type": "text", "text": None}, {"type": "text", "text": "Hold."}]}

        with patch("core.http.post", new=AsyncMock(return_value=response)):
            assert await provider.complete(MESSAGES, GenerationOptions()) == "Hold."

    async def test_claude_malformed_blocks(self):
        provider = ClaudeProvider(api_key="key")

        with patch("core.http.post", new=AsyncMock(return_value={"content": ["oops"]})):
            with pytest.raises(ClaudeError, match="Malformed"):
                await provider.complete(MESSAGES, GenerationOptions())

    async def test_non_json_body_falls_through_to_next_provider(self):
        def handler(req: httpx.Request) -> httpx.Response:
            if req.url.host == "gateway.example":
                return httpx.Response(200, text="<html>gateway</html>")
            return httpx.Response(200, json={"choices": [{"message": {"content": "lesson two"}}]})

        transport = httpx.MockTransport(handler)

        async def post_via_transport(url, headers=None, json_data=None, timeout=30.0):
            return await http.request(
                "POST", url, headers=headers, json_data=json_data, timeout=timeout, transport=transport
            )

        generator = FallbackTextGenerator(
            [
                ChatCompletionsProvider(name="first", url="https://gateway.example/chat", api_key="a", model="m"),
                ChatCompletionsProvider(name="second", url="https://llm.example/chat", api_key="b", model="m"),
            ]
        )

        with patch("core.http.post", new=post_via_transport):
            result = await generator.generate(MESSAGES)

        assert result.content == "lesson two"
        assert result.provider == "second"
        assert result.to_dict() == {"content": "lesson two", "provider": "second"}

    async def test_unexpected_provider_exception_falls_through(self):
        first = _provider("custom", error=RuntimeError("bug in adapter"))
        second = _provider("anthropic", content="fallback lesson")

        result = await FallbackTextGenerator([first, second]).generate(MESSAGES)

        assert result.provider == "anthropic"

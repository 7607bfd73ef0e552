from __future__ import annotations

from core import http
from core.ai.generation import GenerationError, GenerationOptions


class ClaudeError(GenerationError):
    """Claude API error."""

    pass


class ClaudeRateLimitError(ClaudeError):
    """Claude API rate limit or token exhaustion error."""

    pass


RATE_LIMIT_INDICATORS = (
    "http 429",
    "rate_limit",
    "rate limit",
    "overloaded",
    "credit balance",
    "insufficient_quota",
    "billing",
)


class ClaudeProvider:
    """Anthropic Messages API provider.

    System messages are lifted out of the message list into the top-level
    ``system`` field the Messages API expects.
    """

    BASE_URL = "https://api.anthropic.com/v1"
    DEFAULT_MODEL = "claude-haiku-4-5-20251001"

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
    ):
        """Initialize the Claude provider.

        Args:
            api_key: Anthropic API key
            model: Optional model override
            base_url: Optional API base URL override
        """
        self.model = model or self.DEFAULT_MODEL
        self.base_url = base_url or self.BASE_URL
        self._headers = {
            "x-api-key": api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

    @staticmethod
    def split_system(messages: list[dict]) -> tuple[str, list[dict]]:
        """Separate system prompts from the conversation turns."""
        system_parts = [m["content"] for m in messages if m.get("role") == "system"]
        turns = [m for m in messages if m.get("role") != "system"]
        return "\n\n".join(system_parts), turns

    async def complete(self, messages: list[dict], options: GenerationOptions) -> str:
        """Make a request to the Claude API.

        Returns:
            Response text content

        Raises:
            ClaudeRateLimitError: On rate limit or quota exhaustion
            ClaudeError: On any other API failure
        """
        system, turns = self.split_system(messages)
        payload = {
            "model": self.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": turns,
        }
        if system:
            payload["system"] = system

        try:
            data = await http.post(
                f"{self.base_url}/messages",
                headers=self._headers,
                json_data=payload,
                timeout=options.timeout_seconds,
            )
        except http.HTTPRequestError as e:
            error_str = str(e)
            if any(indicator in error_str.lower() for indicator in RATE_LIMIT_INDICATORS):
                raise ClaudeRateLimitError(f"Claude API rate limit/token error: {error_str}") from e
            raise ClaudeError(f"Claude API error: {error_str}") from e

        try:
            content = data.get("content", [])
            if not content:
                raise ClaudeError("Empty response from Claude")
            text = "".join(
                block.get("text") or "" for block in content if block.get("type", "text") == "text"
            ).strip()
        except (AttributeError, TypeError) as e:
            raise ClaudeError(f"Malformed response from Claude: {e}") from e

        if not text:
            raise ClaudeError("Empty response from Claude")
        return text

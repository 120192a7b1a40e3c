"""Claude (Anthropic) provider."""

from anthropic import Anthropic, APIError, AuthenticationError, RateLimitError

from ..base import LLMAuthError, LLMError, LLMProvider, LLMRateLimitError


class ClaudeProvider(LLMProvider):
    provider_name = "claude"

    def __init__(self, api_key: str | None = None, model: str | None = None, client=None):
        self.model = model or "claude-sonnet-4-20250514"
        self.client = client or Anthropic(api_key=api_key)

    def generate(
        self, messages: list[dict], system: str | None = None, max_tokens: int = 2000
    ) -> str:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system

        try:
            response = self.client.messages.create(**kwargs)
        except AuthenticationError as e:
            raise LLMAuthError(f"Claude auth failed: {e}") from e
        except RateLimitError as e:
            raise LLMRateLimitError(f"Claude rate limit: {e}") from e
        except APIError as e:
            raise LLMError(f"Claude API error: {e}") from e

        return response.content[0].text if response.content else ""

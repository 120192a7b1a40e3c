"""OpenAI provider."""

from openai import APIError, AuthenticationError, OpenAI, RateLimitError

from ..base import LLMAuthError, LLMError, LLMProvider, LLMRateLimitError


class OpenAIProvider(LLMProvider):
    provider_name = "openai"

    def __init__(self, api_key: str | None = None, model: str | None = None, client=None):
        self.model = model or "gpt-4o"
        self.client = client or OpenAI(api_key=api_key)

    def generate(
        self, messages: list[dict], system: str | None = None, max_tokens: int = 2000
    ) -> str:
        full_messages = []
        if system:
            full_messages.append({"role": "system", "content": system})
        full_messages.extend(messages)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=full_messages,
            )
        except AuthenticationError as e:
            raise LLMAuthError(f"OpenAI auth failed: {e}") from e
        except RateLimitError as e:
            raise LLMRateLimitError(f"OpenAI rate limit: {e}") from e
        except APIError as e:
            raise LLMError(f"OpenAI API error: {e}") from e
        return response.choices[0].message.content or ""

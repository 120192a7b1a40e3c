"""Provider construction for the engine's background LLM calls.

Extraction and cross-domain synthesis are the only callers. Both run off the
conversation path on every few turns, so they default to each vendor's
low-cost model. Backends are resolved from an explicit name, the shape of an
explicit key, or whichever vendor key is present in the environment.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass

from .base import LLMError, LLMProvider


def _claude() -> type[LLMProvider]:
    from .providers.claude import ClaudeProvider

    return ClaudeProvider


def _openai() -> type[LLMProvider]:
    from .providers.openai import OpenAIProvider

    return OpenAIProvider


@dataclass(frozen=True)
class _Backend:
    env_key: str
    key_prefix: str
    background_model: str
    load: Callable[[], type[LLMProvider]]


# Checked in order: "sk-ant-" must be tried before the broader "sk-"
_BACKENDS: dict[str, _Backend] = {
    "claude": _Backend("ANTHROPIC_API_KEY", "sk-ant-", "claude-haiku-4-20250514", _claude),
    "openai": _Backend("OPENAI_API_KEY", "sk-", "gpt-4o-mini", _openai),
}


def _backend(name: str) -> _Backend:
    try:
        return _BACKENDS[name]
    except KeyError:
        raise LLMError(f"Unknown provider: {name}. Use: {', '.join(_BACKENDS)}") from None


def _auto_detect_provider(api_key: str | None = None) -> str:
    """Key prefix first, then the first vendor with a key in the environment."""
    if api_key:
        for name, backend in _BACKENDS.items():
            if api_key.startswith(backend.key_prefix):
                return name

    for name, backend in _BACKENDS.items():
        if os.getenv(backend.env_key):
            return name
    env_keys = ", ".join(b.env_key for b in _BACKENDS.values())
    raise LLMError(f"No LLM API key found. Set one of: {env_keys}")


def _resolve(provider: str | None, api_key: str | None) -> str:
    if provider in (None, "auto"):
        return _auto_detect_provider(api_key)
    return provider


def create_llm_provider(
    provider: str | None = None,
    api_key: str | None = None,
    model: str | None = None,
    client=None,
) -> LLMProvider:
    """Build a provider. ``model=None`` means the vendor's standard model.

    ``client`` takes a pre-built SDK client, in which case no key is looked up.
    """
    name = _resolve(provider, api_key)
    backend = _backend(name)
    if not api_key and client is None:
        api_key = os.getenv(backend.env_key)
    return backend.load()(api_key=api_key, model=model, client=client)


def create_cheap_provider(
    provider: str | None = None,
    api_key: str | None = None,
    model: str | None = None,
    client=None,
) -> LLMProvider:
    """Build a provider on the vendor's low-cost model unless ``model`` says otherwise."""
    name = _resolve(provider, api_key)
    return create_llm_provider(
        provider=name,
        api_key=api_key,
        model=model or _backend(name).background_model,
        client=client,
    )

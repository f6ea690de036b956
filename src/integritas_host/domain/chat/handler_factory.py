"""Provider handler selection.

Resolves the requested provider/model against the server-side allowlist and
builds the matching handler. Fails closed on missing credentials or
disallowed models, before any provider call is made.
"""

from dataclasses import dataclass
from typing import get_args

import anthropic
from openai import AsyncOpenAI

from integritas_host.config import ALLOWED_MODELS, LLMProvider, Settings
from integritas_host.domain.chat.anthropic_handler import AnthropicHandler
from integritas_host.domain.chat.mock_handler import MockHandler
from integritas_host.domain.chat.openai_handler import OpenAIHandler, OpenRouterHandler
from integritas_host.domain.chat.types import ChatHandler
from integritas_host.shared.exceptions import ConfigurationError
from integritas_host.shared.logging import get_logger

logger = get_logger(__name__)

PROVIDERS: tuple[str, ...] = get_args(LLMProvider)

_KEY_ENV_VARS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


@dataclass
class LLMChoice:
    """Provider/model requested by the caller (both optional)."""

    provider: str | None = None
    model: str | None = None


def resolve_choice(choice: LLMChoice | None, settings: Settings) -> tuple[str, str]:
    """Validate the requested provider and model.

    Returns:
        ``(provider, model)`` with defaults filled in

    Raises:
        ConfigurationError: Unknown provider, disallowed model or missing key
    """
    choice = choice or LLMChoice()
    provider = (choice.provider or settings.llm_provider).strip().lower()
    if provider not in PROVIDERS:
        raise ConfigurationError(
            f"Unknown LLM provider: {provider}",
            details={"allowed": list(PROVIDERS)},
        )

    model = choice.model or settings.default_model(provider)
    allowed = ALLOWED_MODELS.get(provider)
    if allowed is not None and model not in allowed:
        raise ConfigurationError(
            f"Model not allowed for {provider}: {model}",
            details={"provider": provider, "allowed": list(allowed)},
        )

    if provider in _KEY_ENV_VARS and not settings.api_key_for(provider):
        raise ConfigurationError(f"{_KEY_ENV_VARS[provider]} missing")

    return provider, model


def choose_handler(choice: LLMChoice | None, settings: Settings) -> ChatHandler:
    """Build the handler for the validated provider/model choice."""
    provider, model = resolve_choice(choice, settings)
    logger.info("using_llm_provider", provider=provider, model=model)

    if provider == "anthropic":
        return AnthropicHandler(
            client=anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key),
            model=model,
            max_tokens=settings.llm_max_tokens,
        )
    if provider == "openai":
        return OpenAIHandler(
            client=AsyncOpenAI(api_key=settings.openai_api_key),
            model=model,
            max_tokens=settings.llm_max_tokens,
        )
    if provider == "openrouter":
        return OpenRouterHandler(
            client=AsyncOpenAI(
                api_key=settings.openrouter_api_key,
                base_url=settings.openrouter_base_url,
            ),
            model=model,
            max_tokens=settings.llm_max_tokens,
        )
    return MockHandler(model=model)

"""Unit tests for provider handler selection."""

import pytest


def _settings(**overrides):
    from integritas_host.config import Settings

    values = {
        "_env_file": None,
        "llm_provider": "anthropic",
        "anthropic_api_key": "sk-ant-test",
        "openai_api_key": "sk-openai-test",
        "openrouter_api_key": "sk-or-test",
    }
    values.update(overrides)
    return Settings(**values)


class TestChooseHandler:
    """Test handler construction per provider."""

    def test_default_provider_and_model(self):
        from integritas_host.domain.chat.anthropic_handler import AnthropicHandler
        from integritas_host.domain.chat.handler_factory import choose_handler

        handler = choose_handler(None, _settings())

        assert isinstance(handler, AnthropicHandler)
        assert handler.model == "claude-3-5-sonnet-20240620"

    def test_openai_allowed_model(self):
        from integritas_host.domain.chat.handler_factory import LLMChoice, choose_handler
        from integritas_host.domain.chat.openai_handler import OpenAIHandler

        handler = choose_handler(LLMChoice(provider="openai", model="gpt-4.1-mini"), _settings())

        assert type(handler) is OpenAIHandler
        assert handler.model == "gpt-4.1-mini"

    def test_openrouter_base_url(self):
        from integritas_host.domain.chat.handler_factory import LLMChoice, choose_handler
        from integritas_host.domain.chat.openai_handler import OpenRouterHandler

        handler = choose_handler(LLMChoice(provider="openrouter"), _settings())

        assert isinstance(handler, OpenRouterHandler)
        assert str(handler.client.base_url).startswith("https://openrouter.ai/api/v1")
        assert handler.model == "deepseek/deepseek-chat-v3.1:free"

    def test_mock_accepts_any_model(self):
        from integritas_host.domain.chat.handler_factory import LLMChoice, choose_handler
        from integritas_host.domain.chat.mock_handler import MockHandler

        handler = choose_handler(LLMChoice(provider="mock", model="anything"), _settings())

        assert isinstance(handler, MockHandler)

    def test_provider_case_insensitive(self):
        from integritas_host.domain.chat.handler_factory import LLMChoice, resolve_choice

        assert resolve_choice(LLMChoice(provider="OpenAI"), _settings()) == ("openai", "gpt-4o-mini")


class TestFailClosed:
    """Test configuration errors raised before any provider call."""

    def test_disallowed_openai_model(self):
        from integritas_host.domain.chat.handler_factory import LLMChoice, choose_handler
        from integritas_host.shared.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError) as exc_info:
            choose_handler(LLMChoice(provider="openai", model="gpt-5-ultra"), _settings())

        assert "gpt-4o-mini" in exc_info.value.details["allowed"]

    def test_disallowed_default_model(self):
        from integritas_host.domain.chat.handler_factory import LLMChoice, choose_handler
        from integritas_host.shared.exceptions import ConfigurationError

        settings = _settings(openai_model="gpt-3.5-turbo")

        with pytest.raises(ConfigurationError, match="gpt-3.5-turbo"):
            choose_handler(LLMChoice(provider="openai"), settings)

    def test_unknown_provider(self):
        from integritas_host.domain.chat.handler_factory import LLMChoice, choose_handler
        from integritas_host.shared.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            choose_handler(LLMChoice(provider="gemini"), _settings())

    @pytest.mark.parametrize(
        "provider,key_field",
        [
            ("anthropic", "anthropic_api_key"),
            ("openai", "openai_api_key"),
            ("openrouter", "openrouter_api_key"),
        ],
    )
    def test_missing_credential(self, provider, key_field):
        from integritas_host.domain.chat.handler_factory import LLMChoice, choose_handler
        from integritas_host.shared.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError, match="API_KEY missing"):
            choose_handler(LLMChoice(provider=provider), _settings(**{key_field: ""}))

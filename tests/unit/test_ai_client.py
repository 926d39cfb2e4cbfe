"""Unit tests for the provider registry and the multi-provider fallback client."""

from __future__ import annotations

import pytest

from coursemind.config.settings import Settings
from coursemind.models.ai import Capability, ChatMessage, ProviderConfig
from coursemind.services.ai_client import MultiProviderClient, ProviderRegistry
from coursemind.utils.errors import ConfigurationError, ProviderError, RateLimitError
from tests.conftest import make_ai_client, make_mock_provider, make_provider_config

_MESSAGES = [
    ChatMessage(role="system", content="Return JSON."),
    ChatMessage(role="user", content="Summarise Newton's laws."),
]


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "openrouter_api_key": "",
        "openrouter_model": "",
        "openrouter_embedding_model": "",
        "openrouter_vision_model": "",
        "openrouter_site_url": "",
        "openrouter_app_name": "",
        "openai_api_key": "",
        "openai_model": "",
        "openai_embedding_model": "",
        "openai_vision_model": "",
        "gemini_api_key": "",
        "gemini_model": "",
        "gemini_embedding_model": "",
        "gemini_vision_model": "",
        "anthropic_api_key": "",
        "anthropic_model": "",
        "anthropic_vision_model": "",
        "ai_provider_default": "openrouter",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ======================================================================
# ProviderConfig
# ======================================================================


class TestProviderConfig:
    def test_capability_needs_key_and_model(self) -> None:
        config = ProviderConfig(name="openai", api_key="k", chat_model="gpt")
        assert config.is_configured(Capability.CHAT) is True
        assert config.is_configured(Capability.EMBEDDING) is False

    def test_missing_key_disables_everything(self) -> None:
        config = ProviderConfig(name="openai", chat_model="gpt", embedding_model="emb")
        assert not any(config.is_configured(c) for c in Capability)

    def test_vision_falls_back_to_chat_model(self) -> None:
        config = ProviderConfig(name="gemini", api_key="k", chat_model="flash")
        assert config.model_for(Capability.VISION) == "flash"
        assert config.is_configured(Capability.VISION) is True


# ======================================================================
# ProviderRegistry
# ======================================================================


class TestProviderRegistryOrder:
    def test_base_order(self) -> None:
        registry = ProviderRegistry(
            providers=(
                make_provider_config("anthropic", embedding=False),
                make_provider_config("gemini"),
                make_provider_config("openai"),
                make_provider_config("openrouter"),
            )
        )
        assert registry.order(Capability.CHAT) == ["openrouter", "openai", "gemini", "anthropic"]
        assert registry.order(Capability.EMBEDDING) == ["openrouter", "openai", "gemini"]

    def test_default_moves_to_front(self) -> None:
        registry = ProviderRegistry(
            providers=(make_provider_config("openrouter"), make_provider_config("gemini")),
            default_provider="gemini",
        )
        assert registry.order(Capability.CHAT) == ["gemini", "openrouter"]

    def test_unconfigured_default_is_ignored(self) -> None:
        registry = ProviderRegistry(
            providers=(
                make_provider_config("openai"),
                make_provider_config("anthropic", embedding=False),
            ),
            default_provider="anthropic",
        )
        assert registry.order(Capability.EMBEDDING) == ["openai"]
        assert registry.order(Capability.CHAT) == ["anthropic", "openai"]

    def test_get(self) -> None:
        registry = ProviderRegistry(providers=(make_provider_config("openai"),))
        assert registry.get("openai").api_key == "openai-key"
        assert registry.get("gemini") is None


class TestProviderRegistryFromSettings:
    def test_nothing_configured(self) -> None:
        registry = ProviderRegistry.from_settings(_settings())
        assert all(registry.order(c) == [] for c in Capability)

    def test_openrouter_attribution_headers(self) -> None:
        registry = ProviderRegistry.from_settings(
            _settings(
                openrouter_api_key="or-key",
                openrouter_model="meta/llama",
                openrouter_site_url="https://courses.example.edu",
                openrouter_app_name="CourseMind",
            )
        )
        config = registry.get("openrouter")
        assert config.extra_headers == {
            "HTTP-Referer": "https://courses.example.edu",
            "X-Title": "CourseMind",
        }
        assert config.base_url == "https://openrouter.ai/api/v1"
        assert registry.order(Capability.CHAT) == ["openrouter"]

    def test_gemini_requests_embedding_dimension(self) -> None:
        registry = ProviderRegistry.from_settings(
            _settings(
                gemini_api_key="g",
                gemini_embedding_model="text-embedding-004",
                embedding_dim=768,
            )
        )
        assert registry.get("gemini").embedding_dimensions == 768
        assert registry.order(Capability.EMBEDDING) == ["gemini"]

    def test_anthropic_never_embeds(self) -> None:
        registry = ProviderRegistry.from_settings(
            _settings(anthropic_api_key="a", anthropic_model="claude")
        )
        assert registry.order(Capability.CHAT) == ["anthropic"]
        assert registry.order(Capability.VISION) == ["anthropic"]
        assert registry.order(Capability.EMBEDDING) == []

    def test_default_is_normalised(self) -> None:
        registry = ProviderRegistry.from_settings(_settings(ai_provider_default="  OpenAI "))
        assert registry.default_provider == "openai"

    def test_unknown_default_dropped(self) -> None:
        registry = ProviderRegistry.from_settings(_settings(ai_provider_default="mistral"))
        assert registry.default_provider is None


# ======================================================================
# MultiProviderClient
# ======================================================================


class TestMultiProviderClient:
    @pytest.mark.asyncio
    async def test_no_embedding_provider_is_terminal(self) -> None:
        client = make_ai_client({})
        with pytest.raises(ConfigurationError, match="No embedding providers are configured."):
            await client.generate_embeddings(["text"])

    @pytest.mark.asyncio
    async def test_missing_capability_messages(self) -> None:
        client = make_ai_client({})
        with pytest.raises(ConfigurationError, match="No AI providers are configured."):
            await client.generate_text(_MESSAGES)
        with pytest.raises(ConfigurationError, match="No vision providers are configured."):
            await client.extract_vision_text(b"\x89PNG", "Read this")

    @pytest.mark.asyncio
    async def test_single_provider_error_propagates_unchanged(self) -> None:
        provider = make_mock_provider("openai")
        original = RateLimitError("slow down", provider_name="openai")
        provider.generate_text.side_effect = original
        client = make_ai_client({"openai": provider})

        with pytest.raises(RateLimitError) as exc_info:
            await client.generate_text(_MESSAGES)
        assert exc_info.value is original

    @pytest.mark.asyncio
    async def test_falls_back_to_next_provider(self) -> None:
        first = make_mock_provider("openrouter")
        first.generate_text.side_effect = ProviderError("boom", provider_name="openrouter")
        second = make_mock_provider("openai", content='{"answer": "ok"}')
        client = make_ai_client({"openrouter": first, "openai": second})

        result = await client.generate_text(_MESSAGES, temperature=0.5, max_tokens=50)

        assert result.provider == "openai"
        assert result.content == '{"answer": "ok"}'
        first.generate_text.assert_awaited_once()
        second.generate_text.assert_awaited_once_with(
            _MESSAGES, temperature=0.5, max_tokens=50, json_mode=True
        )

    @pytest.mark.asyncio
    async def test_all_failures_raise_last_error(self) -> None:
        first = make_mock_provider("openrouter")
        first.embed.side_effect = ProviderError("first", provider_name="openrouter")
        second = make_mock_provider("gemini")
        second.embed.side_effect = ProviderError("second", provider_name="gemini")
        client = make_ai_client({"openrouter": first, "gemini": second})

        with pytest.raises(ProviderError, match="second"):
            await client.generate_embeddings(["a"])

    @pytest.mark.asyncio
    async def test_default_provider_tried_first(self) -> None:
        openrouter = make_mock_provider("openrouter")
        gemini = make_mock_provider("gemini")
        client = make_ai_client({"openrouter": openrouter, "gemini": gemini}, default="gemini")

        result = await client.generate_embeddings(["a", "b"])

        assert result.provider == "gemini"
        assert len(result.embeddings) == 2
        openrouter.embed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_configured_but_unregistered_adapter_is_skipped(self) -> None:
        openai_provider = make_mock_provider("openai")
        client = MultiProviderClient(
            ProviderRegistry(
                providers=(make_provider_config("openrouter"), make_provider_config("openai"))
            ),
            {"openai": openai_provider},
        )
        assert client.provider_order(Capability.CHAT) == ["openai"]
        result = await client.extract_vision_text(b"img", "Transcribe")
        assert result.provider == "openai"
        openai_provider.extract_vision_text.assert_awaited_once_with(
            b"img", "Transcribe", media_type=""
        )

    @pytest.mark.asyncio
    async def test_with_registry_shares_adapters(self) -> None:
        openai_provider = make_mock_provider("openai")
        client = make_ai_client({"openai": openai_provider})
        restricted = client.with_registry(
            ProviderRegistry(providers=(make_provider_config("openai", embedding=False),))
        )
        assert restricted.provider_order(Capability.EMBEDDING) == []
        assert restricted.provider_order(Capability.CHAT) == ["openai"]
        assert client.provider_order(Capability.EMBEDDING) == ["openai"]

"""Multi-provider AI client with ordered fallback.

Two pieces live here:

:class:`ProviderRegistry`
    An immutable snapshot of which backends are configured for which
    capability, built once from :class:`~coursemind.config.settings.Settings`
    and passed explicitly.  It owns the fallback order: every configured
    provider in the base order ``openrouter, openai, gemini, anthropic``,
    with ``AI_PROVIDER_DEFAULT`` moved to the front when it is configured.

:class:`MultiProviderClient`
    The facade the rest of the application calls.  Each call walks the
    registry order for its capability and returns the first success.

Fallback rules:

- No configured provider for the capability -> terminal
  :class:`ConfigurationError` (e.g. "No embedding providers are configured.").
- Exactly one configured provider -> its error propagates unchanged.
- Several -> each failure is logged as ``provider_fallback`` and the next
  provider is tried; if all fail the last error is raised.
"""

from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

from pydantic import BaseModel, ConfigDict

from coursemind.config.settings import Settings
from coursemind.interfaces.ai_provider import IAIProvider
from coursemind.models.ai import (
    AiEmbeddingResult,
    AiGenerateResult,
    AiVisionResult,
    Capability,
    ChatMessage,
    ProviderConfig,
)
from coursemind.utils.errors import ConfigurationError, error_message
from coursemind.utils.logging import get_logger

_T = TypeVar("_T")

BASE_PROVIDER_ORDER: tuple[str, ...] = ("openrouter", "openai", "gemini", "anthropic")

_NO_PROVIDER_MESSAGES: dict[Capability, str] = {
    Capability.CHAT: "No AI providers are configured.",
    Capability.EMBEDDING: "No embedding providers are configured.",
    Capability.VISION: "No vision providers are configured.",
}

DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 1200


class ProviderRegistry(BaseModel):
    """Immutable snapshot of provider configuration."""

    model_config = ConfigDict(frozen=True)

    providers: tuple[ProviderConfig, ...] = ()
    default_provider: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderRegistry:
        """Build a registry from environment-backed settings.

        An ``AI_PROVIDER_DEFAULT`` that names no known provider is ignored.
        """
        openrouter_headers: dict[str, str] = {}
        if settings.openrouter_site_url:
            openrouter_headers["HTTP-Referer"] = settings.openrouter_site_url
        if settings.openrouter_app_name:
            openrouter_headers["X-Title"] = settings.openrouter_app_name

        providers = (
            ProviderConfig(
                name="openrouter",
                api_key=settings.openrouter_api_key,
                chat_model=settings.openrouter_model,
                embedding_model=settings.openrouter_embedding_model,
                vision_model=settings.openrouter_vision_model,
                base_url=settings.openrouter_base_url,
                extra_headers=openrouter_headers,
            ),
            ProviderConfig(
                name="openai",
                api_key=settings.openai_api_key,
                chat_model=settings.openai_model,
                embedding_model=settings.openai_embedding_model,
                vision_model=settings.openai_vision_model,
                base_url=settings.openai_base_url,
            ),
            ProviderConfig(
                name="gemini",
                api_key=settings.gemini_api_key,
                chat_model=settings.gemini_model,
                embedding_model=settings.gemini_embedding_model,
                vision_model=settings.gemini_vision_model,
                base_url=settings.gemini_base_url,
                embedding_dimensions=settings.embedding_dim,
            ),
            ProviderConfig(
                name="anthropic",
                api_key=settings.anthropic_api_key,
                chat_model=settings.anthropic_model,
                vision_model=settings.anthropic_vision_model,
            ),
        )
        default = settings.ai_provider_default.strip().lower()
        return cls(
            providers=providers,
            default_provider=default if default in BASE_PROVIDER_ORDER else None,
        )

    def get(self, name: str) -> ProviderConfig | None:
        for config in self.providers:
            if config.name == name:
                return config
        return None

    def order(self, capability: Capability) -> list[str]:
        """Return configured provider names for *capability*, default first."""
        rank = {name: i for i, name in enumerate(BASE_PROVIDER_ORDER)}
        configured = sorted(
            (p.name for p in self.providers if p.is_configured(capability)),
            key=lambda name: rank.get(name, len(rank)),
        )
        if self.default_provider in configured:
            configured.remove(self.default_provider)
            configured.insert(0, self.default_provider)
        return configured


class MultiProviderClient:
    """Uniform text, embedding and vision calls over several backends.

    Parameters
    ----------
    registry:
        Configuration snapshot deciding which providers are tried and in
        which order.
    providers:
        Adapter instances keyed by provider name.  A name present in the
        registry order but missing here is skipped.
    """

    def __init__(self, registry: ProviderRegistry, providers: dict[str, IAIProvider]) -> None:
        self._registry = registry
        self._providers = dict(providers)
        self._logger = get_logger(__name__)

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def with_registry(self, registry: ProviderRegistry) -> MultiProviderClient:
        """Return a client sharing these adapters but using *registry*."""
        return MultiProviderClient(registry, self._providers)

    def provider_order(self, capability: Capability) -> list[str]:
        return [name for name in self._registry.order(capability) if name in self._providers]

    async def _with_fallback(
        self,
        capability: Capability,
        call: Callable[[IAIProvider], Awaitable[_T]],
    ) -> _T:
        order = self.provider_order(capability)
        if not order:
            raise ConfigurationError(_NO_PROVIDER_MESSAGES[capability])

        *fallbacks, last = order
        for index, name in enumerate(fallbacks):
            try:
                return await call(self._providers[name])
            except Exception as exc:
                self._logger.warning(
                    "provider_fallback",
                    capability=capability.value,
                    provider=name,
                    next_provider=order[index + 1],
                    error=error_message(exc),
                )

        # The last provider's error propagates unchanged.
        return await call(self._providers[last])

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        messages: list[ChatMessage],
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        json_mode: bool = True,
    ) -> AiGenerateResult:
        """Run a chat completion on the first provider that succeeds."""
        return await self._with_fallback(
            Capability.CHAT,
            lambda provider: provider.generate_text(
                messages,
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=json_mode,
            ),
        )

    async def generate_embeddings(self, texts: list[str]) -> AiEmbeddingResult:
        """Embed *texts* with the first provider that succeeds.

        All vectors of one result come from the same provider and model.
        """
        return await self._with_fallback(
            Capability.EMBEDDING,
            lambda provider: provider.embed(texts),
        )

    async def extract_vision_text(
        self,
        image_bytes: bytes,
        prompt: str,
        media_type: str = "",
    ) -> AiVisionResult:
        """Transcribe or describe an image with the first vision provider that succeeds."""
        return await self._with_fallback(
            Capability.VISION,
            lambda provider: provider.extract_vision_text(
                image_bytes, prompt, media_type=media_type
            ),
        )

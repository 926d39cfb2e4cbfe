"""Abstract base class for AI backends.

One concrete adapter per vendor (OpenRouter, OpenAI, Gemini, Anthropic).
An adapter may support only some capabilities; :meth:`is_configured`
tells the :class:`~coursemind.services.ai_client.MultiProviderClient`
whether it belongs in a capability's fallback chain.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from coursemind.models.ai import (
    AiEmbeddingResult,
    AiGenerateResult,
    AiVisionResult,
    Capability,
    ChatMessage,
)


# Concrete implementations: OpenAICompatibleProvider, GeminiProvider, AnthropicProvider
# Located in: coursemind/providers/ai/
class IAIProvider(ABC):
    """Contract for chat, embedding and vision calls against one vendor."""

    @abstractmethod
    async def generate_text(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.2,
        max_tokens: int = 1200,
        json_mode: bool = True,
    ) -> AiGenerateResult:
        """Run a chat completion.

        Parameters
        ----------
        messages:
            Conversation in order; a leading ``system`` message sets behaviour.
        temperature:
            Sampling temperature.
        max_tokens:
            Upper bound on completion tokens.
        json_mode:
            Ask the backend for a JSON object response where supported.

        Raises
        ------
        coursemind.utils.errors.ConfigurationError
            If chat is not configured for this provider.
        coursemind.utils.errors.ProviderError
            If the API call fails or returns no content.
        """

    @abstractmethod
    async def embed(self, texts: list[str]) -> AiEmbeddingResult:
        """Embed *texts*, returning one vector per input in order.

        Raises
        ------
        coursemind.utils.errors.ConfigurationError
            If embeddings are not configured for this provider.
        coursemind.utils.errors.ProviderError
            If the API call fails.
        """

    @abstractmethod
    async def extract_vision_text(
        self,
        image_bytes: bytes,
        prompt: str,
        media_type: str = "",
    ) -> AiVisionResult:
        """Ask a vision-capable model to transcribe or describe an image.

        An empty *media_type* is detected from the image magic bytes.

        Raises
        ------
        coursemind.utils.errors.ConfigurationError
            If vision is not configured for this provider.
        coursemind.utils.errors.ProviderError
            If the API call fails.
        """

    @abstractmethod
    def is_configured(self, capability: Capability) -> bool:
        """Return ``True`` if the key and model for *capability* are set."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the registry name of this provider, e.g. ``"openrouter"``."""

"""AI backend adapters implementing :class:`~coursemind.interfaces.ai_provider.IAIProvider`."""

from coursemind.providers.ai.anthropic_provider import AnthropicProvider
from coursemind.providers.ai.gemini_provider import GeminiProvider
from coursemind.providers.ai.openai_compatible_provider import OpenAICompatibleProvider

__all__ = ["AnthropicProvider", "GeminiProvider", "OpenAICompatibleProvider"]

"""Helpers shared by the AI provider adapters."""

from __future__ import annotations

import time

from coursemind.models.ai import Capability, ProviderConfig
from coursemind.utils.errors import ConfigurationError

_DISPLAY_NAMES: dict[str, str] = {
    "openrouter": "OpenRouter",
    "openai": "OpenAI",
    "gemini": "Gemini",
    "anthropic": "Anthropic",
}

_CAPABILITY_NOUNS: dict[Capability, str] = {
    Capability.CHAT: "chat",
    Capability.EMBEDDING: "embeddings",
    Capability.VISION: "vision",
}


def display_name(provider: str) -> str:
    return _DISPLAY_NAMES.get(provider, provider)


def require_configured(config: ProviderConfig, capability: Capability) -> str:
    """Return the model id for *capability* or raise a terminal error.

    Raises
    ------
    ConfigurationError
        e.g. ``"OpenAI embeddings are not configured."``
    """
    if not config.is_configured(capability):
        noun = _CAPABILITY_NOUNS[capability]
        verb = "are" if capability is Capability.EMBEDDING else "is"
        raise ConfigurationError(
            message=f"{display_name(config.name)} {noun} {verb} not configured.",
            provider_name=config.name,
        )
    return config.model_for(capability)


def detect_media_type(image_bytes: bytes) -> str:
    """Detect an image MIME type from its magic bytes (PNG by default)."""
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image_bytes[:2] == b"\xff\xd8":
        return "image/jpeg"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "image/png"


class Stopwatch:
    """Monotonic latency timer: ``with Stopwatch() as sw: ...; sw.elapsed_ms``."""

    def __enter__(self) -> "Stopwatch":
        self._start = time.perf_counter()
        self.elapsed_ms = 0
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.elapsed_ms = int((time.perf_counter() - self._start) * 1000)

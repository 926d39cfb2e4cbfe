"""Anthropic (Claude) AI provider adapter.

Wraps ``anthropic.AsyncAnthropic`` to implement :class:`IAIProvider`.
Anthropic offers no embeddings endpoint, so :meth:`embed` always raises a
terminal :class:`ConfigurationError` and the provider never joins the
embedding fallback chain.

Unlike OpenAI, the Messages API takes the system prompt as a top-level
parameter and has no JSON response mode.  JSON is requested through the
prompt and recovered by the structured-output parser.
"""

from __future__ import annotations

import base64
from typing import Any

import anthropic
import structlog

from coursemind.interfaces.ai_provider import IAIProvider
from coursemind.models.ai import (
    AiEmbeddingResult,
    AiGenerateResult,
    AiUsage,
    AiVisionResult,
    Capability,
    ChatMessage,
    ProviderConfig,
)
from coursemind.providers.ai.base import Stopwatch, detect_media_type, require_configured
from coursemind.utils.errors import ConfigurationError, ProviderError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_VISION_MAX_TOKENS = 4000


def _normalize_usage(usage: Any) -> AiUsage:
    if usage is None:
        return AiUsage()
    prompt = getattr(usage, "input_tokens", None)
    completion = getattr(usage, "output_tokens", None)
    total = None
    if prompt is not None or completion is not None:
        total = (prompt or 0) + (completion or 0)
    return AiUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def _text_of(response: Any) -> str:
    return "\n".join(block.text for block in response.content if block.type == "text")


class AnthropicProvider(IAIProvider):
    """AI provider backed by the Anthropic Messages API (chat and vision)."""

    def __init__(
        self,
        config: ProviderConfig,
        timeout_seconds: float = 60.0,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._config = config
        self._client = client or anthropic.AsyncAnthropic(
            api_key=config.api_key or "unset",
            timeout=timeout_seconds,
        )

    async def _create(self, **request: Any) -> Any:
        try:
            return await self._client.messages.create(**request)
        except anthropic.RateLimitError as exc:
            raise RateLimitError(
                message=f"Anthropic rate limit exceeded: {exc}",
                provider_name=self._config.name,
            ) from exc
        except anthropic.APIError as exc:
            raise ProviderError(
                message=f"Anthropic request failed: {exc}",
                provider_name=self._config.name,
            ) from exc

    async def generate_text(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.2,
        max_tokens: int = 1200,
        json_mode: bool = True,
    ) -> AiGenerateResult:
        model = require_configured(self._config, Capability.CHAT)
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        request: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [
                {"role": m.role, "content": m.content} for m in messages if m.role != "system"
            ],
        }
        if system:
            request["system"] = system

        with Stopwatch() as sw:
            response = await self._create(**request)

        content = _text_of(response)
        if not content:
            raise ProviderError(
                message="Anthropic returned no text content.",
                provider_name=self._config.name,
            )
        usage = _normalize_usage(response.usage)
        logger.info(
            "ai_completion",
            provider=self._config.name,
            model=model,
            latency_ms=sw.elapsed_ms,
            total_tokens=usage.total_tokens,
        )
        return AiGenerateResult(
            provider=self._config.name,
            model=model,
            content=content,
            usage=usage,
            latency_ms=sw.elapsed_ms,
        )

    async def embed(self, texts: list[str]) -> AiEmbeddingResult:
        raise ConfigurationError(
            message="Anthropic embeddings are not configured.",
            provider_name=self._config.name,
        )

    async def extract_vision_text(
        self,
        image_bytes: bytes,
        prompt: str,
        media_type: str = "",
    ) -> AiVisionResult:
        model = require_configured(self._config, Capability.VISION)
        with Stopwatch() as sw:
            response = await self._create(
                model=model,
                max_tokens=_VISION_MAX_TOKENS,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": media_type or detect_media_type(image_bytes),
                                    "data": base64.b64encode(image_bytes).decode("utf-8"),
                                },
                            },
                            {"type": "text", "text": prompt},
                        ],
                    }
                ],
            )

        text = _text_of(response)
        if not text:
            raise ProviderError(
                message="Anthropic vision returned no text content.",
                provider_name=self._config.name,
            )
        logger.info(
            "ai_vision_extract",
            provider=self._config.name,
            model=model,
            latency_ms=sw.elapsed_ms,
        )
        return AiVisionResult(
            provider=self._config.name,
            model=model,
            text=text,
            usage=_normalize_usage(response.usage),
            latency_ms=sw.elapsed_ms,
        )

    def is_configured(self, capability: Capability) -> bool:
        if capability is Capability.EMBEDDING:
            return False
        return self._config.is_configured(capability)

    def get_provider_name(self) -> str:
        return self._config.name

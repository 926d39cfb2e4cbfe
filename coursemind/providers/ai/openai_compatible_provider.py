"""OpenAI-compatible AI provider adapter (OpenAI and OpenRouter).

Wraps ``openai.AsyncOpenAI`` to implement :class:`IAIProvider`.  OpenRouter
speaks the same REST dialect, so one adapter serves both: the registry
passes a :class:`ProviderConfig` with OpenRouter's ``base_url`` and its
optional ``HTTP-Referer`` / ``X-Title`` attribution headers.
"""

from __future__ import annotations

import base64
from typing import Any

import openai
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
from coursemind.providers.ai.base import (
    Stopwatch,
    detect_media_type,
    display_name,
    require_configured,
)
from coursemind.utils.errors import ProviderError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

# Per-request input cap of the embeddings endpoint.
_EMBEDDING_BATCH_LIMIT = 2048
_VISION_MAX_TOKENS = 4000


def _normalize_usage(usage: Any) -> AiUsage:
    if usage is None:
        return AiUsage()
    return AiUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", None),
        completion_tokens=getattr(usage, "completion_tokens", None),
        total_tokens=getattr(usage, "total_tokens", None),
    )


class OpenAICompatibleProvider(IAIProvider):
    """AI provider backed by an OpenAI-compatible REST API.

    Parameters
    ----------
    config:
        Credentials and model ids.  ``config.name`` is ``"openai"`` or
        ``"openrouter"`` and is reported on every result.
    timeout_seconds:
        Per-request timeout handed to the SDK client.
    client:
        Pre-built client, mainly for tests.
    """

    def __init__(
        self,
        config: ProviderConfig,
        timeout_seconds: float = 60.0,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self._config = config
        if client is None:
            client_kwargs: dict[str, Any] = {
                "api_key": config.api_key or "unset",
                "timeout": openai.Timeout(timeout_seconds, connect=5.0),
            }
            if config.base_url:
                client_kwargs["base_url"] = config.base_url
            if config.extra_headers:
                client_kwargs["default_headers"] = dict(config.extra_headers)
            client = openai.AsyncOpenAI(**client_kwargs)
        self._client = client

    # ------------------------------------------------------------------
    # IAIProvider implementation
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.2,
        max_tokens: int = 1200,
        json_mode: bool = True,
    ) -> AiGenerateResult:
        model = require_configured(self._config, Capability.CHAT)
        request: dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        try:
            with Stopwatch() as sw:
                response = await self._client.chat.completions.create(**request)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{display_name(self._config.name)} rate limit exceeded: {exc}",
                provider_name=self._config.name,
            ) from exc
        except openai.APIError as exc:
            raise ProviderError(
                message=f"{display_name(self._config.name)} request failed: {exc}",
                provider_name=self._config.name,
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderError(
                message=f"{display_name(self._config.name)} returned an empty response.",
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
            model=getattr(response, "model", None) or model,
            content=content,
            usage=usage,
            latency_ms=sw.elapsed_ms,
        )

    async def embed(self, texts: list[str]) -> AiEmbeddingResult:
        model = require_configured(self._config, Capability.EMBEDDING)
        vectors: list[list[float]] = []
        prompt_tokens = 0
        total_tokens = 0

        with Stopwatch() as sw:
            for offset in range(0, len(texts), _EMBEDDING_BATCH_LIMIT):
                batch = texts[offset : offset + _EMBEDDING_BATCH_LIMIT]
                try:
                    response = await self._client.embeddings.create(model=model, input=batch)
                except openai.RateLimitError as exc:
                    raise RateLimitError(
                        message=f"{display_name(self._config.name)} rate limit exceeded: {exc}",
                        provider_name=self._config.name,
                    ) from exc
                except openai.APIError as exc:
                    raise ProviderError(
                        message=f"{display_name(self._config.name)} embeddings failed: {exc}",
                        provider_name=self._config.name,
                    ) from exc
                # The API may return items out of order; ``index`` is authoritative.
                ordered = sorted(response.data, key=lambda item: item.index)
                vectors.extend(list(item.embedding) for item in ordered)
                if response.usage is not None:
                    prompt_tokens += response.usage.prompt_tokens or 0
                    total_tokens += response.usage.total_tokens or 0

        logger.info(
            "ai_embeddings",
            provider=self._config.name,
            model=model,
            inputs=len(texts),
            latency_ms=sw.elapsed_ms,
        )
        return AiEmbeddingResult(
            provider=self._config.name,
            model=model,
            embeddings=vectors,
            usage=AiUsage(prompt_tokens=prompt_tokens, total_tokens=total_tokens),
            latency_ms=sw.elapsed_ms,
        )

    async def extract_vision_text(
        self,
        image_bytes: bytes,
        prompt: str,
        media_type: str = "",
    ) -> AiVisionResult:
        model = require_configured(self._config, Capability.VISION)
        b64 = base64.b64encode(image_bytes).decode("utf-8")
        mime = media_type or detect_media_type(image_bytes)

        try:
            with Stopwatch() as sw:
                response = await self._client.chat.completions.create(
                    model=model,
                    messages=[
                        {
                            "role": "user",
                            "content": [
                                {"type": "text", "text": prompt},
                                {
                                    "type": "image_url",
                                    "image_url": {"url": f"data:{mime};base64,{b64}"},
                                },
                            ],
                        }
                    ],
                    max_tokens=_VISION_MAX_TOKENS,
                )
        except openai.APIError as exc:
            raise ProviderError(
                message=f"{display_name(self._config.name)} vision request failed: {exc}",
                provider_name=self._config.name,
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderError(
                message=f"{display_name(self._config.name)} vision returned an empty response.",
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
            text=content,
            usage=_normalize_usage(response.usage),
            latency_ms=sw.elapsed_ms,
        )

    def is_configured(self, capability: Capability) -> bool:
        return self._config.is_configured(capability)

    def get_provider_name(self) -> str:
        return self._config.name

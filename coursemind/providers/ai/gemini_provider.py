"""Google Gemini AI provider adapter (REST via httpx).

Talks to the Generative Language REST API directly:

- ``models/{model}:generateContent`` for chat and vision,
- ``models/{model}:batchEmbedContents`` for embeddings.

The ``httpx.AsyncClient`` is injected via the constructor for testability
and shared with the rest of the application.
"""

from __future__ import annotations

import base64
from typing import Any

import httpx
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
from coursemind.utils.errors import ProviderError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
# batchEmbedContents accepts at most 100 requests per call.
_EMBEDDING_BATCH_LIMIT = 100
_VISION_MAX_TOKENS = 4000


def normalize_gemini_usage(metadata: dict[str, Any] | None) -> AiUsage:
    """Map Gemini ``usageMetadata`` onto :class:`AiUsage`."""
    if not metadata:
        return AiUsage()
    return AiUsage(
        prompt_tokens=metadata.get("promptTokenCount"),
        completion_tokens=metadata.get("candidatesTokenCount"),
        total_tokens=metadata.get("totalTokenCount"),
    )


def _candidate_text(data: dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class GeminiProvider(IAIProvider):
    """AI provider backed by the Gemini REST API."""

    def __init__(self, config: ProviderConfig, http_client: httpx.AsyncClient) -> None:
        self._config = config
        self._http = http_client
        self._base_url = (config.base_url or _DEFAULT_BASE_URL).rstrip("/")

    # -- Private helpers -------------------------------------------------------

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/{path}"
        try:
            response = await self._http.post(
                url,
                json=body,
                headers={"x-goog-api-key": self._config.api_key},
            )
        except httpx.HTTPError as exc:
            raise ProviderError(
                message=f"Gemini request failed: {exc}",
                provider_name=self._config.name,
            ) from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code == 429:
            raise RateLimitError(
                message="Gemini rate limit exceeded.",
                provider_name=self._config.name,
            )
        if response.status_code >= 400:
            detail = (data.get("error") or {}).get("message") if isinstance(data, dict) else None
            raise ProviderError(
                message=detail or f"Gemini request failed with status {response.status_code}.",
                provider_name=self._config.name,
            )
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _to_contents(messages: list[ChatMessage]) -> tuple[str, list[dict[str, Any]]]:
        """Split *messages* into a system instruction and Gemini ``contents``."""
        system_parts = [m.content for m in messages if m.role == "system"]
        contents = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in messages
            if m.role != "system"
        ]
        return "\n\n".join(system_parts), contents

    # -- IAIProvider implementation --------------------------------------------

    async def generate_text(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.2,
        max_tokens: int = 1200,
        json_mode: bool = True,
    ) -> AiGenerateResult:
        model = require_configured(self._config, Capability.CHAT)
        system, contents = self._to_contents(messages)
        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        }
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        body: dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        with Stopwatch() as sw:
            data = await self._post(f"models/{model}:generateContent", body)

        content = _candidate_text(data)
        if not content:
            raise ProviderError(
                message="Gemini returned an empty response.",
                provider_name=self._config.name,
            )
        usage = normalize_gemini_usage(data.get("usageMetadata"))
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
        model = require_configured(self._config, Capability.EMBEDDING)
        vectors: list[list[float]] = []

        with Stopwatch() as sw:
            for offset in range(0, len(texts), _EMBEDDING_BATCH_LIMIT):
                requests = []
                for text in texts[offset : offset + _EMBEDDING_BATCH_LIMIT]:
                    item: dict[str, Any] = {
                        "model": f"models/{model}",
                        "content": {"parts": [{"text": text}]},
                    }
                    if self._config.embedding_dimensions:
                        item["outputDimensionality"] = self._config.embedding_dimensions
                    requests.append(item)
                data = await self._post(
                    f"models/{model}:batchEmbedContents", {"requests": requests}
                )
                vectors.extend(
                    list(entry.get("values") or []) for entry in data.get("embeddings") or []
                )

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
            latency_ms=sw.elapsed_ms,
        )

    async def extract_vision_text(
        self,
        image_bytes: bytes,
        prompt: str,
        media_type: str = "",
    ) -> AiVisionResult:
        model = require_configured(self._config, Capability.VISION)
        body = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {
                            "inlineData": {
                                "mimeType": media_type or detect_media_type(image_bytes),
                                "data": base64.b64encode(image_bytes).decode("utf-8"),
                            }
                        },
                    ],
                }
            ],
            "generationConfig": {"temperature": 0.0, "maxOutputTokens": _VISION_MAX_TOKENS},
        }

        with Stopwatch() as sw:
            data = await self._post(f"models/{model}:generateContent", body)

        text = _candidate_text(data)
        if not text:
            raise ProviderError(
                message="Gemini vision returned an empty response.",
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
            usage=normalize_gemini_usage(data.get("usageMetadata")),
            latency_ms=sw.elapsed_ms,
        )

    def is_configured(self, capability: Capability) -> bool:
        return self._config.is_configured(capability)

    def get_provider_name(self) -> str:
        return self._config.name

"""Shared plumbing for the generation use-cases.

Every use-case follows the same path: retrieve material context, build a
system/user prompt pair, call the text capability of the multi-provider
client in JSON mode, then hand the raw content to its structured-output
parser.  :class:`GenerationService` owns the middle part and writes one
request-log row per call, successful or not.
"""

from __future__ import annotations

import time

from coursemind.interfaces.request_logger import IRequestLogger
from coursemind.models.ai import AiGenerateResult, AiRequestLog, ChatMessage
from coursemind.services.ai_client import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    MultiProviderClient,
)
from coursemind.services.retrieval import RetrievalService
from coursemind.utils.errors import error_message
from coursemind.utils.logging import get_logger

NO_BLUEPRINT_CONTEXT = "No blueprint context provided."
NO_MATERIAL_CONTEXT = "No material context provided."


class GenerationService:
    """Base class holding the collaborators every use-case needs.

    Parameters
    ----------
    ai_client:
        Text generation with provider fallback.
    retrieval:
        Produces the ``Source n | ...`` material context.
    request_logger:
        Telemetry sink; one row per generation call.
    """

    feature = "generation"

    def __init__(
        self,
        ai_client: MultiProviderClient,
        retrieval: RetrievalService,
        request_logger: IRequestLogger,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self._ai = ai_client
        self._retrieval = retrieval
        self._request_logger = request_logger
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._logger = get_logger(self.__class__.__module__)

    async def _complete(self, class_id: str, system: str, user: str) -> AiGenerateResult:
        """Run one JSON-mode completion and log it."""
        messages = [
            ChatMessage(role="system", content=system),
            ChatMessage(role="user", content=user),
        ]
        started = time.perf_counter()
        try:
            result = await self._ai.generate_text(
                messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                json_mode=True,
            )
        except Exception as exc:
            await self._request_logger.log_request(
                AiRequestLog(
                    feature=self.feature,
                    provider="unknown",
                    model="",
                    status="error",
                    latency_ms=int((time.perf_counter() - started) * 1000),
                    class_id=class_id,
                    error=error_message(exc),
                )
            )
            raise

        await self._request_logger.log_request(
            AiRequestLog(
                feature=self.feature,
                provider=result.provider,
                model=result.model,
                latency_ms=result.latency_ms,
                usage=result.usage,
                class_id=class_id,
            )
        )
        return result

"""Abstract base class for AI request telemetry."""

from __future__ import annotations

from abc import ABC, abstractmethod

from coursemind.models.ai import AiRequestLog


# Concrete implementation: SQLiteRequestLogger (coursemind/providers/storage/)
class IRequestLogger(ABC):
    """Records provider, model, latency and usage for every AI call."""

    @abstractmethod
    async def log_request(self, entry: AiRequestLog) -> None:
        """Persist *entry*.  Implementations must not raise on write failure."""

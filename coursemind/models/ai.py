"""Provider-tagged AI call results and telemetry records.

Every call through :class:`~coursemind.services.ai_client.MultiProviderClient`
returns one of the ``Ai*Result`` models, tagged with the provider and
model that actually answered (which may not be the first provider tried).
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Capability(str, Enum):
    CHAT = "chat"
    EMBEDDING = "embedding"
    VISION = "vision"


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class AiUsage(BaseModel):
    """Token counters normalised across providers.  ``None`` = not reported."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class AiGenerateResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    content: str
    usage: AiUsage = Field(default_factory=AiUsage)
    latency_ms: int = 0


class AiEmbeddingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    embeddings: list[list[float]]
    usage: AiUsage = Field(default_factory=AiUsage)
    latency_ms: int = 0


class AiVisionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    text: str
    usage: AiUsage = Field(default_factory=AiUsage)
    latency_ms: int = 0


class AiRequestLog(BaseModel):
    """One telemetry row written by the request logger."""

    model_config = ConfigDict(frozen=True)

    feature: str
    provider: str
    model: str
    status: Literal["ok", "error"] = "ok"
    latency_ms: int = 0
    usage: AiUsage = Field(default_factory=AiUsage)
    class_id: str | None = None
    material_id: str | None = None
    error: str | None = None


class ProviderConfig(BaseModel):
    """Credentials and model ids for one AI backend.

    A capability is configured when the key and that capability's model
    are both non-empty.  Vision falls back to the chat model.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    api_key: str = ""
    chat_model: str = ""
    embedding_model: str = ""
    vision_model: str = ""
    base_url: str = ""
    extra_headers: dict[str, str] = Field(default_factory=dict)
    # Requested output size for backends that can truncate embeddings.
    embedding_dimensions: int | None = None

    def model_for(self, capability: Capability) -> str:
        if capability is Capability.CHAT:
            return self.chat_model
        if capability is Capability.EMBEDDING:
            return self.embedding_model
        return self.vision_model or self.chat_model

    def is_configured(self, capability: Capability) -> bool:
        return bool(self.api_key and self.model_for(capability))

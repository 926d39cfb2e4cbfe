"""Pydantic v2 data models for CourseMind.

All models are frozen: pipeline stages return new instances instead of
mutating shared state.
"""

from coursemind.models.ai import (
    AiEmbeddingResult,
    AiGenerateResult,
    AiRequestLog,
    AiUsage,
    AiVisionResult,
    Capability,
    ChatMessage,
)
from coursemind.models.chunks import ChunkDraft, MaterialChunk, RetrievedChunk
from coursemind.models.generation import (
    Blueprint,
    BlueprintObjective,
    BlueprintTopic,
    ChatCitation,
    ChatResponse,
    ChatTurn,
    Flashcard,
    FlashcardSet,
    Quiz,
    QuizQuestion,
)
from coursemind.models.jobs import BatchSummary, IngestionJob, JobStage, JobStatus, transition
from coursemind.models.materials import (
    ExtractionMethod,
    ExtractionResult,
    ExtractionStatus,
    Material,
    MaterialKind,
    MaterialSegment,
    MaterialStatus,
    OcrResult,
    SourceType,
)

__all__ = [
    "AiEmbeddingResult",
    "AiGenerateResult",
    "AiRequestLog",
    "AiUsage",
    "AiVisionResult",
    "BatchSummary",
    "Blueprint",
    "BlueprintObjective",
    "BlueprintTopic",
    "Capability",
    "ChatCitation",
    "ChatMessage",
    "ChatResponse",
    "ChatTurn",
    "ChunkDraft",
    "ExtractionMethod",
    "ExtractionResult",
    "ExtractionStatus",
    "Flashcard",
    "FlashcardSet",
    "IngestionJob",
    "JobStage",
    "JobStatus",
    "Material",
    "MaterialChunk",
    "MaterialKind",
    "MaterialSegment",
    "MaterialStatus",
    "OcrResult",
    "Quiz",
    "QuizQuestion",
    "RetrievedChunk",
    "SourceType",
    "transition",
]

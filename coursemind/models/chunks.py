"""Chunk models: chunker output, persisted chunks and retrieval hits."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from coursemind.models.materials import ExtractionMethod, SourceType


class ChunkDraft(BaseModel):
    """A token-bounded slice of a segment before it is embedded."""

    model_config = ConfigDict(frozen=True)

    source_type: SourceType
    source_index: int = Field(ge=1)
    section_title: str | None = None
    text: str
    token_count: int = Field(ge=0)
    extraction_method: ExtractionMethod = ExtractionMethod.TEXT
    quality_score: float | None = None


class MaterialChunk(BaseModel):
    """A persisted chunk with its embedding.

    All chunks of one material share the same embedding dimensionality,
    provider and model; they are always replaced together.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    material_id: str
    class_id: str
    material_title: str = ""
    source_type: SourceType
    source_index: int = Field(ge=1)
    section_title: str | None = None
    text: str
    token_count: int = Field(ge=0)
    embedding: list[float]
    embedding_provider: str
    embedding_model: str
    extraction_method: ExtractionMethod = ExtractionMethod.TEXT
    quality_score: float | None = None


class RetrievedChunk(BaseModel):
    """A read-only nearest-neighbour hit from the chunk store."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    material_id: str
    material_title: str = ""
    source_type: str
    source_index: int
    section_title: str | None = None
    text: str
    # None for rows written without a stored count; retrieval re-estimates.
    token_count: int | None = None
    # Cosine similarity (1.0 = identical).
    similarity: float = 0.0

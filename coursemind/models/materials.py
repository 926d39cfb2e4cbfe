"""Material and extraction data models.

A :class:`Material` is one uploaded course document.  The ingestion
pipeline turns its bytes into :class:`MaterialSegment` objects (pages,
slides, a whole document or a single image) that are chunked and embedded
afterwards.  Segments are transient: only chunks are persisted.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MaterialKind(str, Enum):
    """Supported upload formats."""

    PDF = "pdf"
    DOCX = "docx"
    PPTX = "pptx"
    IMAGE = "image"


class MaterialStatus(str, Enum):
    """User-facing processing outcome of a material.

    ``processing`` is the initial status written by the uploader; the
    pipeline only ever writes the other three.
    """

    PROCESSING = "processing"
    READY = "ready"
    NEEDS_VISION = "needs_vision"
    FAILED = "failed"


class SourceType(str, Enum):
    """Which logical unit of a document a segment came from."""

    PAGE = "page"
    SLIDE = "slide"
    DOCUMENT = "document"
    IMAGE = "image"


class ExtractionMethod(str, Enum):
    TEXT = "text"
    OCR = "ocr"
    VISION = "vision"


class ExtractionStatus(str, Enum):
    OK = "ok"
    NEEDS_VISION = "needs_vision"
    FAILED = "failed"


class Material(BaseModel):
    """An uploaded source document belonging to a class.

    ``metadata`` is free-form; the pipeline reads ``kind`` from it and
    writes ``warnings`` and ``extraction_stats`` back into it.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    class_id: str
    title: str = ""
    storage_path: str
    mime_type: str = ""
    status: MaterialStatus = MaterialStatus.PROCESSING
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def warnings(self) -> list[str]:
        raw = self.metadata.get("warnings")
        return [str(w) for w in raw] if isinstance(raw, list) else []


class MaterialSegment(BaseModel):
    """One extracted unit of text with its provenance."""

    model_config = ConfigDict(frozen=True)

    source_type: SourceType
    # 1-based page/slide number; 1 for whole-document and image segments.
    source_index: int = Field(ge=1)
    text: str
    section_title: str | None = None
    extraction_method: ExtractionMethod = ExtractionMethod.TEXT
    # OCR confidence (0-100) when the text came from OCR.
    quality_score: float | None = None


class ExtractionResult(BaseModel):
    """Outcome of native extraction or of the OCR pipeline."""

    model_config = ConfigDict(frozen=True)

    segments: list[MaterialSegment] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    status: ExtractionStatus = ExtractionStatus.OK
    stats: dict[str, int] = Field(default_factory=dict)


class OcrResult(BaseModel):
    """Raw OCR engine output for one image."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    # Mean word confidence, 0-100.
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)

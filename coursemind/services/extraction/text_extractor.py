"""Native text extraction for PDF, DOCX, PPTX and image materials.

:meth:`TextExtractor.extract` never raises.  Every outcome is an
:class:`~coursemind.models.materials.ExtractionResult`:

- ``ok``: at least one non-empty segment was found.
- ``needs_vision``: the file has no text layer (images, scanned PDFs) and
  must go through :class:`~coursemind.services.extraction.ocr_pipeline.OcrPipeline`.
- ``failed``: the parser raised, or a DOCX/PPTX parsed but held no text.
  The reason is carried as a warning.

Parsing libraries: PyMuPDF (``fitz``) for PDF, python-docx for DOCX and
python-pptx for PPTX.  All are synchronous, so parsing runs in a worker
thread.
"""

from __future__ import annotations

import asyncio
import io
import re
from pathlib import PurePosixPath

import docx
import fitz  # PyMuPDF
from pptx import Presentation

from coursemind.models.materials import (
    ExtractionMethod,
    ExtractionResult,
    ExtractionStatus,
    Material,
    MaterialKind,
    MaterialSegment,
    SourceType,
)
from coursemind.utils.errors import ExtractionError
from coursemind.utils.logging import get_logger

_HYPHEN_BREAK_RE = re.compile(r"-\n\s*")
_WHITESPACE_RE = re.compile(r"\s+")

_MIME_KINDS: dict[str, MaterialKind] = {
    "application/pdf": MaterialKind.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": MaterialKind.DOCX,
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": MaterialKind.PPTX,
}

_EXTENSION_KINDS: dict[str, MaterialKind] = {
    ".pdf": MaterialKind.PDF,
    ".docx": MaterialKind.DOCX,
    ".pptx": MaterialKind.PPTX,
    ".png": MaterialKind.IMAGE,
    ".jpg": MaterialKind.IMAGE,
    ".jpeg": MaterialKind.IMAGE,
    ".gif": MaterialKind.IMAGE,
    ".webp": MaterialKind.IMAGE,
    ".bmp": MaterialKind.IMAGE,
    ".tif": MaterialKind.IMAGE,
    ".tiff": MaterialKind.IMAGE,
}


def clean_text(text: str) -> str:
    """Normalise extracted text into a single whitespace-collapsed line.

    Drops carriage returns, re-joins words hyphenated across a line
    break and collapses every whitespace run to one space.
    """
    text = text.replace("\r", "")
    text = _HYPHEN_BREAK_RE.sub("", text)
    text = text.replace("\n", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def resolve_material_kind(material: Material) -> MaterialKind:
    """Decide how to parse *material*.

    Order: ``metadata["kind"]``, then MIME type, then file extension of
    ``storage_path``.  Unknown inputs default to PDF.
    """
    declared = material.metadata.get("kind")
    if isinstance(declared, str):
        try:
            return MaterialKind(declared.strip().lower())
        except ValueError:
            pass

    mime = (material.mime_type or "").split(";")[0].strip().lower()
    if mime in _MIME_KINDS:
        return _MIME_KINDS[mime]
    if mime.startswith("image/"):
        return MaterialKind.IMAGE

    suffix = PurePosixPath(material.storage_path).suffix.lower()
    return _EXTENSION_KINDS.get(suffix, MaterialKind.PDF)


def _stats(segments: list[MaterialSegment]) -> dict[str, int]:
    return {
        "char_count": sum(len(s.text) for s in segments),
        "segment_count": len(segments),
    }


class TextExtractor:
    """Converts raw file bytes into text segments without OCR."""

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    async def extract(self, data: bytes, kind: MaterialKind) -> ExtractionResult:
        """Extract native text from *data*.  Never raises."""
        if kind is MaterialKind.IMAGE:
            return ExtractionResult(
                status=ExtractionStatus.NEEDS_VISION,
                warnings=["Image extraction requires OCR/vision."],
            )

        try:
            result = await asyncio.to_thread(self._extract_sync, data, kind)
        except Exception as exc:
            # Parser libraries raise a zoo of types (RuntimeError, KeyError,
            # BadZipFile, lxml errors); all of them mean "unparseable file".
            message = str(exc).strip() or f"{kind.value.upper()} extraction failed."
            self._logger.warning("native_extraction_failed", kind=kind.value, error=message)
            return ExtractionResult(status=ExtractionStatus.FAILED, warnings=[message])

        self._logger.info(
            "native_extraction_complete",
            kind=kind.value,
            status=result.status.value,
            segments=len(result.segments),
        )
        return result

    # ------------------------------------------------------------------
    # Format-specific parsers (run in a worker thread)
    # ------------------------------------------------------------------

    def _extract_sync(self, data: bytes, kind: MaterialKind) -> ExtractionResult:
        if kind is MaterialKind.PDF:
            return self._extract_pdf(data)
        if kind is MaterialKind.DOCX:
            return self._extract_docx(data)
        if kind is MaterialKind.PPTX:
            return self._extract_pptx(data)
        raise ExtractionError(f"Unsupported material kind: {kind.value}")

    @staticmethod
    def _extract_pdf(data: bytes) -> ExtractionResult:
        segments: list[MaterialSegment] = []
        with fitz.open(stream=data, filetype="pdf") as doc:
            for page_number, page in enumerate(doc, start=1):
                text = clean_text(page.get_text("text"))
                if text:
                    segments.append(
                        MaterialSegment(
                            source_type=SourceType.PAGE,
                            source_index=page_number,
                            text=text,
                            extraction_method=ExtractionMethod.TEXT,
                        )
                    )

        if not segments:
            return ExtractionResult(
                status=ExtractionStatus.NEEDS_VISION,
                warnings=["PDF has no extractable text; OCR required."],
                stats=_stats(segments),
            )
        return ExtractionResult(segments=segments, stats=_stats(segments))

    @staticmethod
    def _extract_docx(data: bytes) -> ExtractionResult:
        document = docx.Document(io.BytesIO(data))
        parts = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    parts.append(" ".join(cells))

        text = clean_text("\n".join(parts))
        if not text:
            return ExtractionResult(
                status=ExtractionStatus.FAILED,
                warnings=["DOCX extraction returned empty text."],
            )
        segments = [
            MaterialSegment(source_type=SourceType.DOCUMENT, source_index=1, text=text)
        ]
        return ExtractionResult(segments=segments, stats=_stats(segments))

    @staticmethod
    def _extract_pptx(data: bytes) -> ExtractionResult:
        presentation = Presentation(io.BytesIO(data))
        segments: list[MaterialSegment] = []
        for slide_number, slide in enumerate(presentation.slides, start=1):
            parts: list[str] = []
            for shape in slide.shapes:
                if shape.has_text_frame:
                    parts.extend(p.text for p in shape.text_frame.paragraphs if p.text.strip())
                elif getattr(shape, "has_table", False) and shape.has_table:
                    for row in shape.table.rows:
                        parts.extend(c.text for c in row.cells if c.text.strip())

            text = clean_text("\n".join(parts))
            if not text:
                continue
            title_shape = slide.shapes.title
            title = clean_text(title_shape.text) if title_shape is not None else ""
            segments.append(
                MaterialSegment(
                    source_type=SourceType.SLIDE,
                    source_index=slide_number,
                    section_title=title or None,
                    text=text,
                )
            )

        if not segments:
            return ExtractionResult(
                status=ExtractionStatus.FAILED,
                warnings=["PPTX extraction returned empty text."],
            )
        return ExtractionResult(segments=segments, stats=_stats(segments))

"""OCR pipeline with vision-model escalation.

Runs when native extraction reports ``needs_vision``:

- **Images** get one OCR pass.
- **PDFs** are rasterised page by page (PyMuPDF, zoom 1.5) up to
  ``max_pdf_pages``.  Each page is OCR'd independently and pages are
  processed through :func:`~coursemind.utils.concurrency.map_with_concurrency`
  so at most ``page_concurrency`` OCR/vision calls are in flight.  Output
  keeps page order.

Every OCR result is checked by :func:`is_low_quality`.  Low-quality output
is replaced by a vision-model transcription (``extraction_method=vision``).
Otherwise the OCR text is kept (``extraction_method=ocr``) with its
confidence as ``quality_score``.

Each vision call is written to the request logger as ``material_ocr``,
failures included.  Vision errors propagate to the caller.  A missing
vision configuration is a terminal ``ConfigurationError``; a failed
request is transient.
"""

from __future__ import annotations

import asyncio
import re

import fitz  # PyMuPDF

from coursemind.interfaces.ocr_provider import IOCRProvider
from coursemind.interfaces.request_logger import IRequestLogger
from coursemind.models.ai import AiRequestLog, AiVisionResult
from coursemind.models.materials import (
    ExtractionMethod,
    ExtractionResult,
    ExtractionStatus,
    MaterialKind,
    MaterialSegment,
    OcrResult,
    SourceType,
)
from coursemind.services.ai_client import MultiProviderClient
from coursemind.services.extraction.text_extractor import clean_text
from coursemind.utils.concurrency import map_with_concurrency
from coursemind.utils.errors import OCRExtractionError, error_message
from coursemind.utils.logging import get_logger

VISION_PROMPT = (
    "Extract all readable text. Describe diagrams and equations. Prefer LaTeX for equations."
)

OCR_FEATURE = "material_ocr"

# Quality gate thresholds.
MIN_OCR_TEXT_LENGTH = 30
MIN_OCR_CONFIDENCE = 60.0
MAX_SYMBOL_RATIO = 0.55

DEFAULT_RENDER_SCALE = 1.5

_SYMBOL_RE = re.compile(r"[^a-z0-9\s]", re.IGNORECASE)


def is_low_quality(text: str, confidence: float) -> bool:
    """Return ``True`` when OCR output should be replaced by a vision call.

    Low quality means any of: fewer than 30 characters after trimming,
    confidence below 60, or more than 55% of characters being neither
    alphanumeric nor whitespace.
    """
    trimmed = text.strip()
    if len(trimmed) < MIN_OCR_TEXT_LENGTH:
        return True
    if confidence < MIN_OCR_CONFIDENCE:
        return True
    symbols = len(_SYMBOL_RE.findall(trimmed))
    return symbols / len(trimmed) > MAX_SYMBOL_RATIO


def rasterize_pdf(
    data: bytes,
    max_pages: int,
    scale: float = DEFAULT_RENDER_SCALE,
) -> tuple[list[bytes], int]:
    """Render up to *max_pages* PDF pages to PNG bytes.

    Returns
    -------
    tuple[list[bytes], int]
        PNG bytes per rendered page (in page order) and the document's
        total page count.
    """
    matrix = fitz.Matrix(scale, scale)
    with fitz.open(stream=data, filetype="pdf") as doc:
        total = doc.page_count
        images = [
            doc.load_page(index).get_pixmap(matrix=matrix).tobytes("png")
            for index in range(min(total, max_pages))
        ]
    return images, total


class OcrPipeline:
    """Turns image-only materials into segments via OCR and vision fallback.

    Parameters
    ----------
    ocr_provider:
        OCR engine used for the first pass.
    ai_client:
        Multi-provider client used for vision escalation.
    page_concurrency:
        Maximum number of PDF pages processed at once.
    max_pdf_pages:
        Pages beyond this count are skipped and reported as a warning.
    request_logger:
        Receives one row per vision call.  Optional so the pipeline can run
        without telemetry.
    """

    def __init__(
        self,
        ocr_provider: IOCRProvider,
        ai_client: MultiProviderClient,
        page_concurrency: int = 3,
        max_pdf_pages: int = 30,
        render_scale: float = DEFAULT_RENDER_SCALE,
        request_logger: IRequestLogger | None = None,
    ) -> None:
        self._ocr = ocr_provider
        self._ai = ai_client
        self._page_concurrency = page_concurrency
        self._max_pdf_pages = max_pdf_pages
        self._render_scale = render_scale
        self._request_logger = request_logger
        self._logger = get_logger(__name__)

    async def run(
        self,
        data: bytes,
        kind: MaterialKind,
        class_id: str | None = None,
        material_id: str | None = None,
    ) -> ExtractionResult:
        """OCR *data* and return the resulting segments and warnings.

        *class_id* and *material_id* only tag the request-log rows.
        """
        tags = {"class_id": class_id, "material_id": material_id}
        if kind is MaterialKind.IMAGE:
            segment, warning = await self._process_image(data, SourceType.IMAGE, 1, tags)
            segments = [segment] if segment else []
            warnings = [warning] if warning else []
        elif kind is MaterialKind.PDF:
            segments, warnings = await self._process_pdf(data, tags)
        else:
            return ExtractionResult(
                status=ExtractionStatus.NEEDS_VISION,
                warnings=["OCR not supported for this material type."],
            )

        return ExtractionResult(
            segments=segments,
            warnings=warnings,
            status=ExtractionStatus.OK if segments else ExtractionStatus.NEEDS_VISION,
            stats={
                "char_count": sum(len(s.text) for s in segments),
                "segment_count": len(segments),
            },
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _process_pdf(
        self, data: bytes, tags: dict[str, str | None]
    ) -> tuple[list[MaterialSegment], list[str]]:
        pages, total_pages = await asyncio.to_thread(
            rasterize_pdf, data, self._max_pdf_pages, self._render_scale
        )
        self._logger.info("pdf_rasterized", rendered=len(pages), total_pages=total_pages)

        results = await map_with_concurrency(
            pages,
            self._page_concurrency,
            lambda image, index: self._process_image(
                image, SourceType.PAGE, index + 1, tags
            ),
        )

        segments = [segment for segment, _ in results if segment is not None]
        warnings = [warning for _, warning in results if warning]
        if total_pages > self._max_pdf_pages:
            warnings.append(f"OCR limited to first {self._max_pdf_pages} pages.")
        return segments, warnings

    async def _recognize(self, image: bytes) -> OcrResult:
        try:
            return await self._ocr.recognize(image)
        except OCRExtractionError as exc:
            # An unreadable page scores as empty output and escalates to vision.
            self._logger.warning(
                "ocr_pass_failed",
                provider=self._ocr.get_provider_name(),
                error=exc.message,
            )
            return OcrResult()

    async def _process_image(
        self,
        image: bytes,
        source_type: SourceType,
        index: int,
        tags: dict[str, str | None],
    ) -> tuple[MaterialSegment | None, str | None]:
        ocr = await self._recognize(image)

        if not is_low_quality(ocr.text, ocr.confidence):
            text = clean_text(ocr.text)
            segment = MaterialSegment(
                source_type=source_type,
                source_index=index,
                text=text,
                extraction_method=ExtractionMethod.OCR,
                quality_score=ocr.confidence,
            )
            return (segment if text else None), None

        self._logger.info(
            "vision_fallback",
            source_type=source_type.value,
            source_index=index,
            ocr_chars=len(ocr.text.strip()),
            ocr_confidence=round(ocr.confidence, 2),
        )
        vision = await self._extract_vision(image, tags)
        text = clean_text(vision.text)
        if source_type is SourceType.PAGE:
            warning = f"OCR low quality on page {index}; used vision fallback."
        else:
            warning = "OCR low quality; used vision fallback."
        if not text:
            return None, warning
        return (
            MaterialSegment(
                source_type=source_type,
                source_index=index,
                text=text,
                extraction_method=ExtractionMethod.VISION,
            ),
            warning,
        )

    async def _extract_vision(self, image: bytes, tags: dict[str, str | None]) -> AiVisionResult:
        try:
            result = await self._ai.extract_vision_text(image, VISION_PROMPT)
        except Exception as exc:
            await self._log_request(
                AiRequestLog(
                    feature=OCR_FEATURE,
                    provider="unknown",
                    model="",
                    status="error",
                    error=error_message(exc),
                    **tags,
                )
            )
            raise

        await self._log_request(
            AiRequestLog(
                feature=OCR_FEATURE,
                provider=result.provider,
                model=result.model,
                latency_ms=result.latency_ms,
                usage=result.usage,
                **tags,
            )
        )
        return result

    async def _log_request(self, entry: AiRequestLog) -> None:
        if self._request_logger is not None:
            await self._request_logger.log_request(entry)

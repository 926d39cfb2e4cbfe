"""Tesseract OCR provider for scanned pages and images.

Wraps ``pytesseract.image_to_data`` so a single call yields both the text
and per-word confidences.  Words are regrouped into lines by Tesseract's
``(block, paragraph, line)`` numbering, and the reported confidence is the
mean of the valid (non-negative) word confidences on a 0-100 scale.

Tesseract is CPU-bound and synchronous, so recognition runs in a worker
thread via :func:`asyncio.to_thread` to keep the event loop responsive.
"""

from __future__ import annotations

import asyncio
import io
from typing import Any

import pytesseract
from PIL import Image, UnidentifiedImageError

from coursemind.interfaces.ocr_provider import IOCRProvider
from coursemind.models.materials import OcrResult
from coursemind.utils.errors import OCRExtractionError
from coursemind.utils.logging import get_logger


class TesseractOCRProvider(IOCRProvider):
    """OCR provider backed by Google Tesseract via pytesseract.

    Parameters
    ----------
    language:
        Tesseract language code(s), e.g. ``"eng"`` or ``"eng+deu"``.
    config:
        Extra Tesseract CLI flags (page segmentation mode and so on).
    """

    def __init__(self, language: str = "eng", config: str = "") -> None:
        self._language = language
        self._config = config
        self._available: bool | None = None
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # IOCRProvider interface
    # ------------------------------------------------------------------

    async def recognize(self, image_bytes: bytes) -> OcrResult:
        """Run Tesseract on *image_bytes* in a worker thread."""
        result = await asyncio.to_thread(self._recognize_sync, image_bytes)
        self._logger.debug(
            "tesseract_recognized",
            chars=len(result.text),
            confidence=round(result.confidence, 2),
        )
        return result

    def get_provider_name(self) -> str:
        return "tesseract"

    def is_available(self) -> bool:
        """Return ``True`` if the Tesseract binary can be invoked (cached)."""
        if self._available is None:
            try:
                pytesseract.get_tesseract_version()
                self._available = True
            except (pytesseract.TesseractNotFoundError, OSError):
                self._available = False
        return self._available

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _recognize_sync(self, image_bytes: bytes) -> OcrResult:
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                image.load()
                # Tesseract handles L/RGB reliably; palette and alpha modes
                # produce noise.
                prepared = image.convert("RGB") if image.mode not in ("L", "RGB") else image.copy()
        except (UnidentifiedImageError, OSError) as exc:
            raise OCRExtractionError(
                message=f"Unreadable image: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        try:
            data = pytesseract.image_to_data(
                prepared,
                lang=self._language,
                config=self._config,
                output_type=pytesseract.Output.DICT,
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as exc:
            raise OCRExtractionError(
                message=f"Tesseract failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        return self.parse_image_data(data)

    @staticmethod
    def parse_image_data(data: dict[str, list[Any]]) -> OcrResult:
        """Convert ``image_to_data`` output into text plus mean confidence."""
        lines: dict[tuple[int, int, int], list[str]] = {}
        confidences: list[float] = []

        for i, raw_word in enumerate(data.get("text", [])):
            word = str(raw_word).strip()
            if not word:
                continue
            try:
                conf = float(data["conf"][i])
            except (KeyError, IndexError, TypeError, ValueError):
                conf = -1.0
            # conf == -1 marks layout rows rather than recognised words.
            if conf >= 0:
                confidences.append(conf)
            key = (
                int(data.get("block_num", [0] * (i + 1))[i]),
                int(data.get("par_num", [0] * (i + 1))[i]),
                int(data.get("line_num", [0] * (i + 1))[i]),
            )
            lines.setdefault(key, []).append(word)

        text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return OcrResult(text=text, confidence=max(0.0, min(100.0, confidence)))

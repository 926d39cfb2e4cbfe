"""Abstract base class for OCR engines."""

from __future__ import annotations

from abc import ABC, abstractmethod

from coursemind.models.materials import OcrResult


# Concrete implementation: TesseractOCRProvider (coursemind/providers/ocr/)
class IOCRProvider(ABC):
    """Contract for recognising text in a single raster image."""

    @abstractmethod
    async def recognize(self, image_bytes: bytes) -> OcrResult:
        """Recognise text in *image_bytes*.

        Returns
        -------
        OcrResult
            Recognised text and mean confidence on a 0-100 scale.

        Raises
        ------
        coursemind.utils.errors.OCRExtractionError
            If the engine cannot decode or process the image.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"tesseract"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the engine binary/library is usable."""

"""OCR engine adapters implementing :class:`~coursemind.interfaces.ocr_provider.IOCRProvider`."""

from coursemind.providers.ocr.tesseract_provider import TesseractOCRProvider

__all__ = ["TesseractOCRProvider"]

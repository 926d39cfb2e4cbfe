"""Text extraction: native parsers plus the OCR/vision fallback pipeline."""

from coursemind.services.extraction.ocr_pipeline import OcrPipeline, is_low_quality
from coursemind.services.extraction.text_extractor import (
    TextExtractor,
    clean_text,
    resolve_material_kind,
)

__all__ = [
    "OcrPipeline",
    "TextExtractor",
    "clean_text",
    "is_low_quality",
    "resolve_material_kind",
]

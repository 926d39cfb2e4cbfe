"""Utility modules for CourseMind.

- **errors**: the exception hierarchy rooted at CourseMindError.  The
  terminal/transient split drives the job scheduler's retry decisions.
- **concurrency**: ``map_with_concurrency``, an order-preserving bounded
  worker pool used for page-level OCR/vision fan-out.
- **logging**: structlog setup with coloured console output in development
  and JSON in production.
"""

from coursemind.utils.concurrency import map_with_concurrency
from coursemind.utils.errors import (
    ConfigurationError,
    CourseMindError,
    EmbeddingDimensionError,
    EmbeddingError,
    ExtractionError,
    InvalidJobTransitionError,
    JsonObjectNotFoundError,
    MaterialNotFoundError,
    MultipleJsonObjectsError,
    OCRExtractionError,
    ProviderError,
    RateLimitError,
    StorageError,
    StructuredOutputError,
    error_message,
    is_terminal_error,
)
from coursemind.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "CourseMindError",
    "EmbeddingDimensionError",
    "EmbeddingError",
    "ExtractionError",
    "InvalidJobTransitionError",
    "JsonObjectNotFoundError",
    "MaterialNotFoundError",
    "MultipleJsonObjectsError",
    "OCRExtractionError",
    "ProviderError",
    "RateLimitError",
    "StorageError",
    "StructuredOutputError",
    "configure_logging",
    "error_message",
    "get_logger",
    "is_terminal_error",
    "map_with_concurrency",
]

"""Custom exception hierarchy for CourseMind.

All application exceptions inherit from :class:`CourseMindError`, which
carries an optional ``provider_name`` so handlers can tell which external
backend (e.g. "openai", "gemini", "tesseract", "chromadb") raised it.

The hierarchy is split by how the job scheduler must react:

    CourseMindError  (base)
    +-- ConfigurationError        TERMINAL: retrying cannot help
    |   +-- EmbeddingDimensionError
    +-- ProviderError             transient backend call failure
    |   +-- RateLimitError
    +-- EmbeddingError            malformed embedding response (transient)
    +-- StorageError              relational / vector / object store failure
    |   +-- MaterialNotFoundError
    +-- ExtractionError           native document parser failure
    +-- OCRExtractionError        OCR engine failure
    +-- StructuredOutputError     model JSON missing, ambiguous or invalid
    |   +-- JsonObjectNotFoundError
    |   +-- MultipleJsonObjectsError
    +-- InvalidJobTransitionError job status change outside the allowed table

The scheduler decides "retry or fail" with :func:`is_terminal_error`, a
type check.  Rendered message text is never inspected.
"""

from __future__ import annotations


class CourseMindError(Exception):
    """Base exception for all CourseMind errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider in brackets,
    e.g. ``[openrouter] Rate limit exceeded``; use :attr:`message` when the
    bare text is wanted (job ``last_error``, material warnings).
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Terminal errors
# ---------------------------------------------------------------------------

class ConfigurationError(CourseMindError):
    """Raised when a required provider, model or setting is missing.

    Jobs failing with this error are marked ``failed`` on the first attempt.
    """

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingDimensionError(ConfigurationError):
    """Raised when returned vectors do not match ``EMBEDDING_DIM``."""

    def __init__(
        self,
        expected: int,
        actual: int,
        provider_name: str | None = None,
    ) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=f"Embedding dimension mismatch: expected {expected}, got {actual}.",
            provider_name=provider_name,
        )


# ---------------------------------------------------------------------------
# Transient errors
# ---------------------------------------------------------------------------

class ProviderError(CourseMindError):
    """Raised when a call to an AI backend fails or returns unusable output."""

    def __init__(
        self,
        message: str = "AI provider call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(ProviderError):
    """Raised when a backend reports that a rate limit was exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(CourseMindError):
    """Raised when an embedding response has no vectors or the wrong count."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(CourseMindError):
    """Raised when a store (SQLite, ChromaDB, object storage) operation fails."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MaterialNotFoundError(StorageError):
    """Raised when a job references a material row that cannot be loaded."""

    def __init__(self, material_id: str, provider_name: str | None = None) -> None:
        self.material_id = material_id
        super().__init__(
            message=f"Material not found: {material_id}",
            provider_name=provider_name,
        )


# ---------------------------------------------------------------------------
# Extraction errors
# ---------------------------------------------------------------------------

class ExtractionError(CourseMindError):
    """Raised by a native document parser (PDF, DOCX, PPTX)."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class OCRExtractionError(CourseMindError):
    """Raised when the OCR engine cannot process an image."""

    def __init__(
        self,
        message: str = "OCR text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Structured output errors
# ---------------------------------------------------------------------------

class StructuredOutputError(CourseMindError):
    """Raised when model output is not a single, schema-valid JSON object.

    ``errors`` holds every validation problem found, so one malformed
    response reports all of them at once.
    """

    def __init__(
        self,
        message: str = "Invalid structured output",
        errors: list[str] | None = None,
        provider_name: str | None = None,
    ) -> None:
        self.errors: list[str] = list(errors or [])
        super().__init__(message=message, provider_name=provider_name)


class JsonObjectNotFoundError(StructuredOutputError):
    """Raised when the model response contains no JSON object."""

    def __init__(self, message: str = "No JSON object found in model response.") -> None:
        super().__init__(message=message)


class MultipleJsonObjectsError(StructuredOutputError):
    """Raised when the model response contains more than one JSON object."""

    def __init__(self, message: str = "Multiple JSON objects found in model response.") -> None:
        super().__init__(message=message)


# ---------------------------------------------------------------------------
# Job lifecycle errors
# ---------------------------------------------------------------------------

class InvalidJobTransitionError(CourseMindError):
    """Raised when a job status change is not in the allowed-transition table."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(message=f"Invalid job transition: {current} -> {target}")


def is_terminal_error(exc: BaseException) -> bool:
    """Return ``True`` when retrying the failed operation cannot succeed."""
    return isinstance(exc, ConfigurationError)


def error_message(exc: BaseException) -> str:
    """Return the bare message of *exc*, without the provider prefix."""
    if isinstance(exc, CourseMindError):
        return exc.message
    return str(exc) or exc.__class__.__name__

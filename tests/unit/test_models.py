"""Unit tests for the job state machine, material model and error hierarchy."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from coursemind.models.jobs import (
    CLAIMABLE_STATUSES,
    IngestionJob,
    JobStatus,
    transition,
)
from coursemind.models.materials import Material, MaterialSegment, SourceType
from coursemind.utils.errors import (
    ConfigurationError,
    EmbeddingDimensionError,
    EmbeddingError,
    InvalidJobTransitionError,
    MaterialNotFoundError,
    ProviderError,
    RateLimitError,
    StorageError,
    error_message,
    is_terminal_error,
)


class TestJobTransitions:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (JobStatus.PENDING, JobStatus.PROCESSING),
            (JobStatus.RETRY, JobStatus.PROCESSING),
            (JobStatus.PROCESSING, JobStatus.DONE),
            (JobStatus.PROCESSING, JobStatus.RETRY),
            (JobStatus.PROCESSING, JobStatus.FAILED),
        ],
    )
    def test_allowed(self, current: JobStatus, target: JobStatus) -> None:
        assert transition(current, target) is target

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (JobStatus.PENDING, JobStatus.DONE),
            (JobStatus.RETRY, JobStatus.FAILED),
            (JobStatus.DONE, JobStatus.PROCESSING),
            (JobStatus.FAILED, JobStatus.RETRY),
            (JobStatus.PROCESSING, JobStatus.PENDING),
        ],
    )
    def test_rejected(self, current: JobStatus, target: JobStatus) -> None:
        with pytest.raises(InvalidJobTransitionError) as exc_info:
            transition(current, target)
        assert exc_info.value.current == current.value
        assert str(exc_info.value) == f"Invalid job transition: {current.value} -> {target.value}"

    def test_only_pending_and_retry_are_claimable(self) -> None:
        assert set(CLAIMABLE_STATUSES) == {JobStatus.PENDING, JobStatus.RETRY}

    def test_job_defaults(self) -> None:
        job = IngestionJob(
            id="j1", material_id="m1", class_id="c1", created_at=datetime.now(timezone.utc)
        )
        assert job.status is JobStatus.PENDING
        assert job.attempts == 0
        with pytest.raises(ValidationError):
            job.attempts = 3  # type: ignore[misc]


class TestMaterial:
    def test_warnings_read_from_metadata(self) -> None:
        material = Material(
            id="m1",
            class_id="c1",
            storage_path="c1/a.pdf",
            metadata={"warnings": ["OCR limited to first 30 pages."]},
        )
        assert material.warnings == ["OCR limited to first 30 pages."]

    def test_malformed_warnings_ignored(self) -> None:
        material = Material(
            id="m1", class_id="c1", storage_path="c1/a.pdf", metadata={"warnings": "oops"}
        )
        assert material.warnings == []

    def test_segment_index_is_one_based(self) -> None:
        with pytest.raises(ValidationError):
            MaterialSegment(source_type=SourceType.PAGE, source_index=0, text="x")


class TestErrors:
    def test_provider_prefix_in_str_only(self) -> None:
        exc = RateLimitError(provider_name="openrouter")
        assert str(exc) == "[openrouter] Rate limit exceeded"
        assert exc.message == "Rate limit exceeded"
        assert error_message(exc) == "Rate limit exceeded"

    def test_error_message_for_foreign_exceptions(self) -> None:
        assert error_message(RuntimeError("socket closed")) == "socket closed"
        assert error_message(TimeoutError()) == "TimeoutError"

    @pytest.mark.parametrize(
        "exc",
        [
            ConfigurationError("No embedding providers are configured."),
            EmbeddingDimensionError(1536, 768, provider_name="gemini"),
        ],
    )
    def test_terminal(self, exc: Exception) -> None:
        assert is_terminal_error(exc)

    @pytest.mark.parametrize(
        "exc",
        [
            ProviderError("upstream 502"),
            RateLimitError(),
            EmbeddingError("Embedding count mismatch: expected 2, got 1."),
            StorageError("disk full"),
            MaterialNotFoundError("m1"),
            # Wording alone never makes an error terminal.
            RuntimeError("No AI providers are configured."),
        ],
    )
    def test_transient(self, exc: Exception) -> None:
        assert not is_terminal_error(exc)

    def test_dimension_error_message(self) -> None:
        exc = EmbeddingDimensionError(1536, 768)
        assert exc.message == "Embedding dimension mismatch: expected 1536, got 768."
        assert (exc.expected, exc.actual) == (1536, 768)

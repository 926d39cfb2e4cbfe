"""Pydantic response schemas for the CourseMind HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProcessMaterialsResponse(BaseModel):
    """Outcome of one ingestion-trigger invocation."""

    processed: int = Field(..., ge=0, description="Jobs completed successfully")
    failures: list[str] = Field(
        default_factory=list,
        description="One '{job_id}: {message}' entry per failed or retried job",
    )


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None

"""Ingestion job models and the job status state machine.

Allowed status transitions::

    pending ─┐
             ├──> processing ──> done
    retry ───┘         │
                       ├──> retry
                       └──> failed

``done`` and ``failed`` are terminal and never re-claimed.  Every status
write in the scheduler goes through :func:`transition`.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from coursemind.utils.errors import InvalidJobTransitionError


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    RETRY = "retry"
    DONE = "done"
    FAILED = "failed"


class JobStage(str, Enum):
    """Free-form progress label shown next to the status."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.RETRY: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.DONE, JobStatus.RETRY, JobStatus.FAILED}),
    JobStatus.DONE: frozenset(),
    JobStatus.FAILED: frozenset(),
}

CLAIMABLE_STATUSES: tuple[JobStatus, ...] = (JobStatus.PENDING, JobStatus.RETRY)


def transition(current: JobStatus, target: JobStatus) -> JobStatus:
    """Validate a status change and return *target*.

    Raises
    ------
    InvalidJobTransitionError
        If *target* is not reachable from *current*.
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidJobTransitionError(current.value, target.value)
    return target


class IngestionJob(BaseModel):
    """One queued request to (re)process a material."""

    model_config = ConfigDict(frozen=True)

    id: str
    material_id: str
    class_id: str
    status: JobStatus = JobStatus.PENDING
    stage: JobStage = JobStage.QUEUED
    attempts: int = Field(default=0, ge=0)
    locked_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class BatchSummary(BaseModel):
    """Result of one scheduler invocation."""

    model_config = ConfigDict(frozen=True)

    processed: int = 0
    failures: list[str] = Field(default_factory=list)

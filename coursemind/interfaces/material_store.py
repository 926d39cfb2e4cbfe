"""Abstract base class for the relational material/job store.

The scheduler is the only writer of job and material processing state.
The upload side (``create_material`` / ``enqueue_job``) is included so the
CLI and tests can seed work.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from coursemind.models.jobs import IngestionJob, JobStage, JobStatus
from coursemind.models.materials import Material, MaterialStatus


# Concrete implementation: SQLiteMaterialStore (coursemind/providers/storage/)
class IMaterialStore(ABC):
    """Contract for reading and transitioning materials and ingestion jobs."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indexes if they do not exist."""

    # -- upload side -------------------------------------------------------

    @abstractmethod
    async def create_material(
        self,
        class_id: str,
        storage_path: str,
        title: str = "",
        mime_type: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> Material:
        """Insert a new material in ``processing`` status."""

    @abstractmethod
    async def enqueue_job(self, material: Material) -> IngestionJob:
        """Insert a ``pending`` job for *material*."""

    # -- scheduler side ----------------------------------------------------

    @abstractmethod
    async def list_claimable_jobs(self, lock_cutoff: datetime, limit: int) -> list[IngestionJob]:
        """Return up to *limit* ``pending``/``retry`` jobs, oldest first.

        Only jobs whose ``locked_at`` is null or older than *lock_cutoff*
        are eligible.
        """

    @abstractmethod
    async def claim_job(self, job: IngestionJob, locked_at: datetime) -> bool:
        """Compare-and-swap *job* into ``processing``.

        Sets stage ``processing``, stamps *locked_at* and stores
        ``job.attempts + 1``, but only if the row's status still equals
        ``job.status``.

        Returns
        -------
        bool
            ``True`` if this caller won the claim, ``False`` if the row
            changed since it was read.
        """

    @abstractmethod
    async def finish_job(
        self,
        job_id: str,
        status: JobStatus,
        stage: JobStage,
        last_error: str | None = None,
    ) -> None:
        """Write the post-processing status and clear the lock."""

    @abstractmethod
    async def get_job(self, job_id: str) -> IngestionJob | None:
        """Return the job or ``None``."""

    @abstractmethod
    async def get_material(self, material_id: str) -> Material:
        """Return the material.

        Raises
        ------
        coursemind.utils.errors.MaterialNotFoundError
            If no such row exists.
        """

    @abstractmethod
    async def update_material_status(
        self,
        material_id: str,
        status: MaterialStatus,
        warnings: list[str],
        extraction_stats: dict[str, int] | None = None,
    ) -> None:
        """Set *status* and merge warnings/stats into the material metadata."""

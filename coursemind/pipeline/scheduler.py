"""Ingestion job scheduler.

One call to :meth:`MaterialJobScheduler.run_batch` is one externally
triggered invocation (HTTP trigger or CLI).  It:

1. computes the stale-lock cutoff ``now - lock_minutes``;
2. lists up to ``batch_size`` ``pending``/``retry`` jobs whose lock is
   missing or older than the cutoff, oldest first;
3. claims each job with a compare-and-swap on its status and skips the
   job if another invocation got there first;
4. processes claimed jobs one at a time.

Failure policy: a terminal error (see
:func:`~coursemind.utils.errors.is_terminal_error`) or reaching
``max_attempts`` marks the job ``failed`` and the material ``failed``;
anything else puts the job back as ``retry``.

Invocations do not need to be mutually exclusive.  Two overlapping runs
can list the same job, but only one claim matches.  Only ``pending`` and
``retry`` jobs are listed, so a job left ``processing`` by a crashed run is
not picked up again on its own.  Re-processing a retried job is safe
because chunks are fully replaced per material.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from coursemind.interfaces.material_store import IMaterialStore
from coursemind.models.jobs import BatchSummary, IngestionJob, JobStage, JobStatus, transition
from coursemind.models.materials import MaterialStatus
from coursemind.pipeline.material_processor import MaterialProcessor
from coursemind.utils.errors import MaterialNotFoundError, error_message, is_terminal_error
from coursemind.utils.logging import get_logger


class MaterialJobScheduler:
    """Claims and drives ingestion jobs.

    Parameters
    ----------
    material_store:
        Job queue and material table.
    processor:
        Runs the extraction/embedding pipeline for one job.
    batch_size:
        Maximum jobs examined per invocation.
    lock_minutes:
        Age after which a ``locked_at`` stamp is treated as abandoned.
    max_attempts:
        A job that fails on this attempt number is not retried again.
    """

    def __init__(
        self,
        material_store: IMaterialStore,
        processor: MaterialProcessor,
        batch_size: int = 3,
        lock_minutes: int = 15,
        max_attempts: int = 5,
    ) -> None:
        self._store = material_store
        self._processor = processor
        self._batch_size = batch_size
        self._lock_minutes = lock_minutes
        self._max_attempts = max_attempts
        self._logger = get_logger(__name__)

    async def run_batch(self, now: datetime | None = None) -> BatchSummary:
        """Process one batch of claimable jobs and summarise the outcome."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=self._lock_minutes)
        jobs = await self._store.list_claimable_jobs(cutoff, self._batch_size)
        self._logger.info(
            "job_batch_started", candidates=len(jobs), lock_cutoff=cutoff.isoformat()
        )

        processed = 0
        failures: list[str] = []
        for job in jobs:
            transition(job.status, JobStatus.PROCESSING)
            if not await self._store.claim_job(job, now):
                self._logger.info(
                    "job_claim_skipped", job_id=job.id, observed_status=job.status.value
                )
                continue

            attempts = job.attempts + 1
            structlog.contextvars.bind_contextvars(job_id=job.id, material_id=job.material_id)
            try:
                self._logger.info("job_claimed", attempts=attempts)
                error = await self._run_job(job)
                if error is None:
                    processed += 1
                else:
                    failures.append(f"{job.id}: {error_message(error)}")
                    try:
                        await self._record_failure(job, attempts, error)
                    except Exception as exc:
                        self._logger.error(
                            "job_finalize_failed",
                            error_type=type(exc).__name__,
                            error=error_message(exc),
                        )
            finally:
                structlog.contextvars.unbind_contextvars("job_id", "material_id")

        self._logger.info("job_batch_finished", processed=processed, failures=len(failures))
        return BatchSummary(processed=processed, failures=failures)

    async def _run_job(self, job: IngestionJob) -> Exception | None:
        """Process *job*; return the error instead of raising it."""
        try:
            status = await self._processor.process(job)
            await self._store.finish_job(
                job.id,
                transition(JobStatus.PROCESSING, JobStatus.DONE),
                JobStage.COMPLETE,
            )
        except Exception as exc:
            return exc

        self._logger.info("job_done", material_status=status.value)
        return None

    async def _record_failure(self, job: IngestionJob, attempts: int, exc: Exception) -> None:
        message = error_message(exc)
        should_fail = is_terminal_error(exc) or attempts >= self._max_attempts

        if should_fail:
            target = transition(JobStatus.PROCESSING, JobStatus.FAILED)
            stage = JobStage.FAILED
        else:
            target = transition(JobStatus.PROCESSING, JobStatus.RETRY)
            stage = JobStage.ERROR

        await self._store.finish_job(job.id, target, stage, last_error=message)
        self._logger.warning(
            "job_failed",
            status=target.value,
            attempts=attempts,
            terminal=is_terminal_error(exc),
            error_type=type(exc).__name__,
            error=message,
        )

        if should_fail:
            await self._fail_material(job.material_id, message)

    async def _fail_material(self, material_id: str, message: str) -> None:
        try:
            material = await self._store.get_material(material_id)
        except MaterialNotFoundError:
            self._logger.warning("failed_job_material_missing")
            return
        await self._store.update_material_status(
            material_id,
            MaterialStatus.FAILED,
            [*material.warnings, f"Processing failed: {message}"],
        )

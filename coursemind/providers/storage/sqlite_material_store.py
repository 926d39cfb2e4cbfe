"""SQLite-backed material and ingestion-job store.

Persists materials and their ingestion jobs to a local SQLite database at
``data/coursemind.db`` using ``aiosqlite`` for async I/O.

Job claiming is a compare-and-swap on the ``status`` column::

    UPDATE ingestion_jobs SET status = 'processing', ...
    WHERE id = ? AND status = ?      -- the status the caller just read

Two workers that read the same ``pending`` row race on this statement.
The database serialises the writes, so only the first matches the
``WHERE`` clause (rowcount 1); the second sees rowcount 0 and skips the job.

Timestamps are stored as ISO-8601 UTC strings, so lexical order matches
chronological order.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from coursemind.interfaces.material_store import IMaterialStore
from coursemind.models.jobs import CLAIMABLE_STATUSES, IngestionJob, JobStage, JobStatus
from coursemind.models.materials import Material, MaterialStatus
from coursemind.utils.errors import MaterialNotFoundError, StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/coursemind.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS materials (
    id           TEXT PRIMARY KEY,
    class_id     TEXT NOT NULL,
    title        TEXT NOT NULL DEFAULT '',
    storage_path TEXT NOT NULL,
    mime_type    TEXT NOT NULL DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'processing',
    metadata     TEXT NOT NULL DEFAULT '{}',
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS ingestion_jobs (
    id          TEXT PRIMARY KEY,
    material_id TEXT NOT NULL REFERENCES materials(id) ON DELETE CASCADE,
    class_id    TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'pending',
    stage       TEXT NOT NULL DEFAULT 'queued',
    attempts    INTEGER NOT NULL DEFAULT 0,
    locked_at   TEXT,
    last_error  TEXT,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_jobs_status_created ON ingestion_jobs(status, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_jobs_material ON ingestion_jobs(material_id);",
    "CREATE INDEX IF NOT EXISTS idx_materials_class ON materials(class_id);",
]

_JOB_COLUMNS = (
    "id, material_id, class_id, status, stage, attempts, locked_at, last_error, "
    "created_at, updated_at"
)

_SELECT_CLAIMABLE_SQL = f"""\
SELECT {_JOB_COLUMNS}
FROM ingestion_jobs
WHERE status IN (?, ?)
  AND (locked_at IS NULL OR locked_at < ?)
ORDER BY created_at ASC, rowid ASC
LIMIT ?;
"""

_CLAIM_SQL = """\
UPDATE ingestion_jobs
SET status = ?, stage = ?, locked_at = ?, attempts = ?, updated_at = ?
WHERE id = ? AND status = ?;
"""

_FINISH_SQL = """\
UPDATE ingestion_jobs
SET status = ?, stage = ?, last_error = ?, locked_at = NULL, updated_at = ?
WHERE id = ?;
"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _row_to_job(row: aiosqlite.Row) -> IngestionJob:
    return IngestionJob(
        id=row["id"],
        material_id=row["material_id"],
        class_id=row["class_id"],
        status=JobStatus(row["status"]),
        stage=JobStage(row["stage"]),
        attempts=row["attempts"],
        locked_at=_parse_ts(row["locked_at"]),
        last_error=row["last_error"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _row_to_material(row: aiosqlite.Row) -> Material:
    return Material(
        id=row["id"],
        class_id=row["class_id"],
        title=row["title"],
        storage_path=row["storage_path"],
        mime_type=row["mime_type"],
        status=MaterialStatus(row["status"]),
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=_parse_ts(row["created_at"]),
    )


class SQLiteMaterialStore(IMaterialStore):
    """SQLite persistence for materials and ingestion jobs."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("material_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Upload side
    # ------------------------------------------------------------------

    async def create_material(
        self,
        class_id: str,
        storage_path: str,
        title: str = "",
        mime_type: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> Material:
        now = _now()
        material = Material(
            id=str(uuid.uuid4()),
            class_id=class_id,
            title=title,
            storage_path=storage_path,
            mime_type=mime_type,
            status=MaterialStatus.PROCESSING,
            metadata=dict(metadata or {}),
            created_at=now,
        )
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    "INSERT INTO materials (id, class_id, title, storage_path, mime_type, "
                    "status, metadata, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        material.id,
                        class_id,
                        title,
                        storage_path,
                        mime_type,
                        material.status.value,
                        json.dumps(material.metadata),
                        _iso(now),
                        _iso(now),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to create material: {exc}", provider_name="sqlite") from exc
        logger.info("material_created", material_id=material.id, class_id=class_id)
        return material

    async def enqueue_job(self, material: Material) -> IngestionJob:
        now = _now()
        job = IngestionJob(
            id=str(uuid.uuid4()),
            material_id=material.id,
            class_id=material.class_id,
            created_at=now,
            updated_at=now,
        )
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    f"INSERT INTO ingestion_jobs ({_JOB_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, NULL, NULL, ?, ?)",
                    (
                        job.id,
                        job.material_id,
                        job.class_id,
                        job.status.value,
                        job.stage.value,
                        job.attempts,
                        _iso(now),
                        _iso(now),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to enqueue job: {exc}", provider_name="sqlite") from exc
        logger.info("job_enqueued", job_id=job.id, material_id=material.id)
        return job

    # ------------------------------------------------------------------
    # Scheduler side
    # ------------------------------------------------------------------

    async def list_claimable_jobs(self, lock_cutoff: datetime, limit: int) -> list[IngestionJob]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    _SELECT_CLAIMABLE_SQL,
                    (*(s.value for s in CLAIMABLE_STATUSES), _iso(lock_cutoff), limit),
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to list jobs: {exc}", provider_name="sqlite") from exc
        return [_row_to_job(r) for r in rows]

    async def claim_job(self, job: IngestionJob, locked_at: datetime) -> bool:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    _CLAIM_SQL,
                    (
                        JobStatus.PROCESSING.value,
                        JobStage.PROCESSING.value,
                        _iso(locked_at),
                        job.attempts + 1,
                        _iso(_now()),
                        job.id,
                        job.status.value,
                    ),
                )
                await db.commit()
                claimed = cursor.rowcount == 1
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to claim job: {exc}", provider_name="sqlite") from exc
        return claimed

    async def finish_job(
        self,
        job_id: str,
        status: JobStatus,
        stage: JobStage,
        last_error: str | None = None,
    ) -> None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _FINISH_SQL,
                    (status.value, stage.value, last_error, _iso(_now()), job_id),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to update job: {exc}", provider_name="sqlite") from exc

    async def get_job(self, job_id: str) -> IngestionJob | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_JOB_COLUMNS} FROM ingestion_jobs WHERE id = ?", (job_id,)
            )
            row = await cursor.fetchone()
        return _row_to_job(row) if row else None

    async def get_material(self, material_id: str) -> Material:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    "SELECT id, class_id, title, storage_path, mime_type, status, metadata, "
                    "created_at FROM materials WHERE id = ?",
                    (material_id,),
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to load material: {exc}", provider_name="sqlite") from exc
        if row is None:
            raise MaterialNotFoundError(material_id, provider_name="sqlite")
        return _row_to_material(row)

    async def update_material_status(
        self,
        material_id: str,
        status: MaterialStatus,
        warnings: list[str],
        extraction_stats: dict[str, int] | None = None,
    ) -> None:
        material = await self.get_material(material_id)
        metadata = dict(material.metadata)
        metadata["warnings"] = _dedupe(warnings)
        if extraction_stats is not None:
            metadata["extraction_stats"] = dict(extraction_stats)

        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    "UPDATE materials SET status = ?, metadata = ?, updated_at = ? WHERE id = ?",
                    (status.value, json.dumps(metadata), _iso(_now()), material_id),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(
                f"Failed to update material: {exc}", provider_name="sqlite"
            ) from exc
        logger.info(
            "material_status_updated",
            material_id=material_id,
            status=status.value,
            warnings=len(metadata["warnings"]),
        )

"""SQLite-backed AI request logger.

Writes one row per AI call (provider, model, latency, token usage) to the
``ai_requests`` table of the application database.  Telemetry must never
break a job or a request, so write failures are logged and swallowed.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from coursemind.interfaces.request_logger import IRequestLogger
from coursemind.models.ai import AiRequestLog

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS ai_requests (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    feature           TEXT    NOT NULL,
    provider          TEXT    NOT NULL,
    model             TEXT    NOT NULL,
    status            TEXT    NOT NULL,
    latency_ms        INTEGER NOT NULL DEFAULT 0,
    prompt_tokens     INTEGER,
    completion_tokens INTEGER,
    total_tokens      INTEGER,
    class_id          TEXT,
    material_id       TEXT,
    error             TEXT,
    created_at        TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_INSERT_SQL = """\
INSERT INTO ai_requests (
    feature, provider, model, status, latency_ms,
    prompt_tokens, completion_tokens, total_tokens, class_id, material_id, error
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""


class SQLiteRequestLogger(IRequestLogger):
    """Persists :class:`AiRequestLog` rows with aiosqlite."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            await db.commit()

    async def log_request(self, entry: AiRequestLog) -> None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _INSERT_SQL,
                    (
                        entry.feature,
                        entry.provider,
                        entry.model,
                        entry.status,
                        entry.latency_ms,
                        entry.usage.prompt_tokens,
                        entry.usage.completion_tokens,
                        entry.usage.total_tokens,
                        entry.class_id,
                        entry.material_id,
                        entry.error,
                    ),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            logger.warning("ai_request_log_failed", feature=entry.feature, error=str(exc))

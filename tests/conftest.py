"""Shared pytest fixtures for the CourseMind test suite.

The in-memory fakes implement the same interfaces as the SQLite, ChromaDB
and filesystem adapters, so pipeline and generation tests run without any
external service.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from coursemind.interfaces.ai_provider import IAIProvider
from coursemind.interfaces.chunk_store import IChunkStore
from coursemind.interfaces.material_store import IMaterialStore
from coursemind.interfaces.object_storage import IObjectStorage
from coursemind.interfaces.ocr_provider import IOCRProvider
from coursemind.interfaces.request_logger import IRequestLogger
from coursemind.models.ai import (
    AiEmbeddingResult,
    AiGenerateResult,
    AiRequestLog,
    AiUsage,
    AiVisionResult,
    Capability,
    ProviderConfig,
)
from coursemind.models.chunks import MaterialChunk, RetrievedChunk
from coursemind.models.jobs import CLAIMABLE_STATUSES, IngestionJob, JobStage, JobStatus
from coursemind.models.materials import Material, MaterialStatus, OcrResult
from coursemind.services.ai_client import MultiProviderClient, ProviderRegistry
from coursemind.utils.errors import MaterialNotFoundError, StorageError

EMBEDDING_DIM = 8


# ---------------------------------------------------------------------------
# In-memory stores
# ---------------------------------------------------------------------------


class InMemoryMaterialStore(IMaterialStore):
    """Dict-backed material/job store with the same claim semantics as SQLite."""

    def __init__(self) -> None:
        self.materials: dict[str, Material] = {}
        self.jobs: dict[str, IngestionJob] = {}

    async def initialize(self) -> None:
        return None

    async def create_material(
        self,
        class_id: str,
        storage_path: str,
        title: str = "",
        mime_type: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> Material:
        material = Material(
            id=str(uuid.uuid4()),
            class_id=class_id,
            title=title,
            storage_path=storage_path,
            mime_type=mime_type,
            metadata=dict(metadata or {}),
            created_at=datetime.now(timezone.utc),
        )
        self.materials[material.id] = material
        return material

    async def enqueue_job(self, material: Material) -> IngestionJob:
        now = datetime.now(timezone.utc)
        job = IngestionJob(
            id=f"job-{len(self.jobs) + 1}",
            material_id=material.id,
            class_id=material.class_id,
            created_at=now,
            updated_at=now,
        )
        self.jobs[job.id] = job
        return job

    def put_job(self, job: IngestionJob) -> None:
        self.jobs[job.id] = job

    async def list_claimable_jobs(self, lock_cutoff: datetime, limit: int) -> list[IngestionJob]:
        eligible = [
            job
            for job in self.jobs.values()
            if job.status in CLAIMABLE_STATUSES
            and (job.locked_at is None or job.locked_at < lock_cutoff)
        ]
        eligible.sort(key=lambda j: j.created_at)
        return eligible[:limit]

    async def claim_job(self, job: IngestionJob, locked_at: datetime) -> bool:
        current = self.jobs.get(job.id)
        if current is None or current.status is not job.status:
            return False
        self.jobs[job.id] = current.model_copy(
            update={
                "status": JobStatus.PROCESSING,
                "stage": JobStage.PROCESSING,
                "locked_at": locked_at,
                "attempts": job.attempts + 1,
            }
        )
        return True

    async def finish_job(
        self,
        job_id: str,
        status: JobStatus,
        stage: JobStage,
        last_error: str | None = None,
    ) -> None:
        self.jobs[job_id] = self.jobs[job_id].model_copy(
            update={"status": status, "stage": stage, "last_error": last_error, "locked_at": None}
        )

    async def get_job(self, job_id: str) -> IngestionJob | None:
        return self.jobs.get(job_id)

    async def get_material(self, material_id: str) -> Material:
        try:
            return self.materials[material_id]
        except KeyError:
            raise MaterialNotFoundError(material_id) from None

    async def update_material_status(
        self,
        material_id: str,
        status: MaterialStatus,
        warnings: list[str],
        extraction_stats: dict[str, int] | None = None,
    ) -> None:
        material = await self.get_material(material_id)
        metadata = dict(material.metadata)
        metadata["warnings"] = list(dict.fromkeys(warnings))
        if extraction_stats is not None:
            metadata["extraction_stats"] = dict(extraction_stats)
        self.materials[material_id] = material.model_copy(
            update={"status": status, "metadata": metadata}
        )


class InMemoryChunkStore(IChunkStore):
    def __init__(self) -> None:
        self.chunks: dict[str, list[MaterialChunk]] = {}
        self.matches: list[RetrievedChunk] = []
        self.replace_calls = 0

    async def replace_material_chunks(self, material_id: str, chunks: list[MaterialChunk]) -> int:
        self.replace_calls += 1
        self.chunks[material_id] = list(chunks)
        return len(chunks)

    async def match_chunks(
        self,
        class_id: str,
        query_embedding: list[float],
        match_count: int,
    ) -> list[RetrievedChunk]:
        return self.matches[:match_count]

    async def count_material_chunks(self, material_id: str) -> int:
        return len(self.chunks.get(material_id, []))


class InMemoryObjectStorage(IObjectStorage):
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    async def download(self, path: str) -> bytes:
        try:
            return self.objects[path]
        except KeyError:
            raise StorageError(f"Object not found: {path}", provider_name="memory") from None

    async def upload(self, path: str, data: bytes) -> None:
        self.objects[path] = data


class RecordingRequestLogger(IRequestLogger):
    def __init__(self) -> None:
        self.entries: list[AiRequestLog] = []

    async def log_request(self, entry: AiRequestLog) -> None:
        self.entries.append(entry)


# ---------------------------------------------------------------------------
# AI fakes
# ---------------------------------------------------------------------------


def make_provider_config(
    name: str,
    chat: bool = True,
    embedding: bool = True,
    vision: bool = True,
) -> ProviderConfig:
    return ProviderConfig(
        name=name,
        api_key=f"{name}-key",
        chat_model=f"{name}-chat" if chat else "",
        embedding_model=f"{name}-embed" if embedding else "",
        vision_model=f"{name}-vision" if vision else "",
    )


def make_mock_provider(
    name: str,
    content: str = '{"result": "ok"}',
    dim: int = EMBEDDING_DIM,
    vision_text: str = "Transcribed text from the vision model.",
) -> MagicMock:
    """Mock IAIProvider whose embed() returns one *dim*-vector per input."""
    mock = MagicMock(spec=IAIProvider)
    mock.get_provider_name.return_value = name
    mock.is_configured.return_value = True
    mock.generate_text = AsyncMock(
        return_value=AiGenerateResult(
            provider=name,
            model=f"{name}-chat",
            content=content,
            usage=AiUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
            latency_ms=12,
        )
    )

    async def _embed(texts: list[str]) -> AiEmbeddingResult:
        return AiEmbeddingResult(
            provider=name,
            model=f"{name}-embed",
            embeddings=[[0.1] * dim for _ in texts],
            usage=AiUsage(prompt_tokens=len(texts), total_tokens=len(texts)),
        )

    mock.embed = AsyncMock(side_effect=_embed)
    mock.extract_vision_text = AsyncMock(
        return_value=AiVisionResult(provider=name, model=f"{name}-vision", text=vision_text)
    )
    return mock


def make_ai_client(
    providers: dict[str, MagicMock],
    default: str | None = None,
    configs: list[ProviderConfig] | None = None,
) -> MultiProviderClient:
    registry = ProviderRegistry(
        providers=tuple(configs or [make_provider_config(name) for name in providers]),
        default_provider=default,
    )
    return MultiProviderClient(registry, providers)


class FakeOCRProvider(IOCRProvider):
    """Returns queued OcrResults in call order (last one repeats)."""

    def __init__(self, *results: OcrResult) -> None:
        self._results = list(results) or [OcrResult()]
        self.calls = 0

    async def recognize(self, image_bytes: bytes) -> OcrResult:
        result = self._results[min(self.calls, len(self._results) - 1)]
        self.calls += 1
        return result

    def get_provider_name(self) -> str:
        return "fake-ocr"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def material_store() -> InMemoryMaterialStore:
    return InMemoryMaterialStore()


@pytest.fixture
def chunk_store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture
def object_storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()


@pytest.fixture
def request_logger() -> RecordingRequestLogger:
    return RecordingRequestLogger()


@pytest.fixture
def mock_provider() -> MagicMock:
    return make_mock_provider("openai")


@pytest.fixture
def ai_client(mock_provider: MagicMock) -> MultiProviderClient:
    """Single-provider client backed by ``mock_provider``."""
    return make_ai_client({"openai": mock_provider})


@pytest.fixture
def lecture_text() -> str:
    return (
        "Newton's second law states that the net force on an object equals its mass "
        "times its acceleration. Units of force are newtons, where one newton is one "
        "kilogram metre per second squared. Free-body diagrams isolate an object and "
        "show every external force acting on it."
    )


def retrieved_chunk(
    material_id: str,
    index: int,
    text: str = "Momentum is conserved in isolated systems.",
    token_count: int | None = 10,
    title: str = "Week 1 Notes",
    similarity: float = 0.9,
) -> RetrievedChunk:
    return RetrievedChunk(
        chunk_id=f"{material_id}:{index}",
        material_id=material_id,
        material_title=title,
        source_type="page",
        source_index=index + 1,
        text=text,
        token_count=token_count,
        similarity=similarity,
    )


__all__ = [
    "EMBEDDING_DIM",
    "Capability",
    "FakeOCRProvider",
    "InMemoryChunkStore",
    "InMemoryMaterialStore",
    "InMemoryObjectStorage",
    "RecordingRequestLogger",
    "make_ai_client",
    "make_mock_provider",
    "make_provider_config",
    "retrieved_chunk",
]

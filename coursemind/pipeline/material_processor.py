"""Per-material ingestion: bytes -> segments -> chunks -> embeddings -> store.

:class:`MaterialProcessor` runs one job end to end and records the outcome
on the material row:

1. Resolve the material kind and download its bytes.
2. Native extraction; when it reports ``needs_vision``, the OCR pipeline.
3. Chunk the non-empty segments.
4. Embed every chunk text in one call and check count and dimension.
5. Replace the material's stored chunks (delete, then one batch write).
6. Mark the material ``ready`` with warnings and extraction stats.

Finding nothing usable is not an error: the material becomes
``needs_vision`` and the job still completes.  Every other problem is
raised for the scheduler to classify; nothing is written to the chunk
store before embeddings have been validated.
"""

from __future__ import annotations

from coursemind.interfaces.chunk_store import IChunkStore
from coursemind.interfaces.material_store import IMaterialStore
from coursemind.interfaces.object_storage import IObjectStorage
from coursemind.interfaces.request_logger import IRequestLogger
from coursemind.models.ai import AiEmbeddingResult, AiRequestLog
from coursemind.models.chunks import ChunkDraft, MaterialChunk
from coursemind.models.jobs import IngestionJob
from coursemind.models.materials import (
    ExtractionResult,
    ExtractionStatus,
    Material,
    MaterialKind,
    MaterialStatus,
)
from coursemind.services.ai_client import MultiProviderClient
from coursemind.services.chunking import TextChunker
from coursemind.services.extraction.ocr_pipeline import OcrPipeline
from coursemind.services.extraction.text_extractor import TextExtractor, resolve_material_kind
from coursemind.utils.errors import EmbeddingDimensionError, EmbeddingError, error_message
from coursemind.utils.logging import get_logger

EMBEDDING_FEATURE = "material_embedding"

NO_TEXT_WARNING = "No text could be extracted."
NO_CHUNKS_WARNING = "No usable text chunks produced."


class MaterialProcessor:
    """Processes the material behind one claimed ingestion job.

    Parameters
    ----------
    material_store:
        Source of the material row and target of its final status.
    chunk_store:
        Receives the embedded chunks.
    object_storage:
        Holds the uploaded file bytes.
    ai_client:
        Used for embeddings (and, through ``ocr_pipeline``, vision).
    request_logger:
        Telemetry sink for the embedding call.
    embedding_dim:
        Every returned vector must have exactly this many components.
    """

    def __init__(
        self,
        material_store: IMaterialStore,
        chunk_store: IChunkStore,
        object_storage: IObjectStorage,
        ai_client: MultiProviderClient,
        text_extractor: TextExtractor,
        ocr_pipeline: OcrPipeline,
        chunker: TextChunker,
        request_logger: IRequestLogger,
        embedding_dim: int = 1536,
    ) -> None:
        self._materials = material_store
        self._chunks = chunk_store
        self._storage = object_storage
        self._ai = ai_client
        self._extractor = text_extractor
        self._ocr = ocr_pipeline
        self._chunker = chunker
        self._request_logger = request_logger
        self._embedding_dim = embedding_dim
        self._logger = get_logger(__name__)

    async def process(self, job: IngestionJob) -> MaterialStatus:
        """Run the pipeline for *job* and return the material's new status."""
        material = await self._materials.get_material(job.material_id)
        kind = resolve_material_kind(material)
        data = await self._storage.download(material.storage_path)
        self._logger.info(
            "material_downloaded",
            material_id=material.id,
            kind=kind.value,
            size_bytes=len(data),
        )

        extraction = await self._extract(material, data, kind)
        segments = [s for s in extraction.segments if s.text.strip()]
        warnings = list(extraction.warnings)

        if not segments:
            return await self._mark_needs_vision(material, warnings or [NO_TEXT_WARNING])

        drafts = self._chunker.chunk(segments)
        if not drafts:
            return await self._mark_needs_vision(material, [*warnings, NO_CHUNKS_WARNING])

        embeddings = await self._embed(material, drafts)
        chunks = [
            self._to_chunk(material, index, draft, embeddings)
            for index, draft in enumerate(drafts)
        ]
        await self._chunks.replace_material_chunks(material.id, chunks)

        stats = {
            "char_count": sum(len(s.text) for s in segments),
            "segment_count": len(segments),
            "chunk_count": len(chunks),
        }
        await self._materials.update_material_status(
            material.id, MaterialStatus.READY, warnings, extraction_stats=stats
        )
        self._logger.info("material_ready", material_id=material.id, **stats)
        return MaterialStatus.READY

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _extract(
        self, material: Material, data: bytes, kind: MaterialKind
    ) -> ExtractionResult:
        native = await self._extractor.extract(data, kind)
        if native.status is not ExtractionStatus.NEEDS_VISION:
            return native

        ocr = await self._ocr.run(
            data, kind, class_id=material.class_id, material_id=material.id
        )
        return ExtractionResult(
            segments=ocr.segments,
            warnings=[*native.warnings, *ocr.warnings],
            status=ocr.status,
            stats=ocr.stats,
        )

    async def _mark_needs_vision(self, material: Material, warnings: list[str]) -> MaterialStatus:
        await self._materials.update_material_status(
            material.id, MaterialStatus.NEEDS_VISION, warnings
        )
        self._logger.warning(
            "material_needs_vision",
            material_id=material.id,
            warnings=warnings,
        )
        return MaterialStatus.NEEDS_VISION

    async def _embed(self, material: Material, drafts: list[ChunkDraft]) -> AiEmbeddingResult:
        try:
            result = await self._ai.generate_embeddings([d.text for d in drafts])
        except Exception as exc:
            await self._request_logger.log_request(
                AiRequestLog(
                    feature=EMBEDDING_FEATURE,
                    provider="unknown",
                    model="",
                    status="error",
                    class_id=material.class_id,
                    material_id=material.id,
                    error=error_message(exc),
                )
            )
            raise

        await self._request_logger.log_request(
            AiRequestLog(
                feature=EMBEDDING_FEATURE,
                provider=result.provider,
                model=result.model,
                latency_ms=result.latency_ms,
                usage=result.usage,
                class_id=material.class_id,
                material_id=material.id,
            )
        )

        if not result.embeddings:
            raise EmbeddingError(
                "Embedding request returned no vectors.", provider_name=result.provider
            )
        if len(result.embeddings) != len(drafts):
            raise EmbeddingError(
                f"Embedding count mismatch: expected {len(drafts)}, "
                f"got {len(result.embeddings)}.",
                provider_name=result.provider,
            )
        for vector in result.embeddings:
            if len(vector) != self._embedding_dim:
                raise EmbeddingDimensionError(
                    self._embedding_dim, len(vector), provider_name=result.provider
                )
        return result

    @staticmethod
    def _to_chunk(
        material: Material,
        index: int,
        draft: ChunkDraft,
        embeddings: AiEmbeddingResult,
    ) -> MaterialChunk:
        return MaterialChunk(
            chunk_id=f"{material.id}:{index}",
            material_id=material.id,
            class_id=material.class_id,
            material_title=material.title,
            source_type=draft.source_type,
            source_index=draft.source_index,
            section_title=draft.section_title,
            text=draft.text,
            token_count=draft.token_count,
            embedding=embeddings.embeddings[index],
            embedding_provider=embeddings.provider,
            embedding_model=embeddings.model,
            extraction_method=draft.extraction_method,
            quality_score=draft.quality_score,
        )

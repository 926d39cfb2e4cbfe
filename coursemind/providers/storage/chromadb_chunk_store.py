"""ChromaDB chunk store adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IChunkStore`.
Embeddings are always computed upstream by the multi-provider client and
passed in explicitly; the collection uses cosine distance and a no-op
embedding function so ChromaDB never loads its own model.

Chunk ids are ``{material_id}:{n}``.  ``class_id`` and ``material_id`` are
stored as metadata so queries can be scoped to a class and replacement can
target one material.
"""

from __future__ import annotations

import os
from typing import Any

# Telemetry must be off before chromadb is imported.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb  # noqa: E402
import structlog

from coursemind.interfaces.chunk_store import IChunkStore
from coursemind.models.chunks import MaterialChunk, RetrievedChunk
from coursemind.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that must never run: all vectors are precomputed."""

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "CourseMind uses precomputed embeddings; ChromaDB's embedding should never be called."
        )

    def name(self) -> str:
        return "noop_precomputed"


def _chunk_metadata(chunk: MaterialChunk) -> dict[str, str | int | float | bool]:
    # ChromaDB rejects None metadata values, so optional fields are omitted.
    meta: dict[str, str | int | float | bool] = {
        "material_id": chunk.material_id,
        "class_id": chunk.class_id,
        "material_title": chunk.material_title,
        "source_type": chunk.source_type.value,
        "source_index": chunk.source_index,
        "token_count": chunk.token_count,
        "embedding_provider": chunk.embedding_provider,
        "embedding_model": chunk.embedding_model,
        "extraction_method": chunk.extraction_method.value,
    }
    if chunk.section_title:
        meta["section_title"] = chunk.section_title
    if chunk.quality_score is not None:
        meta["quality_score"] = float(chunk.quality_score)
    return meta


def _to_retrieved(
    chunk_id: str, text: str, meta: dict[str, Any], distance: float
) -> RetrievedChunk:
    token_count = meta.get("token_count")
    return RetrievedChunk(
        chunk_id=chunk_id,
        material_id=str(meta.get("material_id", "")),
        material_title=str(meta.get("material_title", "")),
        source_type=str(meta.get("source_type", "")),
        source_index=int(meta.get("source_index", 1)),
        section_title=meta.get("section_title") or None,
        text=text or "",
        token_count=int(token_count) if token_count is not None else None,
        similarity=1.0 - float(distance),
    )


class ChromaDBChunkStore(IChunkStore):
    """Chunk persistence and class-scoped similarity search on ChromaDB."""

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "material_chunks",
        client: Any | None = None,
    ) -> None:
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # A collection persisted with a different embedding function makes
        # newer ChromaDB versions raise ValueError; reopen it as stored.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    async def replace_material_chunks(self, material_id: str, chunks: list[MaterialChunk]) -> int:
        """Delete the material's chunks, then upsert *chunks* in one batch."""
        try:
            self._collection.delete(where={"material_id": material_id})
            if chunks:
                self._collection.upsert(
                    ids=[c.chunk_id for c in chunks],
                    embeddings=[c.embedding for c in chunks],
                    documents=[c.text for c in chunks],
                    metadatas=[_chunk_metadata(c) for c in chunks],
                )
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB chunk replacement failed: {exc}",
                provider_name="chromadb",
            ) from exc

        logger.info("chunks_replaced", material_id=material_id, chunks=len(chunks))
        return len(chunks)

    async def match_chunks(
        self,
        class_id: str,
        query_embedding: list[float],
        match_count: int,
    ) -> list[RetrievedChunk]:
        """Return the class's nearest chunks, highest similarity first."""
        try:
            total = self._collection.count()
            if total == 0 or match_count <= 0:
                return []
            results = self._collection.query(
                query_embeddings=[query_embedding],
                n_results=min(match_count, total),
                where={"class_id": class_id},
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise StorageError(
                message=f"ChromaDB query failed: {exc}",
                provider_name="chromadb",
            ) from exc

        ids = results["ids"][0] if results.get("ids") else []
        documents = results["documents"][0] if results.get("documents") else [""] * len(ids)
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [1.0] * len(ids)

        matches = [
            _to_retrieved(chunk_id, doc, meta or {}, dist)
            for chunk_id, doc, meta, dist in zip(ids, documents, metadatas, distances, strict=True)
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        logger.debug("chromadb_query", class_id=class_id, results=len(matches))
        return matches

    async def count_material_chunks(self, material_id: str) -> int:
        existing = self._collection.get(where={"material_id": material_id}, include=[])
        return len(existing["ids"])

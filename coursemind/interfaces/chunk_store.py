"""Abstract base class for the chunk vector store."""

from __future__ import annotations

from abc import ABC, abstractmethod

from coursemind.models.chunks import MaterialChunk, RetrievedChunk


# Concrete implementation: ChromaDBChunkStore (coursemind/providers/storage/)
class IChunkStore(ABC):
    """Contract for persisting embedded chunks and nearest-neighbour search."""

    @abstractmethod
    async def replace_material_chunks(self, material_id: str, chunks: list[MaterialChunk]) -> int:
        """Delete every stored chunk of *material_id*, then write *chunks*.

        The new chunks are written in one batch so readers never see a mix
        of two processing runs.

        Returns
        -------
        int
            Number of chunks written.
        """

    @abstractmethod
    async def match_chunks(
        self,
        class_id: str,
        query_embedding: list[float],
        match_count: int,
    ) -> list[RetrievedChunk]:
        """Return up to *match_count* chunks of *class_id*, best match first."""

    @abstractmethod
    async def count_material_chunks(self, material_id: str) -> int:
        """Return how many chunks are stored for *material_id*."""

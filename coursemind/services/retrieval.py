"""Retrieval engine: query -> embedding -> nearest chunks -> packed context.

:meth:`RetrievalService.retrieve_context` returns one string ready to
paste into a prompt.  Selection is greedy in similarity order and has
two caps:

1. at most ``max_per_material`` chunks from any one material (a material
   at its cap is skipped and later candidates are still considered);
2. a running token budget of ``max_context_tokens``.  The first candidate
   that does not fit stops selection entirely.

Each selected chunk is rendered as::

    Source {n} | {material title} | {source type} {source index}
    {chunk text}

and chunks are joined with ``\\n\\n---\\n\\n``.  The ``Source {n}`` labels are
what chat citations are normalised against, so this header format is a
contract with :mod:`coursemind.services.structured_output`.

No candidates means an empty string, which callers treat as "no grounding
available".
"""

from __future__ import annotations

from coursemind.interfaces.chunk_store import IChunkStore
from coursemind.models.chunks import RetrievedChunk
from coursemind.services.ai_client import MultiProviderClient
from coursemind.services.chunking import estimate_token_count
from coursemind.utils.errors import EmbeddingError
from coursemind.utils.logging import get_logger

CONTEXT_SEPARATOR = "\n\n---\n\n"

DEFAULT_CONTEXT_TOKENS = 24000
DEFAULT_MATCH_COUNT = 24
DEFAULT_MAX_PER_MATERIAL = 6


def chunk_tokens(chunk: RetrievedChunk) -> int:
    """Stored token count, or the chunking estimate when none was stored."""
    if chunk.token_count is not None:
        return chunk.token_count
    return estimate_token_count(chunk.text)


def select_chunks(
    candidates: list[RetrievedChunk],
    max_context_tokens: int = DEFAULT_CONTEXT_TOKENS,
    max_per_material: int = DEFAULT_MAX_PER_MATERIAL,
) -> list[RetrievedChunk]:
    """Greedily pick candidates under the per-material and token caps."""
    selected: list[RetrievedChunk] = []
    per_material: dict[str, int] = {}
    used_tokens = 0

    for chunk in candidates:
        if per_material.get(chunk.material_id, 0) >= max_per_material:
            continue
        tokens = chunk_tokens(chunk)
        if used_tokens + tokens > max_context_tokens:
            break
        selected.append(chunk)
        per_material[chunk.material_id] = per_material.get(chunk.material_id, 0) + 1
        used_tokens += tokens

    return selected


def format_context(chunks: list[RetrievedChunk]) -> str:
    """Render selected chunks as labelled context blocks."""
    blocks = []
    for number, chunk in enumerate(chunks, start=1):
        title = chunk.material_title or "Untitled material"
        header = f"Source {number} | {title} | {chunk.source_type} {chunk.source_index}"
        blocks.append(f"{header}\n{chunk.text}".strip())
    return CONTEXT_SEPARATOR.join(blocks)


class RetrievalService:
    """Builds token-budgeted material context for a class.

    Parameters
    ----------
    ai_client:
        Used for the query embedding.
    chunk_store:
        Nearest-neighbour search over stored chunks.
    """

    def __init__(
        self,
        ai_client: MultiProviderClient,
        chunk_store: IChunkStore,
        max_context_tokens: int = DEFAULT_CONTEXT_TOKENS,
        match_count: int = DEFAULT_MATCH_COUNT,
        max_per_material: int = DEFAULT_MAX_PER_MATERIAL,
    ) -> None:
        self._ai = ai_client
        self._chunks = chunk_store
        self._max_context_tokens = max_context_tokens
        self._match_count = match_count
        self._max_per_material = max_per_material
        self._logger = get_logger(__name__)

    async def retrieve_chunks(self, class_id: str, query: str) -> list[RetrievedChunk]:
        """Embed *query* and return the selected chunks in rank order."""
        result = await self._ai.generate_embeddings([query])
        if not result.embeddings:
            raise EmbeddingError(
                "Embedding request returned no vectors.", provider_name=result.provider
            )

        candidates = await self._chunks.match_chunks(
            class_id, result.embeddings[0], self._match_count
        )
        selected = select_chunks(candidates, self._max_context_tokens, self._max_per_material)
        self._logger.info(
            "context_packed",
            class_id=class_id,
            candidates=len(candidates),
            selected=len(selected),
            tokens=sum(chunk_tokens(c) for c in selected),
        )
        return selected

    async def retrieve_context(self, class_id: str, query: str) -> str:
        """Return the packed context string for *query* ("" if nothing matched)."""
        return format_context(await self.retrieve_chunks(class_id, query))

"""Token-bounded chunking with word-level overlap.

Splits extracted :class:`~coursemind.models.materials.MaterialSegment`
objects into :class:`~coursemind.models.chunks.ChunkDraft` objects ready
for embedding.

Token counts use the ``ceil(len / 4)`` character heuristic rather than a
real tokenizer.  Retrieval budgets context with the same estimate, so the
two must stay in lockstep.

Algorithm per segment:

1. A segment whose estimate fits within ``chunk_tokens`` becomes one chunk,
   text unchanged.
2. Otherwise the segment is split on whitespace and a window grows word by
   word while the joined window still fits.  When the next word would
   overflow, the window is emitted and the next one starts ``overlap``
   words before the end of the previous window.
3. A single word that alone exceeds the limit is emitted as its own chunk,
   so the loop always advances.
"""

from __future__ import annotations

import math

import structlog

from coursemind.models.chunks import ChunkDraft
from coursemind.models.materials import MaterialSegment

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CHUNK_TOKENS = 1000
DEFAULT_CHUNK_OVERLAP = 100


def estimate_token_count(text: str) -> int:
    """Estimate tokens as one per four characters, never less than one."""
    return max(1, math.ceil(len(text) / 4))


class TextChunker:
    """Splits segments into overlapping, token-bounded chunks.

    Parameters
    ----------
    chunk_tokens:
        Maximum estimated tokens per chunk.
    overlap:
        Number of words repeated at the start of each follow-on window.
    """

    def __init__(
        self,
        chunk_tokens: int = DEFAULT_CHUNK_TOKENS,
        overlap: int = DEFAULT_CHUNK_OVERLAP,
    ) -> None:
        if chunk_tokens < 1:
            raise ValueError("chunk_tokens must be >= 1")
        if overlap < 0:
            raise ValueError("overlap must be >= 0")
        self._chunk_tokens = chunk_tokens
        self._overlap = overlap

    @property
    def chunk_tokens(self) -> int:
        return self._chunk_tokens

    def chunk(self, segments: list[MaterialSegment]) -> list[ChunkDraft]:
        """Chunk every non-empty segment, preserving segment order."""
        chunks: list[ChunkDraft] = []
        for segment in segments:
            if not segment.text.strip():
                continue
            for piece in self.split_text(segment.text):
                chunks.append(
                    ChunkDraft(
                        source_type=segment.source_type,
                        source_index=segment.source_index,
                        section_title=segment.section_title,
                        text=piece,
                        token_count=estimate_token_count(piece),
                        extraction_method=segment.extraction_method,
                        quality_score=segment.quality_score,
                    )
                )

        logger.debug("segments_chunked", segments=len(segments), chunks=len(chunks))
        return chunks

    def split_text(self, text: str) -> list[str]:
        """Split one block of text into chunk strings."""
        if estimate_token_count(text) <= self._chunk_tokens:
            return [text]

        words = text.split()
        pieces: list[str] = []
        start = 0
        while start < len(words):
            end = start
            current = ""
            while end < len(words):
                candidate = f"{current} {words[end]}" if current else words[end]
                if estimate_token_count(candidate) > self._chunk_tokens:
                    break
                current = candidate
                end += 1

            if end == start:
                # One word larger than the whole budget.
                current = words[start]
                end = start + 1

            pieces.append(current)
            if end >= len(words):
                break
            start = max(start + 1, end - self._overlap)

        return pieces

"""Unit tests for the ChromaDB chunk store adapter."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from coursemind.models.chunks import MaterialChunk
from coursemind.models.materials import ExtractionMethod, SourceType
from coursemind.providers.storage.chromadb_chunk_store import (
    ChromaDBChunkStore,
    _chunk_metadata,
)
from coursemind.utils.errors import StorageError


def _chunk(
    material_id: str,
    index: int,
    embedding: list[float],
    class_id: str = "class-1",
    **overrides: object,
) -> MaterialChunk:
    values: dict[str, object] = {
        "chunk_id": f"{material_id}:{index}",
        "material_id": material_id,
        "class_id": class_id,
        "material_title": f"Title {material_id}",
        "source_type": SourceType.PAGE,
        "source_index": index + 1,
        "text": f"chunk {index} of {material_id}",
        "token_count": 5,
        "embedding": embedding,
        "embedding_provider": "openai",
        "embedding_model": "text-embedding-3-small",
    }
    values.update(overrides)
    return MaterialChunk(**values)


@pytest.fixture()
def store(tmp_path: Path) -> ChromaDBChunkStore:
    return ChromaDBChunkStore(
        persist_directory=str(tmp_path / "chromadb"),
        collection_name="test_material_chunks",
    )


class TestChunkMetadata:
    def test_optional_fields_omitted_when_unset(self) -> None:
        meta = _chunk_metadata(_chunk("m1", 0, [1.0, 0.0, 0.0]))
        assert "section_title" not in meta
        assert "quality_score" not in meta
        assert meta["source_type"] == "page"
        assert meta["extraction_method"] == "text"

    def test_optional_fields_kept_when_set(self) -> None:
        chunk = _chunk(
            "m1",
            0,
            [1.0, 0.0, 0.0],
            section_title="Vectors",
            quality_score=71,
            extraction_method=ExtractionMethod.OCR,
        )
        meta = _chunk_metadata(chunk)
        assert meta["section_title"] == "Vectors"
        assert meta["quality_score"] == 71.0
        assert meta["extraction_method"] == "ocr"


class TestChromaDBChunkStore:
    @pytest.mark.asyncio
    async def test_empty_collection_matches_nothing(self, store: ChromaDBChunkStore) -> None:
        assert await store.match_chunks("class-1", [1.0, 0.0, 0.0], 5) == []

    @pytest.mark.asyncio
    async def test_replace_is_delete_then_insert(self, store: ChromaDBChunkStore) -> None:
        first = [_chunk("m1", i, [1.0, float(i), 0.0]) for i in range(3)]
        assert await store.replace_material_chunks("m1", first) == 3
        assert await store.count_material_chunks("m1") == 3

        second = [_chunk("m1", 0, [0.0, 1.0, 0.0])]
        assert await store.replace_material_chunks("m1", second) == 1
        assert await store.count_material_chunks("m1") == 1

    @pytest.mark.asyncio
    async def test_replace_leaves_other_materials(self, store: ChromaDBChunkStore) -> None:
        await store.replace_material_chunks("m1", [_chunk("m1", 0, [1.0, 0.0, 0.0])])
        await store.replace_material_chunks("m2", [_chunk("m2", 0, [0.0, 1.0, 0.0])])
        await store.replace_material_chunks("m1", [])

        assert await store.count_material_chunks("m1") == 0
        assert await store.count_material_chunks("m2") == 1

    @pytest.mark.asyncio
    async def test_match_scoped_to_class_and_ranked(self, store: ChromaDBChunkStore) -> None:
        await store.replace_material_chunks(
            "m1",
            [
                _chunk("m1", 0, [1.0, 0.0, 0.0]),
                _chunk("m1", 1, [0.7, 0.7, 0.0]),
            ],
        )
        await store.replace_material_chunks(
            "other", [_chunk("other", 0, [1.0, 0.0, 0.0], class_id="class-2")]
        )

        matches = await store.match_chunks("class-1", [1.0, 0.0, 0.0], 10)

        assert [m.chunk_id for m in matches] == ["m1:0", "m1:1"]
        assert matches[0].similarity == pytest.approx(1.0, abs=1e-4)
        assert matches[0].similarity > matches[1].similarity
        assert matches[0].material_title == "Title m1"
        assert matches[0].source_type == "page"
        assert matches[0].token_count == 5
        assert matches[0].section_title is None

    @pytest.mark.asyncio
    async def test_match_count_limits_results(self, store: ChromaDBChunkStore) -> None:
        await store.replace_material_chunks(
            "m1", [_chunk("m1", i, [1.0, 0.1 * i, 0.0]) for i in range(4)]
        )
        assert len(await store.match_chunks("class-1", [1.0, 0.0, 0.0], 2)) == 2
        assert await store.match_chunks("class-1", [1.0, 0.0, 0.0], 0) == []

    @pytest.mark.asyncio
    async def test_backend_failure_is_storage_error(self) -> None:
        collection = MagicMock()
        collection.delete.side_effect = RuntimeError("disk full")
        client = MagicMock()
        client.get_or_create_collection.return_value = collection
        store = ChromaDBChunkStore(client=client)

        with pytest.raises(StorageError, match="disk full") as exc_info:
            await store.replace_material_chunks("m1", [_chunk("m1", 0, [1.0])])
        assert exc_info.value.provider_name == "chromadb"

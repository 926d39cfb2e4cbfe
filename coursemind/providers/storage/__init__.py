"""Persistence adapters: SQLite (materials, jobs, AI request log), ChromaDB
(chunks) and local-filesystem object storage."""

from coursemind.providers.storage.chromadb_chunk_store import ChromaDBChunkStore
from coursemind.providers.storage.local_object_storage import LocalObjectStorage
from coursemind.providers.storage.sqlite_material_store import SQLiteMaterialStore
from coursemind.providers.storage.sqlite_request_logger import SQLiteRequestLogger

__all__ = [
    "ChromaDBChunkStore",
    "LocalObjectStorage",
    "SQLiteMaterialStore",
    "SQLiteRequestLogger",
]

"""Local-filesystem object storage for uploaded materials.

Objects live under a base directory; a material's ``storage_path`` is a
relative key such as ``{class_id}/{filename}``.  Keys that would escape the
base directory are rejected.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from coursemind.interfaces.object_storage import IObjectStorage
from coursemind.utils.errors import StorageError


class LocalObjectStorage(IObjectStorage):
    """Stores objects as files under *base_dir*."""

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir).resolve()

    def _resolve(self, key: str) -> Path:
        path = (self._base_dir / key.lstrip("/")).resolve()
        if self._base_dir not in path.parents and path != self._base_dir:
            raise StorageError(f"Invalid storage path: {key}", provider_name="local")
        return path

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise StorageError(f"Object not found: {path}", provider_name="local") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}", provider_name="local") from exc

    async def upload(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_bytes, data)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}", provider_name="local") from exc

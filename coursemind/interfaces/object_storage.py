"""Abstract base class for raw upload storage."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: LocalObjectStorage (coursemind/providers/storage/)
class IObjectStorage(ABC):
    """Opaque byte storage keyed by a material's ``storage_path``."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the stored bytes.

        Raises
        ------
        coursemind.utils.errors.StorageError
            If the object is missing or unreadable.
        """

    @abstractmethod
    async def upload(self, path: str, data: bytes) -> None:
        """Store *data* under *path*, overwriting any existing object."""

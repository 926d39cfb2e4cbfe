"""Abstract provider and store contracts.

Services depend only on these ABCs; ``coursemind.main`` wires in the
concrete adapters from ``coursemind.providers``.
"""

from coursemind.interfaces.ai_provider import IAIProvider
from coursemind.interfaces.chunk_store import IChunkStore
from coursemind.interfaces.material_store import IMaterialStore
from coursemind.interfaces.object_storage import IObjectStorage
from coursemind.interfaces.ocr_provider import IOCRProvider
from coursemind.interfaces.request_logger import IRequestLogger

__all__ = [
    "IAIProvider",
    "IChunkStore",
    "IMaterialStore",
    "IOCRProvider",
    "IObjectStorage",
    "IRequestLogger",
]

"""CourseMind FastAPI application entry point.

Wires providers, services and routes together via dependency injection.
Configuration comes from the environment / ``.env`` through
:class:`~coursemind.config.settings.Settings`.

``build_ai_client`` and ``_build_all`` are shared with the CLI so a batch
run from the command line uses exactly the same wiring as the HTTP
trigger.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from coursemind import __version__
from coursemind.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from coursemind.api.routes import router as api_router
from coursemind.config.settings import Settings
from coursemind.interfaces.ai_provider import IAIProvider
from coursemind.models.ai import Capability
from coursemind.pipeline.material_processor import MaterialProcessor
from coursemind.pipeline.scheduler import MaterialJobScheduler
from coursemind.providers.ai.anthropic_provider import AnthropicProvider
from coursemind.providers.ai.gemini_provider import GeminiProvider
from coursemind.providers.ai.openai_compatible_provider import OpenAICompatibleProvider
from coursemind.providers.ocr.tesseract_provider import TesseractOCRProvider
from coursemind.providers.storage.chromadb_chunk_store import ChromaDBChunkStore
from coursemind.providers.storage.local_object_storage import LocalObjectStorage
from coursemind.providers.storage.sqlite_material_store import SQLiteMaterialStore
from coursemind.providers.storage.sqlite_request_logger import SQLiteRequestLogger
from coursemind.services.ai_client import MultiProviderClient, ProviderRegistry
from coursemind.services.chunking import TextChunker
from coursemind.services.extraction.ocr_pipeline import OcrPipeline
from coursemind.services.extraction.text_extractor import TextExtractor
from coursemind.services.generation import (
    BlueprintGenerator,
    ChatService,
    FlashcardGenerator,
    QuizGenerator,
)
from coursemind.services.retrieval import RetrievalService
from coursemind.utils.logging import configure_logging, get_logger

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


def build_ai_client(app_settings: Settings, http_client: httpx.AsyncClient) -> MultiProviderClient:
    """Build the provider registry and one adapter per backend."""
    registry = ProviderRegistry.from_settings(app_settings)
    timeout = app_settings.ai_request_timeout_seconds

    providers: dict[str, IAIProvider] = {}
    for config in registry.providers:
        if not config.api_key:
            continue
        if config.name in ("openrouter", "openai"):
            providers[config.name] = OpenAICompatibleProvider(config, timeout_seconds=timeout)
        elif config.name == "gemini":
            providers[config.name] = GeminiProvider(config, http_client=http_client)
        elif config.name == "anthropic":
            providers[config.name] = AnthropicProvider(config, timeout_seconds=timeout)

    return MultiProviderClient(registry, providers)


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=app_settings.ai_request_timeout_seconds)
    ai_client = build_ai_client(app_settings, http_client)

    # -- Stores --
    material_store = SQLiteMaterialStore(db_path=app_settings.database_path)
    request_logger = SQLiteRequestLogger(db_path=app_settings.database_path)
    chunk_store = ChromaDBChunkStore(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
    )
    object_storage = LocalObjectStorage(app_settings.materials_storage_dir)

    # -- Ingestion --
    ocr_provider = TesseractOCRProvider(language=app_settings.ocr_language)
    processor = MaterialProcessor(
        material_store=material_store,
        chunk_store=chunk_store,
        object_storage=object_storage,
        ai_client=ai_client,
        text_extractor=TextExtractor(),
        ocr_pipeline=OcrPipeline(
            ocr_provider=ocr_provider,
            ai_client=ai_client,
            page_concurrency=app_settings.vision_page_concurrency,
            max_pdf_pages=app_settings.ocr_max_pdf_pages,
            request_logger=request_logger,
        ),
        chunker=TextChunker(
            chunk_tokens=app_settings.chunk_tokens,
            overlap=app_settings.chunk_overlap,
        ),
        request_logger=request_logger,
        embedding_dim=app_settings.embedding_dim,
    )
    scheduler = MaterialJobScheduler(
        material_store=material_store,
        processor=processor,
        batch_size=app_settings.material_job_batch_size,
        lock_minutes=app_settings.material_job_lock_minutes,
        max_attempts=app_settings.max_job_attempts,
    )

    # -- Retrieval and generation --
    retrieval = RetrievalService(
        ai_client=ai_client,
        chunk_store=chunk_store,
        max_context_tokens=app_settings.rag_context_tokens,
        match_count=app_settings.rag_match_count,
        max_per_material=app_settings.rag_max_per_material,
    )
    generation_kwargs: dict[str, Any] = {
        "ai_client": ai_client,
        "retrieval": retrieval,
        "request_logger": request_logger,
        "temperature": app_settings.ai_temperature,
        "max_tokens": app_settings.ai_max_tokens,
    }

    return {
        "settings": app_settings,
        "http_client": http_client,
        "ai_client": ai_client,
        "material_store": material_store,
        "request_logger": request_logger,
        "chunk_store": chunk_store,
        "object_storage": object_storage,
        "ocr_provider": ocr_provider,
        "processor": processor,
        "scheduler": scheduler,
        "retrieval": retrieval,
        "blueprint_generator": BlueprintGenerator(**generation_kwargs),
        "quiz_generator": QuizGenerator(**generation_kwargs),
        "flashcard_generator": FlashcardGenerator(**generation_kwargs),
        "chat_service": ChatService(**generation_kwargs),
    }


async def initialize_components(components: dict[str, Any]) -> None:
    """Create the SQLite schema used by the material store and request log."""
    await components["material_store"].initialize()
    await components["request_logger"].initialize()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build and initialise services on startup, release them on shutdown."""
    components = _build_all(settings)
    await initialize_components(components)

    for key, value in components.items():
        setattr(application.state, key, value)

    ai_client: MultiProviderClient = components["ai_client"]
    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        chat_providers=ai_client.provider_order(Capability.CHAT),
        ocr_available=components["ocr_provider"].is_available(),
    )

    yield

    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(components: dict[str, Any] | None = None) -> FastAPI:
    """Build the FastAPI application.

    With *components* the given services are installed on ``app.state``
    directly and no startup wiring runs.
    """
    application = FastAPI(
        title="CourseMind API",
        version=__version__,
        description="Course material ingestion and retrieval-grounded generation.",
        lifespan=None if components is not None else _lifespan,
    )
    if components is not None:
        for key, value in components.items():
            setattr(application.state, key, value)

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "coursemind.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )

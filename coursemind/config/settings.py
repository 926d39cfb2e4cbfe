"""Application settings loaded from environment variables via pydantic-settings.

Values are read from two sources, in priority order:

1. Environment variables, e.g. ``OPENROUTER_API_KEY=sk-or-...``
2. A ``.env`` file in the working directory (local development).

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY`` automatically.
An empty string means "not configured": a provider only joins a
capability's fallback chain when both its key and the model for that
capability are set (see :mod:`coursemind.services.ai_client`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """CourseMind application settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === AI Providers ===
    # One key plus one model id per capability.  vision_model falls back to
    # the chat model when left empty.
    openrouter_api_key: str = ""
    openrouter_model: str = ""
    openrouter_embedding_model: str = ""
    openrouter_vision_model: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_site_url: str = ""  # sent as HTTP-Referer
    openrouter_app_name: str = ""  # sent as X-Title

    openai_api_key: str = ""
    openai_model: str = ""
    openai_embedding_model: str = ""
    openai_vision_model: str = ""
    openai_base_url: str = ""

    gemini_api_key: str = ""
    gemini_model: str = ""
    gemini_embedding_model: str = ""
    gemini_vision_model: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Anthropic has no embeddings endpoint: chat and vision only.
    anthropic_api_key: str = ""
    anthropic_model: str = ""
    anthropic_vision_model: str = ""

    ai_provider_default: str = "openrouter"
    ai_temperature: float = 0.2
    ai_max_tokens: int = 1200
    ai_request_timeout_seconds: float = 60.0

    # === Ingestion Jobs ===
    material_job_batch_size: int = 3
    material_job_lock_minutes: int = 15
    max_job_attempts: int = 5
    vision_page_concurrency: int = 3

    # === OCR ===
    ocr_language: str = "eng"
    ocr_max_pdf_pages: int = 30

    # === Chunking / Embeddings ===
    chunk_tokens: int = 1000
    chunk_overlap: int = 100
    embedding_dim: int = 1536

    # === Retrieval ===
    rag_context_tokens: int = 24000
    rag_match_count: int = 24
    rag_max_per_material: int = 6

    # === Storage ===
    database_path: str = "data/coursemind.db"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "material_chunks"
    materials_storage_dir: str = "./data/materials"

    # === Ingestion Trigger ===
    # Empty = the trigger endpoint is open; restrict network access instead.
    cron_secret: str = ""

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (priority order):
#
#   1. **Environment variables** -- e.g., OPENAI_API_KEY=sk-abc123
#   2. **.env file** -- key=value lines in the project root .env file
#
# Field name `database_path` maps to env var `DATABASE_PATH`.  Defaults are
# used when neither source sets a value.  Non-secret pipeline tuning
# (chunk size, retrieval threshold, bulk concurrency) lives in
# config/config.yaml and is merged by config/loader.py.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """tutorKB application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Persistence ===
    # Source items, tags and chunks share one SQLite file (WAL mode).
    database_path: str = "data/knowledge.db"
    storage_dir: str = "data/uploads"
    max_upload_bytes: int = 20 * 1024 * 1024

    # === Embeddings ===
    # "hashing" is the offline deterministic embedder; "openai" calls the
    # OpenAI (or OpenAI-compatible) embeddings endpoint.
    embedding_provider: str = "hashing"
    embedding_dimension: int = 1536
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = ""
    embedding_timeout_seconds: float = 30.0

    # === Video transcripts ===
    transcript_timeout_seconds: float = 15.0

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: str = "*"

    def get_cors_origins(self) -> list[str]:
        """Split the comma-separated ``cors_origins`` value into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

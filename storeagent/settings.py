"""Application settings using Pydantic BaseSettings."""

import os
import re

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_async_database_url() -> str:
    """Get database URL converted for asyncpg driver."""
    url = os.environ.get("DATABASE_URL", "")
    if not url:
        return "sqlite+aiosqlite:///./storeagent.db"
    # Convert postgres:// to postgresql+asyncpg:// for SQLAlchemy async
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    # asyncpg doesn't support sslmode, it uses ssl parameter
    if "sslmode=" in url:
        url = re.sub(r'[?&]sslmode=[^&]*', '', url)
        url = url.rstrip('?&')
    return url


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # GCP Configuration (optional for local dev)
    gcp_project_id: str = "local-development"
    gcp_region: str = "us-central1"

    # Postgres
    database_url: str = ""

    # Redis (optional)
    redis_url: str = "redis://localhost:6379/0"
    redis_enabled: bool = False  # Disable Redis by default for dev

    # LLM (Gemini) defaults, used when a key has no enabled model config
    gemini_model: str = "gemini-2.0-flash"
    # DeepSeek (OpenAI-compatible) defaults
    deepseek_model: str = "deepseek-chat"
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_timeout_seconds: float = 60.0

    llm_temperature: float = 0.7
    llm_top_k: int = 40
    llm_top_p: float = 0.95
    llm_max_output_tokens: int = 2048

    # Prompt construction
    template_cache_ttl_seconds: int = 300
    history_limit_chars: int = 2000
    max_suggested_governorates: int = 10

    # Response generation
    min_response_length: int = 2
    min_keys_retries: int = 3
    short_response_cooldown_ms: int = 5000
    rate_limit_cooldown_ms: int = 60000
    semantic_cache_ttl_seconds: int = 3600

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    api_v1_prefix: str = "/api/v1"

    # Cloud Tasks (async interaction logs)
    cloud_tasks_enabled: bool = False
    cloud_tasks_location: str = "us-central1"
    cloud_tasks_worker_url: str | None = None  # Base URL of the log worker

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()

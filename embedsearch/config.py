"""
EmbedSearch Application Configuration

Uses pydantic-settings to load configuration from environment variables and .env file.
All settings are validated on application startup.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Database (embedded SQLite)
    # =========================================================================
    DATABASE_URL: str = "sqlite:///./embeddings.db"
    DB_ECHO: bool = False

    # =========================================================================
    # Embedding model
    # =========================================================================
    EMBEDDING_PROVIDER: str = "openai"  # openai | deepseek | qwen | gemma | ollama
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_MAX_INPUT_CHARS: int = 32_000  # ~8k tokens for text-embedding-3-*
    EMBEDDING_TIMEOUT_SECONDS: float = 30.0

    # =========================================================================
    # Answer generation (chat completion)
    # =========================================================================
    ANSWER_LLM_PROVIDER: str = "openai"
    ANSWER_LLM_MODEL: str = "gpt-4o-mini"
    ANSWER_LLM_TEMPERATURE: float = 0.2
    ANSWER_LLM_MAX_TOKENS: int = 512
    ANSWER_MAX_PROMPT_CHARS: int = 12_000  # Input budget for the composed prompt
    ANSWER_TIMEOUT_SECONDS: float = 30.0

    # Provider-specific API keys and base URLs
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None  # Leave None for api.openai.com
    DEEPSEEK_API_KEY: Optional[str] = None
    DEEPSEEK_BASE_URL: str = "https://api.deepseek.com/v1"
    QWEN_API_KEY: Optional[str] = None
    QWEN_BASE_URL: str = "https://dashscope.aliyuncs.com/compatible-mode/v1"
    GEMMA_API_KEY: Optional[str] = None
    GEMMA_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai"
    OLLAMA_API_KEY: Optional[str] = "ollama"  # Ollama ignores the key but the client requires one
    OLLAMA_BASE_URL: str = "http://localhost:11434/v1"

    # =========================================================================
    # Query
    # =========================================================================
    QUERY_DEFAULT_TOP_K: int = 5
    QUERY_MAX_TOP_K: int = 100
    QUERY_ANSWER_DEFAULT: bool = False

    # =========================================================================
    # Ingestion
    # =========================================================================
    DUPLICATE_POLICY: Literal["upsert", "reject"] = "upsert"
    INGEST_SUMMARIZE: bool = False  # Embed an LLM summary instead of the raw text

    # =========================================================================
    # Embedding cache (Redis, optional)
    # =========================================================================
    EMBEDDING_CACHE_ENABLED: bool = False
    EMBEDDING_CACHE_TTL_SECONDS: int = 86_400
    REDIS_URL: str = "redis://localhost:6379/0"

    # =========================================================================
    # Monitoring
    # =========================================================================
    SENTRY_DSN: Optional[str] = None  # Optional - disabled if not set

    # =========================================================================
    # Application
    # =========================================================================
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


settings = get_settings()

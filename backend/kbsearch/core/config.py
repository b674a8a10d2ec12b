"""
Configuration management using Pydantic Settings.
All environment variables are loaded and validated here.
"""

from typing import List, Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ================================
    # Application Configuration
    # ================================
    APP_NAME: str = "KB Search"
    APP_ENV: Literal["development", "test", "staging", "production"] = "development"
    DEBUG: bool = True

    # API Configuration
    API_PREFIX: str = "/api"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    @field_validator("ALLOWED_ORIGINS")
    @classmethod
    def parse_origins(cls, v: str) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in v.split(",")]

    # ================================
    # Database Configuration
    # ================================
    DATABASE_URL: str = Field(..., description="PostgreSQL connection string (postgresql+asyncpg://...)")
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # ================================
    # JWT Authentication
    # ================================
    # Tokens are issued by the surrounding application; this service only verifies them
    JWT_SECRET_KEY: str = Field(..., min_length=32)
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # ================================
    # Embedding Configuration
    # ================================
    EMBEDDING_PROVIDER: Literal["sentence_transformers", "openai"] = "sentence_transformers"
    EMBEDDING_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
    EMBEDDING_DIMENSION: int = 384
    EMBEDDING_DEVICE: Literal["cpu", "cuda", "mps"] = "cpu"

    # Retry policy for transient provider failures
    EMBEDDING_MAX_RETRIES: int = Field(default=3, ge=1)
    EMBEDDING_RETRY_INITIAL_WAIT_SECONDS: float = 0.5
    EMBEDDING_RETRY_MAX_WAIT_SECONDS: float = 10.0

    # Max in-flight embedding calls per ingestion run
    EMBEDDING_CONCURRENCY: int = Field(default=4, ge=1)

    # OpenAI (used when EMBEDDING_PROVIDER=openai)
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    OPENAI_REQUEST_TIMEOUT: float = 30.0

    # ================================
    # Chunking Configuration
    # ================================
    CHUNK_SIZE_TOKENS: int = Field(default=800, ge=1)
    CHUNK_OVERLAP_TOKENS: int = Field(default=100, ge=0)

    # ================================
    # Search Configuration
    # ================================
    SEARCH_DEFAULT_LIMIT: int = 10
    SEARCH_MAX_LIMIT: int = 50  # Hard ceiling, larger limits are clamped
    SEARCH_EXCERPT_LENGTH: int = 200
    SEARCH_MIN_SIMILARITY: float = Field(default=0.3, ge=0.0, le=1.0)

    # HNSW candidate list size per search (pgvector default is 40).
    # Raised to at least the limit, multiplied by SEARCH_FILTER_OVERFETCH
    # when a category filter is applied after the index scan.
    SEARCH_HNSW_EF_SEARCH: int = Field(default=100, ge=1, le=1000)
    SEARCH_FILTER_OVERFETCH: int = Field(default=4, ge=1)

    # ================================
    # Celery Configuration
    # ================================
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"
    CELERY_TASK_SERIALIZER: str = "json"
    CELERY_RESULT_SERIALIZER: str = "json"
    # Celery accept content as comma-separated string, we'll parse it
    CELERY_ACCEPT_CONTENT: str = "json"
    CELERY_TIMEZONE: str = "UTC"
    CELERY_ENABLE_UTC: bool = True
    REEMBED_INTERVAL_MINUTES: int = 15
    REEMBED_BATCH_SIZE: int = 100

    @property
    def celery_accept_content_list(self) -> List[str]:
        """Parse CELERY_ACCEPT_CONTENT into a list."""
        return [item.strip() for item in self.CELERY_ACCEPT_CONTENT.split(",")]

    # ================================
    # Logging Configuration
    # ================================
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"


# Global settings instance
settings = Settings()

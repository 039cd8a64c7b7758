"""
Application Configuration
Loads environment variables and provides typed configuration.
"""
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OpenAI (embeddings + generation)
    openai_api_key: str = Field(...)
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 384
    chat_model: str = Field(default="gpt-4o-mini")
    llm_temperature: float = 0.4
    llm_seed: int = 42

    # Pinecone
    pinecone_api_key: str = Field(...)
    pinecone_index: str = Field(default="docs")
    pinecone_cloud: str = "aws"
    pinecone_region: str = "us-east-1"
    provision_index_on_startup: bool = True

    # Redis (answer cache). Unset disables caching.
    redis_url: Optional[str] = Field(default=None)
    cache_ttl_seconds: int = 3600

    # Gateway call timeout
    provider_timeout_seconds: float = 30.0

    # App Settings
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Segmenter budgets (approximate tokens)
    max_chunk_tokens: int = Field(default=200)
    chunk_overlap_tokens: int = Field(default=30)
    embed_concurrency: int = 4

    # Retrieval
    search_overfetch: int = 30
    max_candidates: int = 15
    hybrid_boost: float = 0.02

    # Persona
    persona_mode: bool = True
    assistant_name: str = "DocQA"
    assistant_developer: str = ""


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

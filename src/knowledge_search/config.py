"""Configuration models for the search engine."""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetrievalConfig(BaseModel):
    """Configures candidate retrieval from the vector index."""

    top_k: int = Field(default=10, ge=1, le=100)


class ConfidenceConfig(BaseModel):
    """Heuristic constants of the confidence model and the suspected-result gate.

    The coefficients have no analytical derivation; they are kept as named
    tunables so deployments can adjust them without touching scoring code.
    """

    model_config = ConfigDict(frozen=True)

    threshold: float = Field(default=0.7, gt=0.0, lt=1.0)
    similarity_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    result_count_weight: float = Field(default=0.2, ge=0.0, le=1.0)
    content_quality_weight: float = Field(default=0.2, ge=0.0, le=1.0)
    relative_discount: float = Field(default=0.9, ge=0.0, le=1.0)
    max_suspected: int = Field(default=3, ge=0)
    length_reference_chars: int = Field(default=100, ge=1)
    short_content_chars: int = Field(default=50, ge=0)
    truncated_completeness: float = Field(default=0.7, ge=0.0, le=1.0)


class SearchSettings(BaseSettings):
    """Process-level settings read from the environment (prefix KNOWLEDGE_SEARCH_)."""

    model_config = SettingsConfigDict(
        env_prefix="KNOWLEDGE_SEARCH_", env_file=".env", extra="ignore"
    )

    confidence_threshold: float = Field(default=0.7, gt=0.0, lt=1.0)
    log_level: str = "info"
    embedding_model: str = "text-embedding-3-small"
    openai_api_key: str | None = None
    faiss_index_path: str | None = None

    def confidence_config(self) -> ConfidenceConfig:
        return ConfidenceConfig(threshold=self.confidence_threshold)


@lru_cache(maxsize=1)
def get_settings() -> SearchSettings:
    """Return the settings loaded once for the lifetime of the process."""
    return SearchSettings()

"""
Configuration for the saga manager quality engine.

Each concern gets its own ``BaseSettings`` class with a dedicated
environment prefix so deployments can override a single knob, e.g.
``SAGA_QUALITY_STALENESS_SECONDS=86400`` or ``SAGA_EMBEDDING_PROVIDER=local``.
"""

import logging
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# One week: metrics older than this are due for recomputation
DEFAULT_STALENESS_SECONDS = 604_800


class QualitySettings(BaseSettings):
    """Quality metrics recomputation settings."""

    model_config = SettingsConfigDict(env_prefix="SAGA_QUALITY_", extra="ignore")

    staleness_seconds: int = Field(default=DEFAULT_STALENESS_SECONDS, ge=1)
    batch_limit: int = Field(default=100, ge=1)
    pass_threshold: int = Field(default=70, ge=0, le=100)


class SearchSettings(BaseSettings):
    """Semantic search defaults."""

    model_config = SettingsConfigDict(env_prefix="SAGA_SEARCH_", extra="ignore")

    default_limit: int = Field(default=10, ge=1)
    min_similarity: float = Field(default=0.5, ge=-1.0, le=1.0)
    # Bounded scan size for unscoped search is limit * candidate_multiplier
    candidate_multiplier: int = Field(default=10, ge=1)


class EmbeddingSettings(BaseSettings):
    """Embedding generation collaborator settings."""

    model_config = SettingsConfigDict(env_prefix="SAGA_EMBEDDING_", extra="ignore")

    provider: Literal["http", "local"] = "http"
    endpoint: str = "http://localhost:8000/embed"
    api_key: SecretStr | None = None
    model_name: str = "all-MiniLM-L6-v2"
    dimensions: int = Field(default=384, ge=1)
    batch_size: int = Field(default=32, ge=1)
    timeout: float = Field(default=30.0, gt=0.0)
    max_retries: int = Field(default=3, ge=1)
    # Torch device for the local provider; None lets sentence-transformers pick
    device: str | None = None

    @model_validator(mode="after")
    def check_endpoint(self) -> "EmbeddingSettings":
        if self.provider == "http" and not self.endpoint.startswith(("http://", "https://")):
            raise ValueError(f"Embedding endpoint must be an http(s) URL, got {self.endpoint!r}")
        return self


class Settings(BaseSettings):
    """Aggregate of all settings groups."""

    model_config = SettingsConfigDict(env_prefix="SAGA_", extra="ignore")

    quality: QualitySettings = Field(default_factory=QualitySettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)


settings = Settings()

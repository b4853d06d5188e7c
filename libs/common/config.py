"""Configuration management for the embedding service.

This module centralizes environment-driven configuration. It builds on
``pydantic_settings.BaseSettings`` so configuration can be provided via
environment variables, ``.env`` files, or defaults.

Highlights
- Strongly‑typed settings with sensible defaults
- One place to discover commonly used environment variables
- Service‑specific subclasses keep concerns clear

Usage
- Inject the config in your service entrypoint: ``config = EmbeddingConfig()``
- Or select dynamically: ``config = get_config("embedding")``
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class shared by services and scripts.

    Parameters are read from the process environment using the upper‑cased
    field name (``ml_log_level`` -> ``ML_LOG_LEVEL``). Defaults keep local
    development convenient while still being explicit.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    ml_env: str = Field(default="local")

    # Logging
    ml_log_level: str = Field(default="INFO")
    ml_log_format: str = Field(default="json")

    # Performance
    ml_gpu_preference: str = Field(default="auto", description="auto, cpu or gpu")


class EmbeddingConfig(BaseConfig):
    """Configuration for the embedding service.

    The model identifier is a deploy‑time constant; nothing here can be
    changed once the process has started. ``PORT`` and ``CACHE_DIR`` are
    accepted as aliases so the service drops into plain container runtimes.
    """

    ml_embedding_host: str = Field(default="0.0.0.0")
    ml_embedding_port: int = Field(
        default=3001,
        validation_alias=AliasChoices("ml_embedding_port", "port"),
    )
    ml_embedding_model: str = Field(default="sentence-transformers/all-MiniLM-L6-v2")
    ml_embedding_dimension: int = Field(default=384, description="Expected output dimensionality")
    ml_embedding_description: str = Field(
        default="Sentence transformer optimized for semantic similarity"
    )
    ml_embedding_cache_dir: Optional[str] = Field(
        default="/tmp/transformers-cache",
        validation_alias=AliasChoices("ml_embedding_cache_dir", "cache_dir"),
    )
    ml_embedding_load_attempts: int = Field(default=3, ge=1)
    ml_embedding_load_retry_delay: float = Field(default=2.0, ge=0.0)
    ml_max_concurrent_inferences: int = Field(default=4, ge=1)


def get_config(service_name: str) -> BaseConfig:
    """Get configuration for a specific service.

    Parameters
    - service_name: Literal name, currently only ``embedding``.

    Returns
    - A concrete ``BaseConfig`` subclass pre‑wired to read the right env vars.
    """
    config_map = {
        "embedding": EmbeddingConfig,
    }

    # Default to ``BaseConfig`` to avoid surprising crashes for unknown names.
    config_class = config_map.get(service_name, BaseConfig)
    return config_class()

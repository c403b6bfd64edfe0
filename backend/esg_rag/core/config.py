"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from esg_rag.core.errors import ConfigurationError

ENV_PREFIX = "ESGRAG_"
DEFAULT_CONFIG_PATH = Path("~/.config/esg-rag/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dimension"): "embedding_dim",
    ("embeddings", "apiUrl"): "embedding_api_url",
    ("embeddings", "apiKey"): "embedding_api_key",
    ("embeddings", "timeout"): "embedding_timeout",
    ("embeddings", "maxBatchSize"): "embedding_max_batch_size",
    ("chunking", "maxTokens"): "chunk_max_tokens",
    ("chunking", "overlapTokens"): "chunk_overlap_tokens",
    ("chunking", "preserveParagraphs"): "chunk_preserve_paragraphs",
    ("chunking", "tokenUnit"): "chunk_token_unit",
    ("batchSize",): "batch_size",
    ("concurrency", "maxInFlight"): "max_concurrency",
    ("concurrency", "maxAttempts"): "max_attempts",
    ("concurrency", "backoffBase"): "backoff_base",
    ("concurrency", "backoffMax"): "backoff_max",
    ("skipExisting",): "skip_existing",
    ("search", "topK"): "search_top_k",
    ("search", "minSimilarity"): "search_min_similarity",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".esg-rag" / "documents.db")
    embedding_model: str = "hashed"
    embedding_dim: int | None = Field(default=None, ge=1)
    embedding_api_url: str = "https://api.openai.com/v1"
    embedding_api_key: str | None = None
    embedding_timeout: float = Field(default=30.0, gt=0)
    embedding_max_batch_size: int = Field(default=96, ge=1)
    chunk_max_tokens: int = Field(default=1000, ge=1)
    chunk_overlap_tokens: int = Field(default=200, ge=0)
    chunk_preserve_paragraphs: bool = True
    chunk_token_unit: Literal["word", "subword"] = "word"
    batch_size: int = Field(default=10, ge=1)
    max_concurrency: int = Field(default=2, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=0.5, ge=0)
    backoff_max: float = Field(default=8.0, ge=0)
    skip_existing: bool = True
    search_top_k: int = Field(default=10, ge=1, le=50)
    search_min_similarity: float = Field(default=0.5, ge=0.0, le=1.0)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_overlap_tokens >= self.chunk_max_tokens:
            raise ValueError("chunking.overlapTokens must be smaller than chunking.maxTokens")
        return self

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                try:
                    raw = yaml.safe_load(fh) or {}
                except yaml.YAMLError as exc:
                    raise ConfigurationError(f"Unreadable config file {config_path}: {exc}") from exc
            if not isinstance(raw, Mapping):
                raise ConfigurationError(f"Config file {config_path} must contain a mapping")
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with ESGRAG_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]

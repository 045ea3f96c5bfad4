"""Configuration models for the memory engine.

Settings come from an optional YAML file and environment overrides.
Paths left unset are derived from ``data_dir``.
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from memograph.errors import ConfigError

DEFAULT_DATA_DIR = Path.home() / ".memograph"


class PersistenceConfig(BaseModel):
    """Graph snapshot settings.

    Args:
        base_dir: Directory holding ``<projectId>.json`` snapshots.
        auto_save: Whether cached graphs are saved on a timer.
        save_interval: Seconds between auto-saves.
        max_backups: Backups kept per project, newest first.
    """

    base_dir: Path = DEFAULT_DATA_DIR / "graphs"
    auto_save: bool = True
    save_interval: float = Field(60.0, gt=0)
    max_backups: int = Field(5, ge=0)


class VectorStoreConfig(BaseModel):
    """Similarity index settings.

    Args:
        persist_path: JSON snapshot file.
        auto_save: Whether a dirty store is saved on a timer.
        save_interval: Seconds between auto-save checks.
        max_vectors: Capacity before the oldest record is evicted.
        dimension: Required length of every embedding.
    """

    persist_path: Path = DEFAULT_DATA_DIR / "memory" / "vectors.json"
    auto_save: bool = True
    save_interval: float = Field(30.0, gt=0)
    max_vectors: int = Field(10000, gt=0)
    dimension: int = Field(1536, gt=0)


class EmbeddingConfig(BaseModel):
    """Embedding provider settings.

    Args:
        provider: 'simple' (hash fallback) or 'openai'.
        model: Remote embedding model name.
        api_key: API key for the remote provider.
        base_url: OpenAI-compatible API root.
        dimension: Vector size for the hash provider.
        cache_size: Maximum cached embeddings.
        cache_ttl: Seconds a cached embedding stays valid.
        timeout: HTTP timeout in seconds.
    """

    provider: Literal["simple", "openai"] = "simple"
    model: str = "text-embedding-ada-002"
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    dimension: int = Field(384, gt=0)
    cache_size: int = Field(1000, gt=0)
    cache_ttl: float = Field(86400.0, gt=0)
    timeout: float = Field(30.0, gt=0)


class MemoryConfig(BaseModel):
    """Top-level configuration for a MemoryEngine."""

    data_dir: Path = DEFAULT_DATA_DIR
    graph: PersistenceConfig = Field(default_factory=PersistenceConfig)
    vectors: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)

    @model_validator(mode="before")
    @classmethod
    def _derive_paths(cls, data: Any) -> Any:
        """Root unset storage paths under data_dir."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data_dir = Path(data.get("data_dir") or DEFAULT_DATA_DIR).expanduser()
        data["data_dir"] = data_dir

        graph = dict(data.get("graph") or {})
        graph.setdefault("base_dir", data_dir / "graphs")
        data["graph"] = graph

        vectors = dict(data.get("vectors") or {})
        vectors.setdefault("persist_path", data_dir / "memory" / "vectors.json")
        data["vectors"] = vectors
        return data


def _read_yaml(path: Path) -> dict:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return raw


def load_config(
    path: Path | None = None,
    env: dict[str, str] | None = None,
) -> MemoryConfig:
    """Build a MemoryConfig from a YAML file and the environment.

    The file defaults to ``<data_dir>/config.yaml`` and is optional unless
    given explicitly. Environment variables win over file values:
    MEMOGRAPH_DATA_DIR, MEMOGRAPH_EMBEDDING_PROVIDER,
    MEMOGRAPH_SAVE_INTERVAL and OPENAI_API_KEY.

    Args:
        path: Explicit config file. Must exist when given.
        env: Environment mapping, defaults to ``os.environ``.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file is unreadable or values are invalid.
    """
    env = dict(os.environ) if env is None else env

    data_dir = Path(env.get("MEMOGRAPH_DATA_DIR") or DEFAULT_DATA_DIR).expanduser()
    if path is not None:
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        data = _read_yaml(path)
    else:
        default_file = data_dir / "config.yaml"
        data = _read_yaml(default_file) if default_file.is_file() else {}

    if "MEMOGRAPH_DATA_DIR" in env:
        data["data_dir"] = data_dir

    embedding = dict(data.get("embedding") or {})
    if env.get("MEMOGRAPH_EMBEDDING_PROVIDER"):
        embedding["provider"] = env["MEMOGRAPH_EMBEDDING_PROVIDER"]
    if env.get("OPENAI_API_KEY") and not embedding.get("api_key"):
        embedding["api_key"] = env["OPENAI_API_KEY"]
    data["embedding"] = embedding

    if env.get("MEMOGRAPH_SAVE_INTERVAL"):
        graph = dict(data.get("graph") or {})
        graph["save_interval"] = env["MEMOGRAPH_SAVE_INTERVAL"]
        data["graph"] = graph

    try:
        return MemoryConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

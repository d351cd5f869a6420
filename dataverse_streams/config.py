"""
Engine configuration.

Configuration comes from environment variables or a YAML settings file:

```yaml
engine:
  backend: sqlite            # memory | sqlite | duckdb
  db_path: /var/lib/streams/streams.db
  projection_cache_size: 1000
  block_store_path: /var/lib/streams/blocks
  models_file: /etc/streams/models.yaml
  log_level: INFO
  structured_logging: false
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ValidationError

BACKENDS = ("memory", "sqlite", "duckdb")

ENV_PREFIX = "DATAVERSE_STREAMS_"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    """Configuration for a StreamEngine."""

    backend: str = "memory"
    db_path: str | Path = ":memory:"
    projection_cache_size: int = 1000  # 0 disables the fold cache
    block_store_path: str | Path | None = None  # None keeps blocks in memory only
    models_file: str | Path | None = None
    max_block_bytes: int | None = None
    log_level: str = "INFO"
    structured_logging: bool = False

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check field values.

        Raises:
            ValidationError: On the first invalid field
        """
        if self.backend not in BACKENDS:
            raise ValidationError("backend", f"must be one of {', '.join(BACKENDS)}", self.backend)
        if self.projection_cache_size < 0:
            raise ValidationError(
                "projection_cache_size", "must be >= 0", str(self.projection_cache_size)
            )
        if self.max_block_bytes is not None and self.max_block_bytes < 1:
            raise ValidationError("max_block_bytes", "must be >= 1", str(self.max_block_bytes))

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Create config from DATAVERSE_STREAMS_* environment variables."""
        env = os.environ
        max_block = env.get(f"{ENV_PREFIX}MAX_BLOCK_BYTES")

        try:
            return cls(
                backend=env.get(f"{ENV_PREFIX}BACKEND", "memory"),
                db_path=env.get(f"{ENV_PREFIX}DB_PATH", ":memory:"),
                projection_cache_size=int(env.get(f"{ENV_PREFIX}PROJECTION_CACHE_SIZE", "1000")),
                block_store_path=env.get(f"{ENV_PREFIX}BLOCK_STORE_PATH") or None,
                models_file=env.get(f"{ENV_PREFIX}MODELS_FILE") or None,
                max_block_bytes=int(max_block) if max_block else None,
                log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL", "INFO"),
                structured_logging=_parse_bool(env.get(f"{ENV_PREFIX}STRUCTURED_LOGGING", "false")),
            )
        except ValueError as e:
            raise ValidationError("environment", str(e)) from e

    @classmethod
    def from_file(cls, path: str | Path) -> EngineConfig:
        """Create config from the `engine:` section of a YAML file."""
        try:
            content = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ValidationError("config_file", f"cannot read: {e}", str(path)) from e

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ValidationError("config_file", f"invalid YAML: {e}", str(path)) from e

        section = data.get("engine", {}) if isinstance(data, dict) else {}
        return cls.from_dict(section or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        """Create config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError("engine", f"unknown settings: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[f.name] = str(value) if isinstance(value, Path) else value
        return result

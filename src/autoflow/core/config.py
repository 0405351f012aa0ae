"""Configuration loading and validation."""

import os
import json
import hashlib
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError


class BackoffConfig(BaseModel):
    """Retry backoff between step attempts."""
    base_delay_ms: float = Field(default=1000.0, ge=0)
    max_delay_ms: float = Field(default=30000.0, ge=0)
    exponential_base: float = Field(default=2.0, ge=1.0, le=5.0)

    def delay_ms(self, attempt: int) -> float:
        """Delay after failed attempt ``attempt`` (1-based), capped."""
        delay = self.base_delay_ms * (self.exponential_base ** (attempt - 1))
        return min(delay, self.max_delay_ms)


class FanOutConfig(BaseModel):
    """Fan-out (foreach) defaults."""
    max_concurrency: int = Field(default=5, ge=1, le=100)


class StorageConfig(BaseModel):
    """Run ledger configuration."""
    backend: str = Field(default="sqlite", pattern="^(sqlite|memory)$")
    database_path: str = Field(default="./data/autoflow.db")
    list_limit: int = Field(default=100, ge=1)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    format: str = Field(default="console", pattern="^(console|json)$")
    debug: bool = Field(default=False)


class EngineConfig(BaseModel):
    """Main engine configuration."""
    name: str = Field(default="autoflow")

    retry: BackoffConfig = Field(default_factory=BackoffConfig)
    fan_out: FanOutConfig = Field(default_factory=FanOutConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def config_hash(self) -> str:
        """Generate hash of config for change detection."""
        return hashlib.sha256(
            self.model_dump_json().encode()
        ).hexdigest()[:16]


# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "AUTOFLOW_DB": ("storage", "database_path"),
    "AUTOFLOW_STORAGE": ("storage", "backend"),
    "LOG_FORMAT": ("logging", "format"),
    "AUTOFLOW_DEBUG": ("logging", "debug"),
}


class ConfigLoader:
    """Loads and validates YAML/JSON engine configuration."""

    def __init__(self, config_dir: str = "./config"):
        self.config_dir = Path(config_dir)

    def load_engine_config(self, path: Optional[str] = None) -> EngineConfig:
        """
        Load engine configuration.

        A missing default file yields the defaults; a missing explicit path
        is an error. Environment overrides are applied last.
        """
        if path is None:
            file_path = self.config_dir / "autoflow.yaml"
            data = self.load_file(file_path) if file_path.exists() else {}
        else:
            file_path = Path(path)
            data = self.load_file(file_path)

        data = self._apply_env_overrides(data)
        try:
            return EngineConfig(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid engine config: {e}", config_path=str(file_path))

    def load_file(self, path: Path) -> dict[str, Any]:
        """Load YAML or JSON file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", config_path=str(path))

        try:
            content = path.read_text()
            if path.suffix in (".yaml", ".yml"):
                return yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                return json.loads(content)
            else:
                raise ConfigError(
                    f"Unsupported config format: {path.suffix}",
                    config_path=str(path)
                )
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", config_path=str(path))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON: {e}", config_path=str(path))

    def _apply_env_overrides(self, data: dict[str, Any]) -> dict[str, Any]:
        data = dict(data)
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value is None or value == "":
                continue
            section_data = dict(data.get(section) or {})
            section_data[key] = value
            data[section] = section_data
        return data

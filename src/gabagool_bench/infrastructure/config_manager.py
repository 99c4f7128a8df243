"""Benchmark configuration backed by a YAML/JSON file and environment overrides."""

import os
from typing import Any, Dict, List, Optional, cast, Mapping
from pathlib import Path
import json

import yaml

from ..domain import ModelConfig
from ..exceptions import ConfigurationError
from ..services import IConfigurationManager

ENV_PREFIX = "GABAGOOL_"


class ConfigurationManager(IConfigurationManager):
    """Configuration manager with file and environment support."""

    def __init__(self, config_file: Optional[Path | str] = None, env_prefix: str = ENV_PREFIX):
        """Initialize configuration manager.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            env_prefix: Prefix for environment overrides, e.g. ``GABAGOOL_RUN_CONCURRENCY``
        """
        self._config_file: Optional[Path] = Path(config_file) if isinstance(config_file, str) else config_file
        self._env_prefix = env_prefix
        self._config: Dict[str, Any] = {}

        if self._config_file:
            self.reload()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Supports dot notation for nested keys (e.g., 'run.concurrency').
        Environment variables override file config if present.
        """
        env_key = self._env_prefix + key.upper().replace(".", "_")
        env_value = os.getenv(env_key)
        if env_value is not None:
            return self._parse_env_value(env_value)

        current: Any = self._config
        for k in key.split("."):
            if not isinstance(current, Mapping):
                return default
            current_map = cast(Mapping[str, Any], current)
            next_value: Any = current_map.get(k)
            if next_value is None:
                return default
            current = next_value

        return current

    def reload(self) -> None:
        """Reload configuration from file."""
        if not self._config_file:
            self._config = {}
            return

        if not self._config_file.exists():
            raise ConfigurationError("Configuration file not found", context={"path": str(self._config_file)})

        suffix = self._config_file.suffix.lower()
        data: Any
        with open(self._config_file, "r", encoding="utf-8") as f:
            if suffix in {".yaml", ".yml"}:
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported configuration file format: {suffix}")

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration file must contain a mapping/object")
        self._config = dict(cast(Dict[str, Any], data))

    def merge(self, config: Mapping[str, Any]) -> None:
        """Merge configuration dictionary into current config."""
        merge_data: Dict[str, Any] = {str(key): value for key, value in config.items()}
        self._deep_merge(self._config, merge_data)

    def get_models(self) -> List[ModelConfig]:
        """Read the ``models`` list into model configurations."""
        raw_models = self.get("models", [])
        if not isinstance(raw_models, list):
            raise ConfigurationError("'models' must be a list")

        models: List[ModelConfig] = []
        for entry in cast(List[Any], raw_models):
            if isinstance(entry, str):
                models.append(ModelConfig(name=entry.split("/")[-1], slug=entry))
                continue
            if not isinstance(entry, dict):
                raise ConfigurationError("Each model entry must be a mapping or a slug string")
            entry_map = cast(Dict[str, Any], entry)
            slug = entry_map.get("slug")
            if not isinstance(slug, str) or not slug:
                raise ConfigurationError("Model entry is missing 'slug'", context={"entry": entry_map})
            name = entry_map.get("name") or slug.split("/")[-1]
            effort = entry_map.get("reasoning_effort")
            models.append(ModelConfig(name=str(name), slug=slug, reasoning_effort=str(effort) if effort else None))
        return models

    @staticmethod
    def _deep_merge(target: Dict[str, Any], source: Mapping[str, Any]) -> None:
        """Deep merge source into target dictionary."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                ConfigurationManager._deep_merge(target[key], value)
            else:
                target[key] = value

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable value to appropriate type."""
        try:
            return json.loads(value)
        except ValueError:
            return value


__all__ = ["ConfigurationManager", "ENV_PREFIX"]

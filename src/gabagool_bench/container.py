"""Dependency injection container."""

import os
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional


class ServiceContainer:
    """Thread-safe dependency injection container."""

    def __init__(self) -> None:
        self._services: Dict[object, Any] = {}
        self._lock = threading.RLock()

    def register_singleton(self, interface: object, instance: Any) -> None:
        """Register a singleton service."""
        with self._lock:
            self._services[interface] = instance

    def resolve(self, interface: object) -> Any:
        """Resolve a service by interface."""
        with self._lock:
            if interface in self._services:
                return self._services[interface]

            name = getattr(interface, "__name__", repr(interface))
            raise ValueError(f"No registration found for {name}")


def create_container(
    config_file: Optional[Path | str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ServiceContainer:
    """Create a container holding the services shared by every run.

    Args:
        config_file: Optional YAML/JSON configuration file
        overrides: Values merged over the file configuration

    Raises:
        ConfigurationError: when no OpenRouter API key is available
    """
    from .exceptions import ConfigurationError
    from .infrastructure.config_manager import ConfigurationManager
    from .services import IConfigurationManager

    container = ServiceContainer()

    config_manager = ConfigurationManager(config_file=config_file)
    if overrides:
        config_manager.merge(overrides)
    container.register_singleton(IConfigurationManager, config_manager)
    container.register_singleton(ConfigurationManager, config_manager)

    api_key = config_manager.get("openrouter.api_key") or os.getenv("OPENROUTER_API_KEY")
    if not api_key:
        raise ConfigurationError("OPENROUTER_API_KEY must be provided in config or environment")

    from .infrastructure.api_client import OPENROUTER_BASE_URL, OpenRouterClient
    from .services import IGenerationClient

    temperature = config_manager.get("openrouter.temperature")
    client = OpenRouterClient(
        api_key=str(api_key),
        base_url=str(config_manager.get("openrouter.base_url", OPENROUTER_BASE_URL)),
        timeout=float(config_manager.get("openrouter.timeout", 120)),
        referer=str(config_manager.get("openrouter.referer", "https://github.com/gabagool-bench")),
        title=str(config_manager.get("openrouter.title", "Gabagool Bench")),
        temperature=float(temperature) if temperature is not None else None,
    )
    container.register_singleton(IGenerationClient, client)

    from .parsing import OutputParser
    from .services import IOutputParser

    container.register_singleton(IOutputParser, OutputParser())

    from .infrastructure.utility_services import FileSystemService, TimeService
    from .services import IFileSystemService, ITimeService

    container.register_singleton(ITimeService, TimeService())
    container.register_singleton(IFileSystemService, FileSystemService())

    return container


__all__ = ["ServiceContainer", "create_container"]

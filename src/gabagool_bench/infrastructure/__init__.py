"""Infrastructure implementations."""

from .api_client import OpenRouterClient
from .config_manager import ConfigurationManager
from .repositories import ResultStore
from .scenario_loader import ScenarioLoader
from .utility_services import (
    TimeService,
    ResponseParser,
    FileSystemService,
)

__all__ = [
    "OpenRouterClient",
    "ConfigurationManager",
    "ResultStore",
    "ScenarioLoader",
    "TimeService",
    "ResponseParser",
    "FileSystemService",
]

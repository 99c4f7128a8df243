"""Service interfaces for dependency injection."""

from typing import Protocol, List, Dict, Any, Mapping, Optional, Sequence
from pathlib import Path

from ..domain import ModelConfig, ModelFingerprint, ParseResult, Scenario, StructuredGeneration, TestResult, TextGeneration


class IGenerationClient(Protocol):
    """Interface for the text generation provider.

    Both calls raise :class:`~gabagool_bench.exceptions.GenerationError`; its
    ``kind`` tells callers whether the failure is recoverable by parsing.
    """

    async def generate_structured(
        self,
        model: ModelConfig,
        system_prompt: str,
        user_prompt: str,
        schema: Dict[str, Any],
        max_tokens: int,
        max_retries: int,
    ) -> StructuredGeneration:
        """Request a schema-constrained decision."""
        ...

    async def generate_text(
        self,
        model: ModelConfig,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        max_retries: int,
    ) -> TextGeneration:
        """Request plain text."""
        ...

    async def aclose(self) -> None:
        """Close connections and cleanup resources."""
        ...


class IOutputParser(Protocol):
    """Interface for recovering decisions from raw text."""

    def parse(self, raw_text: Optional[str]) -> ParseResult:
        """Parse model output; never raises."""
        ...


class IScenarioLoader(Protocol):
    """Interface for loading scenario definitions."""

    def load(self) -> List[Scenario]:
        """Load and validate every scenario, failing on the first bad one."""
        ...


class IConfigurationManager(Protocol):
    """Interface for configuration management."""

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        ...

    def merge(self, config: Mapping[str, Any]) -> None:
        """Merge values over the loaded configuration."""
        ...

    def get_models(self) -> List[ModelConfig]:
        """Return the configured models."""
        ...

    def reload(self) -> None:
        """Reload configuration from source."""
        ...


class ITimeService(Protocol):
    """Interface for time-related operations."""

    def now_iso(self) -> str:
        """Get current UTC timestamp in ISO-8601 format with Z suffix."""
        ...


class IFileSystemService(Protocol):
    """Interface for file system operations."""

    def write_json(self, path: Path, data: Any, exclusive: bool = False) -> None:
        """Write data as JSON to path, creating directories as needed."""
        ...

    def read_json(self, path: Path) -> Any:
        """Read JSON data from path."""
        ...


class IResultStore(Protocol):
    """Interface for persisting a run's results."""

    def save(self, results: Sequence[TestResult], fingerprints: Sequence[ModelFingerprint]) -> Path:
        """Write both documents to a fresh run directory and return it."""
        ...

    def load_results(self, run_dir: Path) -> List[TestResult]:
        """Read raw results back from a run directory."""
        ...


__all__ = [
    "IGenerationClient",
    "IOutputParser",
    "IScenarioLoader",
    "IConfigurationManager",
    "ITimeService",
    "IFileSystemService",
    "IResultStore",
]

"""Custom exception hierarchy for gabagool-bench."""

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .domain import Usage


class GabagoolBenchException(Exception):
    """Base exception for all gabagool-bench errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Initialize exception with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return string representation with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class ConfigurationError(GabagoolBenchException):
    """Raised when configuration is invalid or missing."""

    pass


class ErrorKind(str, Enum):
    """Closed classification of generation failures."""

    PARSING = "parsing"
    NETWORK = "network"
    OTHER = "other"


class GenerationError(GabagoolBenchException):
    """Raised by a generation client when a request fails.

    ``kind`` decides how the scenario runner reacts: only ``PARSING`` failures
    are recovered locally, everything else is a job failure.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        raw_text: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        usage: Optional["Usage"] = None,
    ):
        """Initialize with failure classification.

        Args:
            message: Error message
            kind: Failure classification
            raw_text: Model output that failed to decode, for parsing failures
            status_code: HTTP status code, when the provider returned one
            context: Additional context
            usage: Tokens and cost billed for the failed call, when the provider answered
        """
        super().__init__(message, context)
        self.kind = kind
        self.raw_text = raw_text
        self.status_code = status_code
        self.usage = usage


class ValidationError(GabagoolBenchException):
    """Raised when input validation fails."""

    def __init__(
        self, message: str, field: Optional[str] = None, value: Any = None, context: Optional[Dict[str, Any]] = None
    ):
        """Initialize with validation details.

        Args:
            message: Error message
            field: Field that failed validation
            value: Invalid value
            context: Additional context
        """
        super().__init__(message, context)
        self.field = field
        self.value = value


class ScenarioValidationError(ValidationError):
    """Raised when a scenario definition is malformed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        field: Optional[str] = None,
        value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, field=field, value=value, context=context)
        self.path = path


class RepositoryError(GabagoolBenchException):
    """Base class for repository/persistence errors."""

    pass


class ArtifactSaveError(RepositoryError):
    """Raised when artifact cannot be saved."""

    def __init__(self, message: str, file_path: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        """Initialize with file information.

        Args:
            message: Error message
            file_path: Path where save failed
            context: Additional context
        """
        context = dict(context or {})
        if file_path is not None:
            context.setdefault("path", file_path)
        super().__init__(message, context)
        self.file_path = file_path


class RunnerError(GabagoolBenchException):
    """Raised when the benchmark runner encounters an error."""

    pass


__all__ = [
    "GabagoolBenchException",
    "ConfigurationError",
    "ErrorKind",
    "GenerationError",
    "ValidationError",
    "ScenarioValidationError",
    "RepositoryError",
    "ArtifactSaveError",
    "RunnerError",
]

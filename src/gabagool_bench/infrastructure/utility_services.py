"""Utility service implementations."""

import datetime as dt
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, TypeGuard, cast

from ..domain import Usage
from ..services import IFileSystemService, ITimeService


class TimeService(ITimeService):
    """Service for time-related operations."""

    def now_iso(self) -> str:
        """Return the current UTC timestamp in ISO-8601 format with a Z suffix."""
        return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ResponseParser:
    """Service for reading chat completion payloads."""

    def extract_text(self, payload: Dict[str, Any]) -> str:
        """Extract the primary text content from an OpenRouter chat completion payload."""
        message = self._extract_message(payload)
        if message is None:
            return ""

        content_text = self._extract_content_text(message)
        if content_text:
            return content_text

        arguments = self._extract_tool_call_arguments(message)
        if arguments:
            return arguments

        return ""

    @staticmethod
    def extract_finish_reason(payload: Dict[str, Any]) -> Optional[str]:
        """Extract finish reason from response."""
        try:
            choice = payload["choices"][0]
        except (KeyError, IndexError, TypeError):
            return None
        if not isinstance(choice, dict):
            return None
        choice_map = cast(Dict[str, Any], choice)

        finish_reason = choice_map.get("finish_reason")
        if isinstance(finish_reason, str):
            return finish_reason

        native_reason = choice_map.get("native_finish_reason")
        if isinstance(native_reason, str):
            return native_reason

        return None

    @staticmethod
    def extract_usage(payload: Dict[str, Any]) -> Usage:
        """Read token totals and OpenRouter's reported cost, defaulting to zero."""
        usage = payload.get("usage")
        if not isinstance(usage, dict):
            return Usage()
        usage_map = cast(Dict[str, Any], usage)
        tokens = usage_map.get("total_tokens")
        cost = usage_map.get("cost")
        return Usage(
            total_tokens=int(tokens) if isinstance(tokens, (int, float)) else 0,
            cost=float(cost) if isinstance(cost, (int, float)) else 0.0,
        )

    @staticmethod
    def _extract_message(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Extract message from payload."""
        try:
            message = payload["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            return None
        if isinstance(message, dict):
            return cast(Dict[str, Any], message)
        return None

    def _extract_content_text(self, message: Dict[str, Any]) -> str:
        """Extract text content from message."""
        content: Any = message.get("content")
        if isinstance(content, str) and content:
            return content
        if isinstance(content, list):
            content_iter = cast(Iterable[Any], content)
            combined = self._collect_content_segments(content_iter)
            if combined:
                return combined
        return ""

    @staticmethod
    def _collect_content_segments(segments: Iterable[Any]) -> str:
        """Combine content segments provided by OpenRouter into a single string."""
        texts: List[str] = []
        for segment_any in list(segments):
            if isinstance(segment_any, str):
                texts.append(segment_any)
            elif isinstance(segment_any, dict):
                segment_dict = cast(Dict[str, Any], segment_any)
                text_value: Any = segment_dict.get("text")
                if isinstance(text_value, str):
                    texts.append(text_value)
        return "".join(texts)

    @staticmethod
    def _extract_tool_call_arguments(message: Dict[str, Any]) -> str:
        """Extract tool call arguments from message."""
        tool_calls = message.get("tool_calls")
        if not ResponseParser._is_dict_list(tool_calls):
            return ""
        for call_map in tool_calls:
            function = call_map.get("function")
            if not isinstance(function, dict):
                continue
            function_map = cast(Dict[str, Any], function)
            arguments: Any = function_map.get("arguments")
            if isinstance(arguments, str) and arguments.strip():
                return arguments
        return ""

    @staticmethod
    def _is_dict_list(value: Any) -> TypeGuard[List[Dict[str, Any]]]:
        """Check if value is a list of dictionaries."""
        if not isinstance(value, list):
            return False
        items: Sequence[Any] = cast(Sequence[Any], value)
        return all(isinstance(item, dict) for item in items)


class FileSystemService(IFileSystemService):
    """Service for file system operations."""

    def write_json(self, path: Path, data: Any, exclusive: bool = False) -> None:
        """Persist JSON data, creating parent directories on demand.

        With ``exclusive`` set the file must not already exist.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("x" if exclusive else "w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=2)

    def read_json(self, path: Path) -> Any:
        """Load JSON data from ``path``."""
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)


__all__ = [
    "TimeService",
    "ResponseParser",
    "FileSystemService",
]

"""Prompt text shared by every scenario in a run."""

from __future__ import annotations

from functools import lru_cache
from importlib import resources
from typing import Any, Dict, cast

import yaml


@lru_cache(maxsize=1)
def _load_prompts() -> Dict[str, Any]:
    """Load prompt definitions from the YAML resource."""
    resource = resources.files("gabagool_bench") / "prompts.yaml"
    with resource.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if not isinstance(data, dict):
        raise TypeError("Prompts YAML must define a mapping at the top level.")
    return cast(Dict[str, Any], data)


def _expect_str(data: Dict[str, Any], key: str) -> str:
    """Fetch and validate a single string value from the loaded YAML data."""
    value = data.get(key)
    if not isinstance(value, str):
        raise TypeError(f"Expected a string for '{key}' in prompts.yaml.")
    return value


_PROMPTS = _load_prompts()
SYSTEM_PROMPT = _expect_str(_PROMPTS, "system_prompt").strip()

__all__ = ["SYSTEM_PROMPT"]

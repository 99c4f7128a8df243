"""Scenario definitions loaded from a directory of JSON or YAML files."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, cast

import yaml

from ..domain import Action, Scenario
from ..exceptions import ConfigurationError, ScenarioValidationError
from ..schema import ACTIONS, SCENARIO_OPTIONAL_FIELDS, SCENARIO_REQUIRED_FIELDS
from ..services import IScenarioLoader

SCENARIO_SUFFIXES = {".json", ".yaml", ".yml"}


class ScenarioLoader(IScenarioLoader):
    """Loads hand-authored scenarios and validates them up front.

    Files whose name starts with ``_`` are ignored. Any malformed file aborts
    the load; scenarios are never skipped individually.
    """

    def __init__(self, scenarios_dir: Path, system_prompt: Optional[str] = None, logger: Optional[logging.Logger] = None):
        self._scenarios_dir = scenarios_dir
        self._system_prompt = system_prompt
        self._logger = logger or logging.getLogger(__name__)

    def _resolve_system_prompt(self) -> str:
        if self._system_prompt is None:
            from ..prompts import SYSTEM_PROMPT

            self._system_prompt = SYSTEM_PROMPT
        return self._system_prompt

    def _scenario_files(self) -> List[Path]:
        if not self._scenarios_dir.is_dir():
            raise ConfigurationError(
                "Scenario directory not found", context={"path": str(self._scenarios_dir)}
            )
        return sorted(
            path
            for path in self._scenarios_dir.iterdir()
            if path.is_file() and path.suffix.lower() in SCENARIO_SUFFIXES and not path.name.startswith("_")
        )

    def load(self) -> List[Scenario]:
        """Load every scenario in the directory."""
        system_prompt = self._resolve_system_prompt()
        scenarios: List[Scenario] = []
        seen: Set[str] = set()
        for path in self._scenario_files():
            scenario = self.parse_scenario(self._read(path), system_prompt, path=str(path))
            if scenario.id in seen:
                raise ScenarioValidationError(
                    f"Duplicate scenario id '{scenario.id}'", path=str(path), field="id", value=scenario.id
                )
            seen.add(scenario.id)
            scenarios.append(scenario)

        self._logger.debug("Loaded %d scenarios from %s", len(scenarios), self._scenarios_dir)
        return scenarios

    @staticmethod
    def _read(path: Path) -> Any:
        try:
            with path.open("r", encoding="utf-8") as handle:
                if path.suffix.lower() == ".json":
                    return json.load(handle)
                return yaml.safe_load(handle)
        except (ValueError, yaml.YAMLError) as exc:
            raise ScenarioValidationError(f"Unreadable scenario file: {exc}", path=str(path)) from exc

    @staticmethod
    def parse_scenario(data: Any, system_prompt: str, path: Optional[str] = None) -> Scenario:
        """Validate one raw scenario definition."""
        context = {"path": path} if path else None
        if not isinstance(data, dict):
            raise ScenarioValidationError("Scenario must be a mapping", path=path, context=context)
        raw = cast(Dict[str, Any], data)

        for key in SCENARIO_REQUIRED_FIELDS:
            value = raw.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ScenarioValidationError(
                    f"Expected a non-empty string for '{key}'", path=path, field=key, value=value, context=context
                )
        for key in SCENARIO_OPTIONAL_FIELDS:
            value = raw.get(key)
            if value is not None and not isinstance(value, str):
                raise ScenarioValidationError(
                    f"Expected a string for '{key}'", path=path, field=key, value=value, context=context
                )

        return Scenario(
            id=raw["id"],
            name=raw["name"],
            description=raw["description"],
            prompt=raw["prompt"],
            system_prompt=system_prompt,
            context=raw.get("context"),
            stakes=raw.get("stakes"),
            theme=raw.get("theme"),
            canonical=ScenarioLoader._parse_canonical(raw.get("canonical"), path, context),
        )

    @staticmethod
    def _parse_canonical(value: Any, path: Optional[str], context: Optional[Dict[str, Any]]) -> Optional[Action]:
        if value is None:
            return None
        action = cast(Dict[str, Any], value).get("action") if isinstance(value, dict) else value
        if not isinstance(action, str) or action not in ACTIONS:
            raise ScenarioValidationError(
                "Canonical action must be one of: " + ", ".join(ACTIONS),
                path=path,
                field="canonical",
                value=value,
                context=context,
            )
        return Action(action)


__all__ = ["ScenarioLoader"]

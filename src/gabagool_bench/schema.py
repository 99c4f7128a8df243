"""Decision and scenario contracts shared by the client, parser and loader."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, cast

from .domain import Action, Decision

ACTIONS: List[str] = [action.value for action in Action]

DECISION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "action": {
            "type": "string",
            "enum": list(ACTIONS),
            "description": "The action to take",
        },
        "reasoning": {
            "type": "string",
            "description": "Why this is the right call",
        },
    },
    "required": ["action", "reasoning"],
    "additionalProperties": False,
}

SCENARIO_REQUIRED_FIELDS = ("id", "name", "description", "prompt")
SCENARIO_OPTIONAL_FIELDS = ("context", "theme", "stakes")


def validate_decision_payload(payload: Any) -> Optional[Decision]:
    """Strictly validate a decoded object against ``DECISION_SCHEMA``.

    Returns ``None`` when the payload is not an exact match; lenient recovery
    is the output parser's job.
    """
    if not isinstance(payload, dict):
        return None
    data = cast(Dict[str, Any], payload)
    action = data.get("action")
    reasoning = data.get("reasoning")
    if not isinstance(action, str) or action not in ACTIONS:
        return None
    if not isinstance(reasoning, str):
        return None
    return Decision(action=Action(action), reasoning=reasoning)


__all__ = [
    "ACTIONS",
    "DECISION_SCHEMA",
    "SCENARIO_REQUIRED_FIELDS",
    "SCENARIO_OPTIONAL_FIELDS",
    "validate_decision_payload",
]

"""Recovery of structured decisions from raw model output.

Strategies are tried in order and the first one yielding a valid decision wins:

1. direct   - parse the text as JSON
2. stripped - drop markdown fences, bound the first ``{`` .. last ``}``, parse
3. repaired - run the bounded candidate through ``json_repair``, parse
4. regex    - pattern-match ``action``/``reasoning`` keys in free text

Every candidate goes through the same validation: the action must resolve to
exactly one member of :class:`~gabagool_bench.domain.Action`.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, cast

from json_repair import repair_json

from .domain import Action, Decision, ParseMethod, ParseResult
from .schema import ACTIONS

LOGGER = logging.getLogger(__name__)

DEFAULT_REASONING = "No reasoning provided."
REASONING_FIELDS = ("reasoning", "rationale", "explanation", "reason")
PRIORITY_KEYS = ("text", "content", "reasoning", "explanation", "rationale", "conclusion", "summary", "analysis")
MIN_FRAGMENT_LENGTH = 20
MAX_FRAGMENTS = 5
MAX_REASONING_CHARS = 2000
MAX_FLATTEN_DEPTH = 32

# Lowercase alias -> action.
ACTION_ALIASES: Dict[str, Action] = {
    "orderhit": Action.ORDER_HIT,
    "order-hit": Action.ORDER_HIT,
    "order hit": Action.ORDER_HIT,
    "hit": Action.ORDER_HIT,
    "kill": Action.ORDER_HIT,
    "whack": Action.ORDER_HIT,
    "eliminate": Action.ORDER_HIT,
    "let him die": Action.ORDER_HIT,
    "kill him": Action.ORDER_HIT,
    "take him out": Action.ORDER_HIT,
    "callsitdown": Action.CALL_SITDOWN,
    "call-sitdown": Action.CALL_SITDOWN,
    "call sitdown": Action.CALL_SITDOWN,
    "sitdown": Action.CALL_SITDOWN,
    "sit_down": Action.CALL_SITDOWN,
    "sit-down": Action.CALL_SITDOWN,
    "meeting": Action.CALL_SITDOWN,
    "negotiate": Action.CALL_SITDOWN,
    "talk": Action.CALL_SITDOWN,
    "applytax": Action.APPLY_TAX,
    "apply-tax": Action.APPLY_TAX,
    "apply tax": Action.APPLY_TAX,
    "tax": Action.APPLY_TAX,
    "tribute": Action.APPLY_TAX,
    "threat": Action.THREATEN,
    "intimidate": Action.THREATEN,
    "warn": Action.THREATEN,
    "pay off": Action.BRIBE,
    "payoff": Action.BRIBE,
    "donothing": Action.DO_NOTHING,
    "do-nothing": Action.DO_NOTHING,
    "do nothing": Action.DO_NOTHING,
    "nothing": Action.DO_NOTHING,
    "wait": Action.DO_NOTHING,
    "ignore": Action.DO_NOTHING,
    "setup": Action.SET_UP,
    "set-up": Action.SET_UP,
    "set up": Action.SET_UP,
    "trap": Action.SET_UP,
}

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_ACTION_RE = re.compile(
    r"""["'*]*\baction\b["'*]*\s*[:=][\s*]*(?:"([^"\n]*)"|'([^'\n]*)'|([A-Za-z][\w\- ]*))""",
    re.IGNORECASE,
)
_REASONING_RES = {
    name: re.compile(rf"""["'*]*\b{name}\b["'*]*\s*[:=][\s*]*""", re.IGNORECASE) for name in REASONING_FIELDS
}
_DOUBLE_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)(?:"|$)', re.DOTALL)
_SINGLE_QUOTED_RE = re.compile(r"'((?:[^'\\]|\\.)*)(?:'|$)", re.DOTALL)


def normalize_action(value: Any) -> Optional[Action]:
    """Resolve a loosely formatted action value to a single :class:`Action`."""
    if isinstance(value, Action):
        return value
    if not isinstance(value, str):
        return None

    cleaned = value.strip().lower()
    if not cleaned:
        return None
    if cleaned in ACTIONS:
        return Action(cleaned)

    alias = ACTION_ALIASES.get(cleaned)
    if alias is not None:
        return alias

    # Phrases like "I would order_hit" must name exactly one action.
    matches = [action for action in Action if action.value in cleaned]
    if len(matches) == 1:
        return matches[0]
    return None


def flatten_reasoning(value: Any, depth: int = 0) -> str:
    """Reduce reasoning emitted as nested objects or arrays to plain text."""
    if depth > MAX_FLATTEN_DEPTH or value is None:
        return ""
    if isinstance(value, str):
        return value.strip()

    if isinstance(value, list):
        items = cast(List[Any], value)
        parts = [flatten_reasoning(item, depth + 1) for item in items]
        return _cap(" ".join(part for part in parts if part))

    if isinstance(value, dict):
        mapping = cast(Dict[str, Any], value)
        for key in PRIORITY_KEYS:
            candidate = mapping.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return _cap(candidate)

        fragments: List[str] = []
        _collect_fragments(mapping, depth, fragments)
        return _cap(" ".join(fragments))

    return str(value)


def _collect_fragments(value: Any, depth: int, out: List[str]) -> None:
    if depth > MAX_FLATTEN_DEPTH or len(out) >= MAX_FRAGMENTS:
        return
    if isinstance(value, str):
        if len(value) > MIN_FRAGMENT_LENGTH:
            out.append(value)
    elif isinstance(value, list):
        for item in cast(List[Any], value):
            _collect_fragments(item, depth + 1, out)
    elif isinstance(value, dict):
        for item in cast(Dict[str, Any], value).values():
            _collect_fragments(item, depth + 1, out)


def _cap(text: str) -> str:
    return text.strip()[:MAX_REASONING_CHARS].strip()


def validate_candidate(candidate: Any) -> Optional[Decision]:
    """Turn a decoded object into a decision, or ``None`` if the action is unusable."""
    if not isinstance(candidate, dict):
        return None
    fields: Mapping[str, Any] = {
        str(key).strip().lower(): value for key, value in cast(Dict[Any, Any], candidate).items()
    }
    if "action" not in fields:
        return None

    action = normalize_action(fields["action"])
    if action is None:
        return None

    reasoning = ""
    for name in REASONING_FIELDS:
        if fields.get(name):
            reasoning = flatten_reasoning(fields[name])
            if reasoning:
                break
    return Decision(action=action, reasoning=reasoning or DEFAULT_REASONING)


def strip_markdown(text: str) -> str:
    """Remove markdown code-fence markers."""
    return _FENCE_RE.sub("", text)


def extract_json_bounds(text: str) -> Optional[str]:
    """Return the substring from the first ``{`` to the last ``}``, if any.

    An opening brace with no closing brace after it yields the rest of the
    text so that truncated objects still reach the repair stage.
    """
    start = text.find("{")
    if start == -1:
        return None
    end = text.rfind("}")
    if end <= start:
        return text[start:]
    return text[start : end + 1]


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def _load_repaired(text: str) -> Any:
    try:
        return repair_json(text, return_objects=True)
    except (ValueError, RecursionError, IndexError, TypeError) as exc:
        LOGGER.debug("json_repair could not handle candidate: %s", exc)
        return None


def _balanced_snippet(text: str, start: int) -> str:
    """Return the bracketed value opening at ``start``, or the rest of the text if unbalanced."""
    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return text[start:]


def _read_value(text: str, pos: int) -> str:
    """Read the reasoning value that starts at ``pos``."""
    if pos >= len(text):
        return ""
    opener = text[pos]
    if opener == '"':
        match = _DOUBLE_QUOTED_RE.match(text, pos)
        if match is None:
            return ""
        inner = match.group(1)
        decoded = _load_json(f'"{inner}"')
        return decoded.strip() if isinstance(decoded, str) else inner.strip()
    if opener == "'":
        match = _SINGLE_QUOTED_RE.match(text, pos)
        return match.group(1).strip() if match else ""
    if opener in "{[":
        snippet = _balanced_snippet(text, pos)
        structured = _load_json(snippet)
        if structured is None:
            structured = _load_repaired(snippet)
        if isinstance(structured, (dict, list)):
            return flatten_reasoning(structured)
        return _cap(snippet)
    line_end = text.find("\n", pos)
    return text[pos : line_end if line_end != -1 else len(text)].strip().rstrip(",").strip()


def _extract_reasoning(text: str) -> str:
    for name in REASONING_FIELDS:
        for match in _REASONING_RES[name].finditer(text):
            value = _read_value(text, match.end())
            if value:
                return value
    return ""


def extract_with_patterns(text: str) -> Optional[Decision]:
    """Last-resort extraction from text that contains no parseable object."""
    action: Optional[Action] = None
    for match in _ACTION_RE.finditer(text):
        raw_value = next((group for group in match.groups() if group is not None), "")
        action = normalize_action(raw_value)
        if action is not None:
            break
    if action is None:
        return None
    return Decision(action=action, reasoning=_extract_reasoning(text) or DEFAULT_REASONING)


def parse_model_output(text: Optional[str]) -> ParseResult:
    """Recover a decision from raw model text. Never raises."""
    if not text or not text.strip():
        LOGGER.debug("[PARSE] failed - empty output")
        return ParseResult(decision=None, method=ParseMethod.FAILED)

    decision = validate_candidate(_load_json(text.strip()))
    if decision is not None:
        LOGGER.debug("[PARSE] direct - raw JSON parsed successfully")
        return ParseResult(decision=decision, method=ParseMethod.DIRECT)

    candidate = extract_json_bounds(strip_markdown(text).strip())
    if candidate is not None:
        decision = validate_candidate(_load_json(candidate))
        if decision is not None:
            LOGGER.debug("[PARSE] stripped - needed markdown stripping")
            return ParseResult(decision=decision, method=ParseMethod.STRIPPED)

        decision = validate_candidate(_load_repaired(candidate))
        if decision is not None:
            LOGGER.debug("[PARSE] repaired - needed structural repair")
            return ParseResult(decision=decision, method=ParseMethod.REPAIRED)

    decision = extract_with_patterns(text)
    if decision is not None:
        LOGGER.debug("[PARSE] regex - recovered action via pattern match")
        return ParseResult(decision=decision, method=ParseMethod.REGEX)

    LOGGER.debug("[PARSE] failed - could not parse: %s...", text[:200])
    return ParseResult(decision=None, method=ParseMethod.FAILED)


class OutputParser:
    """Service wrapper around :func:`parse_model_output`."""

    def parse(self, raw_text: Optional[str]) -> ParseResult:
        return parse_model_output(raw_text)


__all__ = [
    "ACTION_ALIASES",
    "DEFAULT_REASONING",
    "MAX_REASONING_CHARS",
    "MAX_FLATTEN_DEPTH",
    "OutputParser",
    "extract_json_bounds",
    "extract_with_patterns",
    "flatten_reasoning",
    "normalize_action",
    "parse_model_output",
    "strip_markdown",
    "validate_candidate",
]

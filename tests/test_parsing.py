# pyright: reportPrivateUsage=false
from __future__ import annotations

import json
import logging

import pytest

from gabagool_bench.domain import Action, ParseMethod
from gabagool_bench.parsing import (
    DEFAULT_REASONING,
    MAX_REASONING_CHARS,
    OutputParser,
    extract_json_bounds,
    flatten_reasoning,
    normalize_action,
    parse_model_output,
    strip_markdown,
    validate_candidate,
)
from gabagool_bench.schema import DECISION_SCHEMA, validate_decision_payload


def test_direct_parse_of_well_formed_decision() -> None:
    result = parse_model_output('{"action": "order_hit", "reasoning": "He is talking to the feds."}')
    assert result.method is ParseMethod.DIRECT
    assert result.decision is not None
    assert result.decision.action is Action.ORDER_HIT
    assert result.decision.reasoning == "He is talking to the feds."


def test_direct_parse_normalizes_action_case_and_key_case() -> None:
    result = parse_model_output('{"Action": "  SET_UP ", "Reasoning": "Let the feds do the work."}')
    assert result.method is ParseMethod.DIRECT
    assert result.decision is not None
    assert result.decision.action is Action.SET_UP
    assert result.decision.reasoning == "Let the feds do the work."


@pytest.mark.parametrize(
    "text",
    [
        '```json\n{"action": "bribe", "reasoning": "Everybody has a price."}\n```',
        '```\n{"action": "bribe", "reasoning": "Everybody has a price."}\n```',
        'Here is my call:\n{"action": "bribe", "reasoning": "Everybody has a price."}\nThat is final.',
    ],
)
def test_stripped_parse_handles_fences_and_surrounding_prose(text: str) -> None:
    result = parse_model_output(text)
    assert result.method is ParseMethod.STRIPPED
    assert result.decision == parse_model_output('{"action": "bribe", "reasoning": "Everybody has a price."}').decision


@pytest.mark.parametrize(
    "text",
    [
        '{"action": "threaten", "reasoning": "Send a message.",}',
        '{"action": "threaten", "reasoning": "Send a message."',
    ],
)
def test_repair_stage_recovers_single_structural_defects(text: str) -> None:
    result = parse_model_output(text)
    assert result.method is ParseMethod.REPAIRED
    assert result.decision is not None
    assert result.decision.action is Action.THREATEN
    assert result.decision.reasoning == "Send a message."


def test_regex_stage_recovers_action_from_free_text() -> None:
    text = 'Alright. "action": "call_sitdown", "reasoning": "We talk before anybody gets hurt."'
    result = parse_model_output(text)
    assert result.method is ParseMethod.REGEX
    assert result.decision is not None
    assert result.decision.action is Action.CALL_SITDOWN
    assert result.decision.reasoning == "We talk before anybody gets hurt."


def test_regex_stage_accepts_unquoted_alias_values() -> None:
    text = "Decision time.\naction: whack\nreasoning: 'He had it coming.'"
    result = parse_model_output(text)
    assert result.method is ParseMethod.REGEX
    assert result.decision is not None
    assert result.decision.action is Action.ORDER_HIT
    assert result.decision.reasoning == "He had it coming."


def test_regex_stage_flattens_structured_reasoning() -> None:
    text = (
        'action = "apply_tax"\n'
        'reasoning = ["The contractor uses our unions and trucks.", "New York gets nothing unless we say so."]'
    )
    result = parse_model_output(text)
    assert result.method is ParseMethod.REGEX
    assert result.decision is not None
    assert result.decision.action is Action.APPLY_TAX
    assert result.decision.reasoning == (
        "The contractor uses our unions and trucks. New York gets nothing unless we say so."
    )


@pytest.mark.parametrize(
    ("alias", "expected"),
    [
        ("whack", Action.ORDER_HIT),
        ("Kill", Action.ORDER_HIT),
        ("meeting", Action.CALL_SITDOWN),
        ("negotiate", Action.CALL_SITDOWN),
        ("tribute", Action.APPLY_TAX),
        ("intimidate", Action.THREATEN),
        ("payoff", Action.BRIBE),
        ("wait", Action.DO_NOTHING),
        ("trap", Action.SET_UP),
    ],
)
def test_aliases_resolve_to_their_target_action(alias: str, expected: Action) -> None:
    result = parse_model_output(json.dumps({"action": alias, "reasoning": "because"}))
    assert result.method is ParseMethod.DIRECT
    assert result.decision is not None
    assert result.decision.action is expected


def test_normalize_action_substring_must_be_unambiguous() -> None:
    assert normalize_action("I would bribe the cop") is Action.BRIBE
    assert normalize_action("threaten or bribe") is None
    assert normalize_action("dance") is None
    assert normalize_action("") is None
    assert normalize_action(42) is None
    assert normalize_action(Action.THREATEN) is Action.THREATEN


@pytest.mark.parametrize("text", ["", "   ", "\n\t", None, "I refuse to play this game.", '{"reasoning": "no action here"}'])
def test_empty_or_action_free_text_fails(text: str | None) -> None:
    result = parse_model_output(text)
    assert result.method is ParseMethod.FAILED
    assert result.decision is None


def test_unrecognized_action_is_never_half_valid() -> None:
    result = parse_model_output('{"action": "dance", "reasoning": "Fun."}')
    assert result.method is ParseMethod.FAILED
    assert result.decision is None


def test_missing_reasoning_uses_placeholder() -> None:
    result = parse_model_output('{"action": "do_nothing"}')
    assert result.decision is not None
    assert result.decision.reasoning == DEFAULT_REASONING


def test_alternative_reasoning_field_names() -> None:
    decision = validate_candidate({"action": "bribe", "rationale": "Money talks."})
    assert decision is not None
    assert decision.reasoning == "Money talks."


def test_reasoning_array_is_flattened_to_text() -> None:
    result = parse_model_output('{"action": "threaten", "reasoning": ["First point.", "Second point."]}')
    assert result.decision is not None
    assert result.decision.reasoning == "First point. Second point."


def test_reasoning_object_prefers_priority_keys() -> None:
    result = parse_model_output('{"action": "apply_tax", "reasoning": {"score": 3, "summary": "Take a cut."}}')
    assert result.decision is not None
    assert result.decision.reasoning == "Take a cut."


def test_reasoning_object_falls_back_to_long_fragments() -> None:
    value = {
        "pros": "This keeps the money flowing nicely",
        "cons": "short",
        "nested": {"detail": ["Johnny Sack will not like it one bit"]},
    }
    assert flatten_reasoning(value) == "This keeps the money flowing nicely Johnny Sack will not like it one bit"


def test_flattened_reasoning_is_truncated_not_rejected() -> None:
    result = parse_model_output(json.dumps({"action": "bribe", "reasoning": ["x" * 3000]}))
    assert result.decision is not None
    assert len(result.decision.reasoning) == MAX_REASONING_CHARS


def test_flatten_reasoning_is_depth_bounded() -> None:
    value: object = "deep enough text that would otherwise count"
    for _ in range(200):
        value = [value]
    assert flatten_reasoning(value) == ""


def test_strip_markdown_and_bounds_helpers() -> None:
    assert strip_markdown("```json\n{}\n```").strip() == "{}"
    assert extract_json_bounds("no braces") is None
    assert extract_json_bounds('noise {"a": {"b": 1}} tail') == '{"a": {"b": 1}}'
    assert extract_json_bounds('start {"a": 1') == '{"a": 1'


@pytest.mark.parametrize(
    "text",
    [
        '{"action": "order_hit", "reasoning": "Rat."}',
        '```json\n{"action": "CALL_SITDOWN", "reasoning": "Talk."}\n```',
        '{"action": "tax", "reasoning": "Cut.",}',
        'action: "set up"\nreasoning: "Let them walk into it."',
        '{"action": "do_nothing", "reasoning": {"analysis": "Patience pays."}}',
    ],
)
def test_parse_is_idempotent_on_serialized_decision(text: str) -> None:
    first = parse_model_output(text)
    assert first.decision is not None
    second = parse_model_output(json.dumps(first.decision.to_dict()))
    assert second.method is ParseMethod.DIRECT
    assert second.decision == first.decision


def test_output_parser_logs_stage(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="gabagool_bench.parsing")
    OutputParser().parse('```json\n{"action": "bribe", "reasoning": "r"}\n```')
    assert any("[PARSE] stripped" in record.getMessage() for record in caplog.records)


def test_strict_schema_validation_rejects_lenient_payloads() -> None:
    assert DECISION_SCHEMA["required"] == ["action", "reasoning"]
    assert set(DECISION_SCHEMA["properties"]["action"]["enum"]) == {action.value for action in Action}
    assert validate_decision_payload({"action": "bribe", "reasoning": "r"}) is not None
    assert validate_decision_payload({"action": "BRIBE", "reasoning": "r"}) is None
    assert validate_decision_payload({"action": "bribe"}) is None
    assert validate_decision_payload(["bribe"]) is None

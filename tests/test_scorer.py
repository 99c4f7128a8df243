from __future__ import annotations

from typing import Optional

import pytest

from gabagool_bench.domain import Action, Decision, Scenario, TestResult
from gabagool_bench.scorer import DIPLOMATIC_ACTIONS, VIOLENT_ACTIONS, build_fingerprints, group_by_model


def _scenario(scenario_id: str, canonical: Optional[Action] = None) -> Scenario:
    return Scenario(id=scenario_id, name=scenario_id, description="", prompt="p", system_prompt="s", canonical=canonical)


def _result(
    model: str,
    scenario_id: str,
    action: Optional[Action],
    *,
    cost: float = 0.01,
    duration_ms: int = 1000,
    tokens: int = 100,
    error: Optional[str] = None,
) -> TestResult:
    return TestResult(
        scenario_id=scenario_id,
        model=model,
        decision=Decision(action=action, reasoning="r") if action is not None else None,
        duration_ms=duration_ms,
        cost=cost,
        tokens=tokens,
        timestamp="t",
        error=error,
    )


SCENARIOS = [
    _scenario("a", Action.ORDER_HIT),
    _scenario("b", Action.CALL_SITDOWN),
    _scenario("c"),
    _scenario("d", Action.APPLY_TAX),
]


def test_action_groups_partition_the_action_set() -> None:
    assert set(VIOLENT_ACTIONS) | set(DIPLOMATIC_ACTIONS) == set(Action)
    assert not set(VIOLENT_ACTIONS) & set(DIPLOMATIC_ACTIONS)


def test_fingerprint_rates_and_averages() -> None:
    results = [
        _result("tony", "a", Action.ORDER_HIT, cost=0.02, duration_ms=2000, tokens=200),
        _result("tony", "b", Action.THREATEN, cost=0.04, duration_ms=4000, tokens=400),
        _result("tony", "c", Action.BRIBE, cost=0.06, duration_ms=6000, tokens=600),
        _result("tony", "d", None, cost=0.0, duration_ms=0, tokens=0, error="server error"),
    ]

    (fp,) = build_fingerprints(results, SCENARIOS)

    assert fp.model == "tony"
    assert fp.total_scenarios == 4
    assert fp.tool_distribution == {"order_hit": 1, "threaten": 1, "bribe": 1}
    assert fp.violence_rate == pytest.approx(0.5)
    assert fp.sitdown_rate == pytest.approx(0.25)
    assert fp.threaten_rate == pytest.approx(0.25)
    assert fp.bribe_rate == pytest.approx(0.25)
    assert fp.tax_rate == 0.0
    assert fp.error_rate == pytest.approx(0.25)
    assert fp.avg_cost == pytest.approx(0.04)
    assert fp.avg_duration_ms == pytest.approx(4000)
    assert fp.total_tokens == 1200
    # a matches, b does not; c has no canonical and d is undecided
    assert fp.canonical_alignment == pytest.approx(0.5)


def test_rates_sum_with_error_rate_to_one() -> None:
    results = [
        _result("m", "a", Action.SET_UP),
        _result("m", "b", Action.DO_NOTHING),
        _result("m", "c", Action.APPLY_TAX),
        _result("m", "d", Action.CALL_SITDOWN),
        _result("m", "a", None, error="Failed to parse model output"),
    ]
    (fp,) = build_fingerprints(results, SCENARIOS)
    assert fp.violence_rate + fp.sitdown_rate + fp.error_rate == pytest.approx(1.0)
    assert fp.setup_rate == pytest.approx(0.2)
    assert fp.do_nothing_rate == pytest.approx(0.2)
    assert fp.tax_rate == pytest.approx(0.2)


def test_distribution_follows_action_order_and_omits_zero_counts() -> None:
    results = [
        _result("m", "a", Action.SET_UP),
        _result("m", "b", Action.ORDER_HIT),
        _result("m", "c", Action.SET_UP),
    ]
    (fp,) = build_fingerprints(results, SCENARIOS)
    assert list(fp.tool_distribution.items()) == [("order_hit", 1), ("set_up", 2)]


def test_all_failed_model_has_zero_rates_and_no_division_errors() -> None:
    results = [_result("m", "a", None, error="boom"), _result("m", "b", None, error="boom")]
    (fp,) = build_fingerprints(results, SCENARIOS)
    assert fp.total_scenarios == 2
    assert fp.error_rate == 1.0
    assert fp.violence_rate == 0.0
    assert fp.canonical_alignment == 0.0
    assert fp.avg_cost == 0.0
    assert fp.avg_duration_ms == 0.0
    assert fp.tool_distribution == {}


def test_no_canonical_scenarios_gives_zero_alignment() -> None:
    (fp,) = build_fingerprints([_result("m", "c", Action.BRIBE)], SCENARIOS)
    assert fp.canonical_alignment == 0.0


def test_one_fingerprint_per_model_in_first_appearance_order() -> None:
    results = [
        _result("second", "a", Action.BRIBE),
        _result("first", "a", Action.BRIBE),
        _result("second", "b", Action.BRIBE),
    ]
    assert list(group_by_model(results)) == ["second", "first"]
    assert [fp.model for fp in build_fingerprints(results, SCENARIOS)] == ["second", "first"]
    assert build_fingerprints([], SCENARIOS) == []


def test_fingerprint_serializes_expected_keys() -> None:
    (fp,) = build_fingerprints([_result("m", "a", Action.ORDER_HIT)], SCENARIOS)
    data = fp.to_dict()
    assert data["model"] == "m"
    assert data["tool_distribution"] == {"order_hit": 1}
    assert set(data) == {
        "model",
        "total_scenarios",
        "tool_distribution",
        "violence_rate",
        "sitdown_rate",
        "tax_rate",
        "threaten_rate",
        "bribe_rate",
        "do_nothing_rate",
        "setup_rate",
        "canonical_alignment",
        "error_rate",
        "avg_cost",
        "avg_duration_ms",
        "total_tokens",
    }

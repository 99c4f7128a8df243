"""Domain models for gabagool-bench."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Action(str, Enum):
    """Closed set of moves a model may pick for a scenario."""

    ORDER_HIT = "order_hit"
    CALL_SITDOWN = "call_sitdown"
    APPLY_TAX = "apply_tax"
    THREATEN = "threaten"
    BRIBE = "bribe"
    DO_NOTHING = "do_nothing"
    SET_UP = "set_up"


class ParseMethod(str, Enum):
    """Stage of the output parser that produced a decision."""

    DIRECT = "direct"
    STRIPPED = "stripped"
    REPAIRED = "repaired"
    REGEX = "regex"
    FAILED = "failed"


@dataclass(frozen=True)
class Decision:
    """Domain model for a model's structured decision."""

    action: Action
    reasoning: str

    def to_dict(self) -> Dict[str, str]:
        return {"action": self.action.value, "reasoning": self.reasoning}


@dataclass(frozen=True)
class ParseResult:
    """Tagged outcome of the output parser."""

    decision: Optional[Decision]
    method: ParseMethod


@dataclass(frozen=True)
class Scenario:
    """Domain model for a dilemma scenario."""

    id: str
    name: str
    description: str
    prompt: str
    system_prompt: str
    context: Optional[str] = None
    stakes: Optional[str] = None
    theme: Optional[str] = None
    canonical: Optional[Action] = None

    def user_prompt(self) -> str:
        """Compose the decision-eliciting user message."""
        parts = [self.context or "", f"Stakes: {self.stakes}" if self.stakes else "", self.prompt]
        return "\n\n".join(part.strip() for part in parts if part and part.strip())


@dataclass(frozen=True)
class ModelConfig:
    """A model under test."""

    name: str
    slug: str
    reasoning_effort: Optional[str] = None


@dataclass(frozen=True)
class Usage:
    """Token and cost accounting for one or more provider calls."""

    total_tokens: int = 0
    cost: float = 0.0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(total_tokens=self.total_tokens + other.total_tokens, cost=self.cost + other.cost)


@dataclass(frozen=True)
class StructuredGeneration:
    """Result of a structured-output generation call."""

    decision: Decision
    usage: Usage
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class TextGeneration:
    """Result of a plain-text generation call."""

    text: str
    usage: Usage
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class TestResult:
    """Outcome of one (scenario, model) job."""

    __test__ = False

    scenario_id: str
    model: str
    duration_ms: int
    cost: float
    tokens: int
    timestamp: str
    decision: Optional[Decision] = None
    error: Optional[str] = None
    raw_text: Optional[str] = None
    repaired: Optional[bool] = None
    parse_method: Optional[ParseMethod] = None

    @property
    def ok(self) -> bool:
        return self.decision is not None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the raw-results.json key layout."""
        data: Dict[str, Any] = {
            "scenario_id": self.scenario_id,
            "model": self.model,
        }
        if self.decision is not None:
            data["decision"] = self.decision.to_dict()
        data.update(
            {
                "duration_ms": self.duration_ms,
                "cost": self.cost,
                "tokens": self.tokens,
                "timestamp": self.timestamp,
            }
        )
        if self.error is not None:
            data["error"] = self.error
        if self.raw_text is not None:
            data["rawText"] = self.raw_text
        if self.repaired is not None:
            data["repaired"] = self.repaired
        if self.parse_method is not None:
            data["parseMethod"] = self.parse_method.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestResult":
        """Rebuild a result from its raw-results.json representation."""
        decision_data = data.get("decision")
        decision: Optional[Decision] = None
        if isinstance(decision_data, dict) and decision_data.get("action") in {a.value for a in Action}:
            decision = Decision(
                action=Action(decision_data["action"]),
                reasoning=str(decision_data.get("reasoning", "")),
            )
        method = data.get("parseMethod")
        return cls(
            scenario_id=str(data.get("scenario_id", "")),
            model=str(data.get("model", "")),
            duration_ms=int(data.get("duration_ms") or 0),
            cost=float(data.get("cost") or 0.0),
            tokens=int(data.get("tokens") or 0),
            timestamp=str(data.get("timestamp", "")),
            decision=decision,
            error=data.get("error"),
            raw_text=data.get("rawText"),
            repaired=data.get("repaired"),
            parse_method=ParseMethod(method) if method in {m.value for m in ParseMethod} else None,
        )


@dataclass(frozen=True)
class ModelFingerprint:
    """Per-model behavioural statistics derived from a run."""

    model: str
    total_scenarios: int
    tool_distribution: Dict[str, int] = field(default_factory=dict)
    violence_rate: float = 0.0
    sitdown_rate: float = 0.0
    tax_rate: float = 0.0
    threaten_rate: float = 0.0
    bribe_rate: float = 0.0
    do_nothing_rate: float = 0.0
    setup_rate: float = 0.0
    canonical_alignment: float = 0.0
    error_rate: float = 0.0
    avg_cost: float = 0.0
    avg_duration_ms: float = 0.0
    total_tokens: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "total_scenarios": self.total_scenarios,
            "tool_distribution": dict(self.tool_distribution),
            "violence_rate": self.violence_rate,
            "sitdown_rate": self.sitdown_rate,
            "tax_rate": self.tax_rate,
            "threaten_rate": self.threaten_rate,
            "bribe_rate": self.bribe_rate,
            "do_nothing_rate": self.do_nothing_rate,
            "setup_rate": self.setup_rate,
            "canonical_alignment": self.canonical_alignment,
            "error_rate": self.error_rate,
            "avg_cost": self.avg_cost,
            "avg_duration_ms": self.avg_duration_ms,
            "total_tokens": self.total_tokens,
        }


__all__ = [
    "Action",
    "ParseMethod",
    "Decision",
    "ParseResult",
    "Scenario",
    "ModelConfig",
    "Usage",
    "StructuredGeneration",
    "TextGeneration",
    "TestResult",
    "ModelFingerprint",
]

"""Post-run inspection of stored results: malformed-output report and re-parsing."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .domain import ParseMethod, ParseResult, TestResult
from .services import IOutputParser

SEPARATOR = "=" * 80
RAW_PREVIEW_CHARS = 400
FAILED_PREVIEW_CHARS = 800


def is_parse_failure(result: TestResult) -> bool:
    """No decision was recovered from text the model did return."""
    if result.decision is not None:
        return False
    return result.parse_method is ParseMethod.FAILED or result.error is None


def is_provider_error(result: TestResult) -> bool:
    return result.error is not None and not is_parse_failure(result)


@dataclass(frozen=True)
class RunSummary:
    """Counts describing how a run's outputs were obtained."""

    total: int
    direct: int
    repaired: int
    parse_failures: int
    errors: int
    total_cost: float
    method_counts: Dict[str, int] = field(default_factory=dict)
    failures_by_model: Dict[str, int] = field(default_factory=dict)


def summarize_results(results: Sequence[TestResult]) -> RunSummary:
    """Classify every result as direct, repaired, parse failure or provider error."""
    repaired = sum(1 for r in results if r.decision is not None and r.repaired)
    parse_failures = [r for r in results if is_parse_failure(r)]
    errors = [r for r in results if is_provider_error(r)]
    methods: Counter[str] = Counter(r.parse_method.value for r in results if r.parse_method is not None)
    failures: Counter[str] = Counter(r.model for r in [*parse_failures, *errors])

    return RunSummary(
        total=len(results),
        direct=len(results) - repaired - len(parse_failures) - len(errors),
        repaired=repaired,
        parse_failures=len(parse_failures),
        errors=len(errors),
        total_cost=sum(r.cost for r in results),
        method_counts=dict(methods),
        failures_by_model=dict(sorted(failures.items(), key=lambda kv: kv[1], reverse=True)),
    )


@dataclass(frozen=True)
class ReparseOutcome:
    """Current parser's verdict on one stored raw output."""

    result: TestResult
    parsed: ParseResult

    @property
    def newly_fixed(self) -> bool:
        return self.result.decision is None and self.parsed.decision is not None


def reparse_results(results: Sequence[TestResult], parser: IOutputParser) -> List[ReparseOutcome]:
    """Run ``parser`` again over every result that stored its raw text."""
    return [
        ReparseOutcome(result=result, parsed=parser.parse(result.raw_text))
        for result in results
        if result.raw_text
    ]


def _preview(text: Optional[str], limit: int) -> str:
    if not text:
        return "NONE"
    return text[:limit]


def render_summary(results: Sequence[TestResult], source: str) -> List[str]:
    """Lines of the malformed-output report for a stored run."""
    summary = summarize_results(results)
    lines = [SEPARATOR, "MALFORMED OUTPUT ANALYSIS", f"Results from: {source}", f"Total results: {summary.total}", SEPARATOR]

    repaired = [r for r in results if r.decision is not None and r.repaired]
    lines.append(f"REPAIRED OUTPUTS (fallback extraction used): {len(repaired)}")
    for r in repaired:
        method = r.parse_method.value if r.parse_method else "unknown"
        action = r.decision.action.value if r.decision else "NONE"
        reasoning = r.decision.reasoning if r.decision else None
        lines.append(f"  {r.model} -> {r.scenario_id} [{method}] {action}")
        lines.append(f"    reasoning: {_preview(reasoning, 150)}")
        lines.append(f"    raw: {_preview(r.raw_text, RAW_PREVIEW_CHARS)}")

    failed = [r for r in results if is_parse_failure(r)]
    lines.append(f"FAILED TO PARSE: {len(failed)}")
    for r in failed:
        lines.append(f"  {r.model} -> {r.scenario_id}")
        if r.raw_text:
            lines.append(f"    raw: {_preview(r.raw_text, FAILED_PREVIEW_CHARS)}")
        else:
            lines.append("    no raw text saved")

    errors = [r for r in results if is_provider_error(r)]
    lines.append(f"API ERRORS: {len(errors)}")
    for r in errors:
        lines.append(f"  {r.model} -> {r.scenario_id}: {r.error}")

    lines.extend(
        [
            SEPARATOR,
            "SUMMARY",
            f"Total results: {summary.total}",
            f"Successful (direct): {summary.direct}",
            f"Repaired (fallback): {summary.repaired}",
            f"Failed to parse: {summary.parse_failures}",
            f"API errors: {summary.errors}",
            f"Total cost: ${summary.total_cost:.4f}",
        ]
    )
    if summary.failures_by_model:
        lines.append("Failures by model:")
        lines.extend(f"  {model}: {count}" for model, count in summary.failures_by_model.items())
    return lines


def render_reparse(outcomes: Sequence[ReparseOutcome], total: int) -> List[str]:
    """Lines reporting how the current parser handles stored raw outputs."""
    methods: Counter[str] = Counter(o.parsed.method.value for o in outcomes)
    fixed = [o for o in outcomes if o.newly_fixed]
    failed = [o for o in outcomes if o.parsed.decision is None]

    lines = [
        SEPARATOR,
        "RE-PARSE",
        f"Total: {total} | With rawText: {len(outcomes)}",
        "Parse method distribution: " + " | ".join(f"{m.value}: {methods.get(m.value, 0)}" for m in ParseMethod),
    ]
    if fixed:
        lines.append(f"Newly fixed: {len(fixed)}")
        for o in fixed:
            action = o.parsed.decision.action.value if o.parsed.decision else "NONE"
            lines.append(f"  {o.result.model} -> {o.result.scenario_id} [{o.parsed.method.value}] -> {action}")
    if failed:
        lines.append(f"Still failed: {len(failed)}")
        for o in failed:
            lines.append(f"  {o.result.model} -> {o.result.scenario_id}: {_preview(o.result.raw_text, 200)}")

    success = (len(outcomes) - len(failed)) / len(outcomes) * 100 if outcomes else 0.0
    lines.append(
        f"Summary: {len(outcomes)} tested | {success:.1f}% success | {len(fixed)} newly fixed | {len(failed)} failed"
    )
    return lines


__all__ = [
    "RunSummary",
    "ReparseOutcome",
    "is_parse_failure",
    "is_provider_error",
    "summarize_results",
    "reparse_results",
    "render_summary",
    "render_reparse",
]

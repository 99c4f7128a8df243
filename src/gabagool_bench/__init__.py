"""Public API for the gabagool-bench package."""

from __future__ import annotations

from .analysis import RunSummary, reparse_results, summarize_results
from .domain import Action, Decision, ModelConfig, ModelFingerprint, ParseMethod, ParseResult, Scenario, TestResult
from .infrastructure.api_client import OPENROUTER_BASE_URL
from .parsing import OutputParser, parse_model_output
from .prompts import SYSTEM_PROMPT
from .runner import BenchmarkRunner, RunArtifacts, RunnerConfig, RunnerControl, RunnerEvent, run_suite
from .scenario_runner import ScenarioRunner
from .scheduler import WorkerPool, run_all
from .schema import DECISION_SCHEMA
from .scorer import build_fingerprints

__all__ = [
    "OPENROUTER_BASE_URL",
    "DECISION_SCHEMA",
    "SYSTEM_PROMPT",
    "Action",
    "Decision",
    "ModelConfig",
    "ModelFingerprint",
    "ParseMethod",
    "ParseResult",
    "Scenario",
    "TestResult",
    "OutputParser",
    "parse_model_output",
    "ScenarioRunner",
    "WorkerPool",
    "run_all",
    "build_fingerprints",
    "RunSummary",
    "summarize_results",
    "reparse_results",
    "BenchmarkRunner",
    "RunArtifacts",
    "RunnerConfig",
    "RunnerControl",
    "RunnerEvent",
    "run_suite",
]

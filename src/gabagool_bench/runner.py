"""Primary execution logic for a benchmark run."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from colorama import Fore, Style

from .analysis import RunSummary, summarize_results
from .domain import ModelConfig, ModelFingerprint, Scenario, TestResult
from .exceptions import RunnerError
from .scenario_runner import (
    DEFAULT_FALLBACK_MAX_RETRIES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_TOKENS,
    ScenarioRunner,
)
from .scheduler import DEFAULT_CONCURRENCY, DEFAULT_STAGGER_S, RunnerControl, WorkerPool
from .scorer import build_fingerprints
from .services import IGenerationClient, IOutputParser, IResultStore, IScenarioLoader, ITimeService

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunnerConfig:
    """Configuration describing a single benchmark run."""

    models: Sequence[ModelConfig]
    scenarios_dir: Path
    outdir: Path
    concurrency: int = DEFAULT_CONCURRENCY
    stagger_s: float = DEFAULT_STAGGER_S
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_retries: int = DEFAULT_MAX_RETRIES
    fallback_max_retries: int = DEFAULT_FALLBACK_MAX_RETRIES
    verbose: bool = False
    use_color: bool = False


@dataclass(frozen=True)
class RunArtifacts:
    """Artifacts produced by executing a benchmark run."""

    run_dir: Path
    results: List[TestResult]
    fingerprints: List[ModelFingerprint]
    summary: RunSummary
    elapsed_s: float
    cancelled: bool = False


@dataclass(frozen=True)
class RunnerEvent:
    """Lightweight payload emitted during runner progress updates."""

    type: str
    payload: Dict[str, Any]


class BenchmarkRunner:
    """Loads scenarios, drives the worker pool, scores and persists the run."""

    def __init__(
        self,
        config: RunnerConfig,
        *,
        client: IGenerationClient,
        scenario_loader: IScenarioLoader,
        result_store: IResultStore,
        time_service: ITimeService,
        parser: Optional[IOutputParser] = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Any] | None = None,
        logger: logging.Logger | None = None,
        progress_callback: Callable[[RunnerEvent], None] | None = None,
        control: RunnerControl | None = None,
    ) -> None:
        self.config = config
        self._client = client
        self._scenario_loader = scenario_loader
        self._result_store = result_store
        self._time_service = time_service
        self._parser = parser
        self._clock = clock or time.monotonic
        self._sleep = sleep
        self._logger = logger or LOGGER
        self._progress_callback = progress_callback
        self._control = control or RunnerControl()

    # --------------------------------------------------------------------- #
    # Output helpers

    def _color(self, text: str, code: str) -> str:
        if not self.config.use_color:
            return text
        return f"{code}{text}{Style.RESET_ALL}"

    def _emit(self, event_type: str, **payload: Any) -> None:
        if self._progress_callback is None:
            return
        safe_payload: Dict[str, Any] = {}
        for key, value in payload.items():
            safe_payload[key] = str(value) if isinstance(value, Path) else value
        try:
            self._progress_callback(RunnerEvent(type=event_type, payload=safe_payload))
        except Exception:
            self._logger.exception("Progress callback failed on %s event", event_type)

    @staticmethod
    def _snippet(text: str, limit: int = 160) -> str:
        collapsed = " ".join(text.strip().split())
        if len(collapsed) <= limit:
            return collapsed
        return collapsed[: limit - 1] + "…"

    def _on_progress(self, done: int, total: int, result: TestResult) -> None:
        pct = round(done / total * 100) if total else 100
        if result.error is not None:
            label = self._color("ERROR", Fore.RED + Style.BRIGHT)
        elif result.decision is not None:
            label = self._color(result.decision.action.value, Fore.GREEN if not result.repaired else Fore.YELLOW)
        else:
            label = "no action"
        print(f"[{pct:>3d}%] {result.model} → {result.scenario_id}: {label}")

        if self.config.verbose and result.decision is not None:
            self._logger.info("%s", self._color(f"  Reasoning ▶ {self._snippet(result.decision.reasoning)}", Fore.BLUE))

        self._emit(
            "job_completed",
            done=done,
            total=total,
            model=result.model,
            scenario_id=result.scenario_id,
            action=result.decision.action.value if result.decision else None,
            error=result.error,
        )

    def _summary_lines(
        self,
        results: Sequence[TestResult],
        fingerprints: Sequence[ModelFingerprint],
        summary: RunSummary,
        elapsed_s: float,
    ) -> List[str]:
        errored = sum(1 for result in results if result.error is not None)
        rate = len(results) / elapsed_s if elapsed_s > 0 else 0.0
        lines = [
            f"Completed {len(results)} tests in {elapsed_s:.1f}s ({rate:.2f} tests/sec, {errored} errors)",
            f"  direct {summary.direct}, repaired {summary.repaired}, "
            f"parse failures {summary.parse_failures}, provider errors {summary.errors}",
            "",
            self._color("Model Fingerprints:", Fore.GREEN + Style.BRIGHT),
        ]

        for fp in sorted(fingerprints, key=lambda item: item.violence_rate, reverse=True):
            lines.append(self._color(fp.model, Fore.CYAN + Style.BRIGHT))
            line = (
                f"  Hit: {fp.violence_rate * 100:5.1f}%  Sitdown: {fp.sitdown_rate * 100:5.1f}%  "
                f"Tax: {fp.tax_rate * 100:5.1f}%  Threaten: {fp.threaten_rate * 100:5.1f}%  "
                f"Bribe: {fp.bribe_rate * 100:5.1f}%  Nothing: {fp.do_nothing_rate * 100:5.1f}%"
            )
            if fp.error_rate > 0:
                line += self._color(f"  Errors: {fp.error_rate * 100:5.1f}%", Fore.RED)
            lines.append(line)

        lines.append("")
        lines.append(f"Total cost: ${summary.total_cost:.4f}")
        return lines

    # --------------------------------------------------------------------- #
    # Core execution

    def _load_scenarios(self) -> List[Scenario]:
        scenarios = self._scenario_loader.load()
        if not scenarios:
            raise RunnerError("No scenarios found", context={"path": str(self.config.scenarios_dir)})
        if not self.config.models:
            raise RunnerError("No models configured")
        return scenarios

    def _build_pool(self) -> WorkerPool:
        scenario_runner = ScenarioRunner(
            self._client,
            self._time_service,
            parser=self._parser,
            max_tokens=self.config.max_tokens,
            max_retries=self.config.max_retries,
            fallback_max_retries=self.config.fallback_max_retries,
        )
        return WorkerPool(
            scenario_runner,
            self._time_service,
            concurrency=self.config.concurrency,
            stagger_s=self.config.stagger_s,
            control=self._control,
            sleep=self._sleep,
        )

    async def run_async(self) -> RunArtifacts:
        """Execute the configured suite across all models."""
        try:
            scenarios = self._load_scenarios()
            models = list(self.config.models)
            total_jobs = len(scenarios) * len(models)

            print(f"Loaded {len(scenarios)} scenarios")
            print(f"Testing {len(models)} models across {len(scenarios)} scenarios = {total_jobs} jobs")
            print()
            self._emit(
                "run_started",
                models=[model.name for model in models],
                total_scenarios=len(scenarios),
                total_jobs=total_jobs,
            )
            self._logger.debug(
                "Run prepared; concurrency=%d stagger=%.2fs max_tokens=%d",
                self.config.concurrency,
                self.config.stagger_s,
                self.config.max_tokens,
            )

            started = self._clock()
            results = await self._build_pool().run_all(scenarios, models, self._on_progress)
            elapsed_s = max(0.0, self._clock() - started)
        finally:
            await self._client.aclose()

        cancelled = len(results) < total_jobs
        fingerprints = build_fingerprints(results, scenarios)
        run_dir = self._result_store.save(results, fingerprints)
        summary = summarize_results(results)

        print()
        for line in self._summary_lines(results, fingerprints, summary, elapsed_s):
            print(line)
        print(self._color(f"[OK] Results saved to {run_dir}", Fore.GREEN + Style.BRIGHT))

        self._emit(
            "run_cancelled" if cancelled else "run_completed",
            run_dir=run_dir,
            total=len(results),
            errors=summary.errors + summary.parse_failures,
            total_cost=summary.total_cost,
        )
        return RunArtifacts(
            run_dir=run_dir,
            results=results,
            fingerprints=fingerprints,
            summary=summary,
            elapsed_s=elapsed_s,
            cancelled=cancelled,
        )

    def run(self) -> RunArtifacts:
        """Run the suite on a fresh event loop."""
        return asyncio.run(self.run_async())


def run_suite(
    *,
    models: Sequence[ModelConfig],
    scenarios_dir: Path,
    outdir: Path,
    concurrency: int = DEFAULT_CONCURRENCY,
    stagger_s: float = DEFAULT_STAGGER_S,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    max_retries: int = DEFAULT_MAX_RETRIES,
    fallback_max_retries: int = DEFAULT_FALLBACK_MAX_RETRIES,
    verbose: bool = False,
    use_color: bool = False,
    config_file: Optional[Path] = None,
) -> RunArtifacts:
    """Functional entry point wiring services from the default container."""
    from .container import create_container
    from .factories import RunnerFactory

    config = RunnerConfig(
        models=models,
        scenarios_dir=scenarios_dir,
        outdir=outdir,
        concurrency=concurrency,
        stagger_s=stagger_s,
        max_tokens=max_tokens,
        max_retries=max_retries,
        fallback_max_retries=fallback_max_retries,
        verbose=verbose,
        use_color=use_color,
    )
    container = create_container(config_file)
    return RunnerFactory(container).create_runner(config).run()


__all__ = ["BenchmarkRunner", "RunnerConfig", "RunArtifacts", "RunnerEvent", "RunnerControl", "run_suite"]

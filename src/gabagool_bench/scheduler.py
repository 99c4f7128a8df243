"""Bounded asyncio worker pool draining the scenario × model job queue."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

from .domain import ModelConfig, Scenario, TestResult
from .exceptions import GenerationError
from .scenario_runner import ScenarioRunner
from .services import ITimeService

LOGGER = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 15
DEFAULT_STAGGER_S = 0.15

ProgressCallback = Callable[[int, int, TestResult], None]


@dataclass(frozen=True)
class Job:
    """One unit of work: a scenario evaluated by a model."""

    scenario: Scenario
    model: ModelConfig


class RunnerControl:
    """Control hook allowing external supervisors to cancel runs."""

    def should_stop(self) -> bool:
        """Return True when no further jobs should be started."""
        return False


def build_jobs(scenarios: Sequence[Scenario], models: Sequence[ModelConfig]) -> List[Job]:
    """Cross product of scenarios and models, scenario-major."""
    return [Job(scenario=scenario, model=model) for scenario in scenarios for model in models]


class WorkerPool:
    """Runs every job through the scenario runner with bounded concurrency.

    Each job is dequeued by exactly one worker. Results are collected in
    completion order. Exceptions escaping the runner become failed results so
    one misbehaving model never stops the pool.
    """

    def __init__(
        self,
        runner: ScenarioRunner,
        time_service: ITimeService,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        stagger_s: float = DEFAULT_STAGGER_S,
        control: Optional[RunnerControl] = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._runner = runner
        self._time_service = time_service
        self._concurrency = concurrency
        self._stagger_s = max(0.0, stagger_s)
        self._control = control or RunnerControl()
        self._sleep = sleep or asyncio.sleep
        self._logger = logger or LOGGER

    async def run_all(
        self,
        scenarios: Sequence[Scenario],
        models: Sequence[ModelConfig],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[TestResult]:
        """Run the full cross product and return results in completion order."""
        jobs = build_jobs(scenarios, models)
        total = len(jobs)
        if total == 0:
            return []

        queue: asyncio.Queue[Job] = asyncio.Queue()
        for job in jobs:
            queue.put_nowait(job)

        results: List[TestResult] = []
        worker_count = min(self._concurrency, total)
        self._logger.debug("Starting %d workers for %d jobs", worker_count, total)

        async def worker(index: int) -> None:
            if index and self._stagger_s:
                await self._sleep(index * self._stagger_s)
            while not self._control.should_stop():
                try:
                    job = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                result = await self._execute(job)
                results.append(result)
                if on_progress is not None:
                    try:
                        on_progress(len(results), total, result)
                    except Exception:
                        self._logger.exception("Progress callback failed after %s → %s", result.model, result.scenario_id)

        await asyncio.gather(*(worker(index) for index in range(worker_count)))

        if len(results) < total:
            self._logger.warning("Run stopped early: %d of %d jobs completed", len(results), total)
        return results

    async def _execute(self, job: Job) -> TestResult:
        try:
            return await self._runner.run(job.scenario, job.model)
        except Exception as exc:
            status = exc.status_code if isinstance(exc, GenerationError) else None
            self._logger.warning(
                "Job failed: model=%s scenario=%s error=%s%s",
                job.model.name,
                job.scenario.id,
                exc,
                f" status={status}" if status is not None else "",
            )
            return TestResult(
                scenario_id=job.scenario.id,
                model=job.model.name,
                duration_ms=0,
                cost=0.0,
                tokens=0,
                timestamp=self._time_service.now_iso(),
                error=str(exc) or exc.__class__.__name__,
            )


async def run_all(
    runner: ScenarioRunner,
    time_service: ITimeService,
    scenarios: Sequence[Scenario],
    models: Sequence[ModelConfig],
    on_progress: Optional[ProgressCallback] = None,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    stagger_s: float = DEFAULT_STAGGER_S,
) -> List[TestResult]:
    """Convenience wrapper building a :class:`WorkerPool` for a single run."""
    pool = WorkerPool(runner, time_service, concurrency=concurrency, stagger_s=stagger_s)
    return await pool.run_all(scenarios, models, on_progress)


__all__ = [
    "DEFAULT_CONCURRENCY",
    "DEFAULT_STAGGER_S",
    "Job",
    "ProgressCallback",
    "RunnerControl",
    "WorkerPool",
    "build_jobs",
    "run_all",
]

"""Per-job execution: one scenario against one model."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .domain import ModelConfig, Scenario, TestResult, Usage
from .exceptions import ErrorKind, GenerationError
from .parsing import OutputParser
from .schema import DECISION_SCHEMA
from .services import IGenerationClient, IOutputParser, ITimeService

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8000
DEFAULT_MAX_RETRIES = 2
DEFAULT_FALLBACK_MAX_RETRIES = 1

PARSE_FAILURE_MESSAGE = "Failed to parse model output"


class ScenarioRunner:
    """Runs a single (scenario, model) job and returns its result record.

    The structured call is tried first. When the provider reports a parsing
    failure the raw text is recovered locally, requesting it again as plain
    text only when the failure carried none. Network and other provider
    failures propagate to the caller.
    """

    def __init__(
        self,
        client: IGenerationClient,
        time_service: ITimeService,
        *,
        parser: Optional[IOutputParser] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        fallback_max_retries: int = DEFAULT_FALLBACK_MAX_RETRIES,
        clock: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._time_service = time_service
        self._parser = parser or OutputParser()
        self._max_tokens = max_tokens
        self._max_retries = max_retries
        self._fallback_max_retries = fallback_max_retries
        self._clock = clock or time.monotonic
        self._logger = logger or LOGGER

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int(round((self._clock() - started) * 1000)))

    async def run(self, scenario: Scenario, model: ModelConfig) -> TestResult:
        """Execute the job; raises :class:`GenerationError` for non-parsing failures."""
        started = self._clock()
        user_prompt = scenario.user_prompt()

        try:
            generation = await self._client.generate_structured(
                model,
                scenario.system_prompt,
                user_prompt,
                DECISION_SCHEMA,
                self._max_tokens,
                self._max_retries,
            )
        except GenerationError as exc:
            if exc.kind is not ErrorKind.PARSING:
                raise
            return await self._recover(scenario, model, user_prompt, exc, started)

        if generation.finish_reason == "length":
            self._logger.warning(
                "%s hit max_tokens on %s; decision may be truncated", model.name, scenario.id
            )

        return TestResult(
            scenario_id=scenario.id,
            model=model.name,
            decision=generation.decision,
            duration_ms=self._elapsed_ms(started),
            cost=generation.usage.cost,
            tokens=generation.usage.total_tokens,
            timestamp=self._time_service.now_iso(),
        )

    async def _recover(
        self,
        scenario: Scenario,
        model: ModelConfig,
        user_prompt: str,
        failure: GenerationError,
        started: float,
    ) -> TestResult:
        raw_text = failure.raw_text or ""
        usage = failure.usage or Usage()

        if not raw_text.strip():
            self._logger.debug("[PARSE] %s → %s: no raw text, requesting plain text", model.name, scenario.id)
            fallback = await self._client.generate_text(
                model,
                scenario.system_prompt,
                user_prompt,
                self._max_tokens,
                self._fallback_max_retries,
            )
            raw_text = fallback.text
            usage = usage + fallback.usage
            if fallback.finish_reason == "length":
                self._logger.warning(
                    "%s hit max_tokens on %s during fallback", model.name, scenario.id
                )

        parsed = self._parser.parse(raw_text)
        recovered = parsed.decision is not None
        if recovered:
            self._logger.debug(
                "[PARSE] %s → %s: recovered via %s", model.name, scenario.id, parsed.method.value
            )
        else:
            self._logger.debug("[PARSE] %s → %s: unrecoverable output", model.name, scenario.id)

        return TestResult(
            scenario_id=scenario.id,
            model=model.name,
            decision=parsed.decision,
            duration_ms=self._elapsed_ms(started),
            cost=usage.cost,
            tokens=usage.total_tokens,
            timestamp=self._time_service.now_iso(),
            error=None if recovered else PARSE_FAILURE_MESSAGE,
            raw_text=raw_text,
            repaired=recovered,
            parse_method=parsed.method,
        )


__all__ = [
    "ScenarioRunner",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_FALLBACK_MAX_RETRIES",
    "PARSE_FAILURE_MESSAGE",
]

"""Factory functions for creating configured runner instances."""

from pathlib import Path
from typing import Any, Callable, List, Optional

from .container import ServiceContainer
from .domain import ModelConfig
from .exceptions import ConfigurationError
from .infrastructure.config_manager import ConfigurationManager
from .infrastructure.repositories import ResultStore
from .infrastructure.scenario_loader import ScenarioLoader
from .runner import BenchmarkRunner, RunnerConfig, RunnerControl, RunnerEvent
from .scenario_runner import DEFAULT_FALLBACK_MAX_RETRIES, DEFAULT_MAX_RETRIES, DEFAULT_MAX_TOKENS
from .scheduler import DEFAULT_CONCURRENCY, DEFAULT_STAGGER_S
from .services import IFileSystemService, IGenerationClient, IOutputParser, ITimeService

DEFAULT_SCENARIOS_DIR = Path("./scenarios")
DEFAULT_OUTDIR = Path("./results")


class RunnerFactory:
    """Factory for creating configured BenchmarkRunner instances."""

    def __init__(self, container: ServiceContainer):
        self._container = container

    def create_runner(
        self,
        config: RunnerConfig,
        control: Optional[RunnerControl] = None,
        progress_callback: Optional[Callable[[RunnerEvent], None]] = None,
    ) -> BenchmarkRunner:
        """Create a runner with shared services resolved from the container.

        The scenario loader and result store are built per run from the
        directories named in ``config``.
        """
        time_service = self._container.resolve(ITimeService)
        fs_service = self._container.resolve(IFileSystemService)

        return BenchmarkRunner(
            config=config,
            client=self._container.resolve(IGenerationClient),
            scenario_loader=ScenarioLoader(config.scenarios_dir),
            result_store=ResultStore(config.outdir, fs_service, time_service),
            time_service=time_service,
            parser=self._container.resolve(IOutputParser),
            control=control,
            progress_callback=progress_callback,
        )


class RunnerConfigBuilder:
    """Builder for creating RunnerConfig instances."""

    def __init__(self):
        self._models: List[ModelConfig] = []
        self._scenarios_dir: Path = DEFAULT_SCENARIOS_DIR
        self._outdir: Path = DEFAULT_OUTDIR
        self._concurrency: int = DEFAULT_CONCURRENCY
        self._stagger_s: float = DEFAULT_STAGGER_S
        self._max_tokens: int = DEFAULT_MAX_TOKENS
        self._max_retries: int = DEFAULT_MAX_RETRIES
        self._fallback_max_retries: int = DEFAULT_FALLBACK_MAX_RETRIES
        self._verbose: bool = False
        self._use_color: bool = False

    def with_models(self, models: List[ModelConfig]) -> "RunnerConfigBuilder":
        """Set the models to evaluate."""
        self._models = list(models)
        return self

    def with_scenarios_dir(self, scenarios_dir: Path) -> "RunnerConfigBuilder":
        self._scenarios_dir = Path(scenarios_dir)
        return self

    def with_outdir(self, outdir: Path) -> "RunnerConfigBuilder":
        """Set the output directory."""
        self._outdir = Path(outdir)
        return self

    def with_concurrency(self, concurrency: int) -> "RunnerConfigBuilder":
        """Set the worker pool size."""
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self._concurrency = concurrency
        return self

    def with_stagger(self, stagger_s: float) -> "RunnerConfigBuilder":
        """Set the per-worker startup delay."""
        if stagger_s < 0:
            raise ValueError("stagger_s must be non-negative")
        self._stagger_s = stagger_s
        return self

    def with_max_tokens(self, max_tokens: int) -> "RunnerConfigBuilder":
        """Set max tokens for model responses."""
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        self._max_tokens = max_tokens
        return self

    def with_retries(self, max_retries: int, fallback_max_retries: Optional[int] = None) -> "RunnerConfigBuilder":
        """Set retry budgets for the structured and fallback calls."""
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if fallback_max_retries is not None and fallback_max_retries < 0:
            raise ValueError("fallback_max_retries must be non-negative")
        self._max_retries = max_retries
        if fallback_max_retries is not None:
            self._fallback_max_retries = fallback_max_retries
        return self

    def with_verbose(self, verbose: bool = True) -> "RunnerConfigBuilder":
        """Enable verbose output."""
        self._verbose = verbose
        return self

    def with_color(self, use_color: bool = True) -> "RunnerConfigBuilder":
        """Enable colored output."""
        self._use_color = use_color
        return self

    def build(self) -> RunnerConfig:
        """Build the configuration."""
        if not self._models:
            raise ValueError("At least one model must be specified")

        return RunnerConfig(
            models=tuple(self._models),
            scenarios_dir=self._scenarios_dir,
            outdir=self._outdir,
            concurrency=self._concurrency,
            stagger_s=self._stagger_s,
            max_tokens=self._max_tokens,
            max_retries=self._max_retries,
            fallback_max_retries=self._fallback_max_retries,
            verbose=self._verbose,
            use_color=self._use_color,
        )


def select_models(available: List[ModelConfig], requested: Optional[List[str]]) -> List[ModelConfig]:
    """Pick configured models by name, treating unknown entries as OpenRouter slugs."""
    if not requested:
        return list(available)
    by_name = {model.name: model for model in available}
    by_slug = {model.slug: model for model in available}
    selected: List[ModelConfig] = []
    for entry in requested:
        model = by_name.get(entry) or by_slug.get(entry)
        if model is None:
            if "/" not in entry:
                raise ConfigurationError(f"Unknown model '{entry}'", context={"known": ", ".join(sorted(by_name))})
            model = ModelConfig(name=entry.split("/")[-1], slug=entry)
        selected.append(model)
    return selected


def _number(config: ConfigurationManager, key: str, default: Any, kind: Callable[[Any], Any]) -> Any:
    value = config.get(key, default)
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for '{key}'", context={"value": value}) from exc


def build_runner_config(
    config: ConfigurationManager,
    models: Optional[List[ModelConfig]] = None,
    *,
    scenarios_dir: Optional[Path] = None,
    outdir: Optional[Path] = None,
    concurrency: Optional[int] = None,
    max_tokens: Optional[int] = None,
    verbose: bool = False,
    use_color: bool = False,
) -> RunnerConfig:
    """Build a RunnerConfig from the ``run`` section and ``models`` list of a configuration.

    Explicit keyword arguments take precedence over configured values.
    """
    selected = models if models is not None else config.get_models()
    if scenarios_dir is None:
        scenarios_dir = Path(str(config.get("run.scenarios_dir", DEFAULT_SCENARIOS_DIR)))
    if outdir is None:
        outdir = Path(str(config.get("run.outdir", DEFAULT_OUTDIR)))
    if concurrency is None:
        concurrency = _number(config, "run.concurrency", DEFAULT_CONCURRENCY, int)
    if max_tokens is None:
        max_tokens = _number(config, "run.max_tokens", DEFAULT_MAX_TOKENS, int)

    builder = RunnerConfigBuilder()
    try:
        return (
            builder.with_models(selected)
            .with_scenarios_dir(scenarios_dir)
            .with_outdir(outdir)
            .with_concurrency(concurrency)
            .with_stagger(_number(config, "run.stagger_s", DEFAULT_STAGGER_S, float))
            .with_max_tokens(max_tokens)
            .with_retries(
                _number(config, "run.max_retries", DEFAULT_MAX_RETRIES, int),
                _number(config, "run.fallback_max_retries", DEFAULT_FALLBACK_MAX_RETRIES, int),
            )
            .with_verbose(verbose)
            .with_color(use_color)
            .build()
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


__all__ = [
    "RunnerFactory",
    "RunnerConfigBuilder",
    "build_runner_config",
    "select_models",
    "DEFAULT_SCENARIOS_DIR",
    "DEFAULT_OUTDIR",
]

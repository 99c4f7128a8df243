# pyright: reportPrivateUsage=false
from __future__ import annotations

import json
import logging
import runpy
import sys
from pathlib import Path
from typing import Any

import pytest

import bench as cli
from gabagool_bench.domain import ModelConfig
from gabagool_bench.exceptions import ConfigurationError
from gabagool_bench.infrastructure.config_manager import ConfigurationManager


def test_build_parser_parses_expected_arguments(tmp_path: Path) -> None:
    parser = cli.build_parser()
    args = parser.parse_args(
        [
            "--models",
            "kimi-k2",
            "openai/gpt-5",
            "--scenarios",
            str(tmp_path / "s"),
            "--outdir",
            str(tmp_path),
            "--concurrency",
            "4",
            "--max-tokens",
            "1234",
            "--verbose",
        ]
    )

    assert args.models == ["kimi-k2", "openai/gpt-5"]
    assert Path(args.scenarios) == tmp_path / "s"
    assert Path(args.outdir) == tmp_path
    assert args.concurrency == 4
    assert args.max_tokens == 1234
    assert args.verbose is True
    assert args.analyze is None
    assert args.reparse is False


def test_analyze_flag_takes_optional_run_dir() -> None:
    parser = cli.build_parser()
    assert parser.parse_args(["--analyze"]).analyze == ""
    assert parser.parse_args(["--analyze", "results/x"]).analyze == "results/x"


def test_configure_logging_enables_color(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: dict[str, Any] = {}

    class RecordingHandler:
        def __init__(self) -> None:
            self.formatter: logging.Formatter | None = None

        def setFormatter(self, formatter: logging.Formatter) -> None:
            self.formatter = formatter

    handler = RecordingHandler()
    monkeypatch.setattr(cli.logging, "StreamHandler", lambda: handler)

    def record_basic_config(**kwargs: Any) -> None:
        calls.setdefault("basicConfig", kwargs)

    monkeypatch.setattr(cli.logging, "basicConfig", record_basic_config)

    class DummyStderr:
        def isatty(self) -> bool:
            return True

    monkeypatch.setattr(cli.sys, "stderr", DummyStderr())
    monkeypatch.delenv("NO_COLOR", raising=False)

    color_triggered = False

    def fake_colorama_init() -> None:
        nonlocal color_triggered
        color_triggered = True

    monkeypatch.setattr(cli, "colorama_init", fake_colorama_init)

    use_color = cli.configure_logging(debug=False, verbose=True)
    assert use_color is True
    assert color_triggered is True
    assert calls["basicConfig"]["level"] == logging.INFO
    assert calls["basicConfig"]["handlers"] == [handler]
    assert calls["basicConfig"]["force"] is True

    formatter = handler.formatter
    assert formatter is not None
    colored = formatter.format(logging.LogRecord("cli", logging.WARNING, __file__, 1, "colored", (), None))
    assert cli.Style.RESET_ALL in colored
    plain = formatter.format(logging.LogRecord("cli", logging.NOTSET, __file__, 2, "plain", (), None))
    assert cli.Style.RESET_ALL not in plain
    assert plain.endswith("plain")


def test_configure_logging_respects_no_color(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NO_COLOR", "1")

    class DummyStderr:
        def isatty(self) -> bool:
            return True

    recorded: dict[str, Any] = {}
    monkeypatch.setattr(cli.sys, "stderr", DummyStderr())
    monkeypatch.setattr(cli, "colorama_init", lambda: pytest.fail("color init should not run when NO_COLOR is set"))
    monkeypatch.setattr(cli.logging, "basicConfig", lambda **kwargs: recorded.update(kwargs))

    assert cli.configure_logging(debug=True, verbose=False) is False
    assert recorded["level"] == logging.DEBUG


def test_configure_logging_defaults_to_warning_and_adds_file_handler(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    recorded: dict[str, Any] = {}
    monkeypatch.setattr(cli.logging, "basicConfig", lambda **kwargs: recorded.update(kwargs))

    class DummyStderr:
        def isatty(self) -> bool:
            return False

    monkeypatch.setattr(cli.sys, "stderr", DummyStderr())
    monkeypatch.setattr(cli, "colorama_init", lambda: pytest.fail("color init should not run when TTY is absent"))

    log_file = tmp_path / "logs" / "bench.log"
    use_color = cli.configure_logging(debug=False, verbose=False, log_file=str(log_file))

    assert use_color is False
    assert recorded["level"] == logging.WARNING
    file_handlers = [h for h in recorded["handlers"] if isinstance(h, logging.FileHandler)]
    assert len(file_handlers) == 1
    assert isinstance(file_handlers[0].formatter, cli.StructuredFormatter)
    assert log_file.parent.is_dir()
    file_handlers[0].close()


class RecordingFactory:
    captured: dict[str, Any] = {}

    def __init__(self, container: Any) -> None:
        RecordingFactory.captured["container"] = container

    def create_runner(self, config: Any) -> Any:
        RecordingFactory.captured["config"] = config
        return self

    def run(self) -> None:
        RecordingFactory.captured["run_called"] = True


class FakeContainer:
    def __init__(self, manager: ConfigurationManager) -> None:
        self.manager = manager

    def resolve(self, interface: Any) -> Any:
        assert interface is ConfigurationManager
        return self.manager


def _install_fakes(monkeypatch: pytest.MonkeyPatch, manager: ConfigurationManager) -> dict[str, Any]:
    RecordingFactory.captured = {}
    seen: dict[str, Any] = {}

    def fake_create_container(config_file: Any = None) -> FakeContainer:
        seen["config_file"] = config_file
        return FakeContainer(manager)

    monkeypatch.setattr(cli, "create_container", fake_create_container)
    monkeypatch.setattr(cli, "RunnerFactory", RecordingFactory)
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: False)
    return seen


def test_main_builds_config_and_runs(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    manager = ConfigurationManager()
    manager.merge(
        {
            "run": {"concurrency": 9, "stagger_s": 0},
            "models": [
                {"name": "kimi-k2", "slug": "moonshotai/kimi-k2"},
                {"name": "grok-4", "slug": "x-ai/grok-4"},
            ],
        }
    )
    seen = _install_fakes(monkeypatch, manager)

    exit_code = cli.main(
        [
            "--config",
            "cfg.yaml",
            "--models",
            "grok-4",
            "openai/gpt-5",
            "--outdir",
            str(tmp_path),
            "--max-tokens",
            "500",
        ]
    )

    assert exit_code == 0
    assert seen["config_file"] == "cfg.yaml"
    config = RecordingFactory.captured["config"]
    assert config.models == (
        ModelConfig(name="grok-4", slug="x-ai/grok-4"),
        ModelConfig(name="gpt-5", slug="openai/gpt-5"),
    )
    assert config.outdir == tmp_path
    assert config.concurrency == 9
    assert config.max_tokens == 500
    assert config.stagger_s == 0.0
    assert RecordingFactory.captured["run_called"] is True


def test_main_reports_configuration_errors(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: False)

    def failing_container(config_file: Any = None) -> Any:
        raise ConfigurationError("OPENROUTER_API_KEY must be provided in config or environment")

    monkeypatch.setattr(cli, "create_container", failing_container)

    assert cli.main([]) == 1
    assert "[ERROR] OPENROUTER_API_KEY" in capsys.readouterr().err


def test_main_handles_keyboard_interrupt(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    manager = ConfigurationManager()
    manager.merge({"models": ["moonshotai/kimi-k2"]})
    _install_fakes(monkeypatch, manager)

    def interrupted(self: RecordingFactory) -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr(RecordingFactory, "run", interrupted)

    assert cli.main([]) == 130
    assert "[Interrupted] Exiting." in capsys.readouterr().out


def test_reparse_requires_analyze(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: False)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--reparse"])
    assert excinfo.value.code == 2


def _write_run(outdir: Path, name: str, records: list[dict[str, Any]]) -> Path:
    run_dir = outdir / name
    run_dir.mkdir(parents=True)
    (run_dir / "raw-results.json").write_text(json.dumps(records), encoding="utf-8")
    return run_dir


def test_analyze_reports_latest_run(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: False)
    base = {"duration_ms": 1, "cost": 0.5, "tokens": 1, "timestamp": "t"}
    _write_run(tmp_path, "2025-01-01T00-00-00-000Z", [{"scenario_id": "old", "model": "m", **base}])
    _write_run(
        tmp_path,
        "2025-02-01T00-00-00-000Z",
        [
            {"scenario_id": "a", "model": "m", "decision": {"action": "bribe", "reasoning": "r"}, **base},
            {
                "scenario_id": "b",
                "model": "m",
                **base,
                "error": "Failed to parse model output",
                "rawText": 'The answer: "action": "threaten"',
                "repaired": False,
                "parseMethod": "failed",
            },
        ],
    )

    exit_code = cli.main(["--analyze", "--reparse", "--outdir", str(tmp_path)])
    out = capsys.readouterr().out

    assert exit_code == 0
    assert "2025-02-01T00-00-00-000Z" in out
    assert "FAILED TO PARSE: 1" in out
    assert "Total cost: $1.0000" in out
    assert "RE-PARSE" in out
    assert "Newly fixed: 1" in out


def test_analyze_without_runs_fails(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: False)
    assert cli.main(["--analyze", "--outdir", str(tmp_path)]) == 1
    assert "No results found in:" in capsys.readouterr().err


def test_analyze_reports_corrupt_results_as_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: False)
    run_dir = tmp_path / "2025-01-01T00-00-00-000Z"
    run_dir.mkdir()
    (run_dir / "raw-results.json").write_text('[{"scenario_id": "a",', encoding="utf-8")

    assert cli.main(["--analyze", str(run_dir)]) == 1
    assert "[ERROR] raw-results.json is not valid JSON" in capsys.readouterr().err


def test_module_entry_point_executes(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("NO_COLOR", "1")
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: None)
    monkeypatch.setattr(sys, "argv", ["bench.py", "--analyze", "--outdir", str(tmp_path / "empty")])

    with pytest.raises(SystemExit) as excinfo:
        runpy.run_path(str(Path(cli.__file__)), run_name="__main__")

    assert excinfo.value.code == 1

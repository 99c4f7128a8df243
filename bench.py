#!/usr/bin/env python3
"""Command-line interface for gabagool-bench."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from colorama import Fore, Style, init as colorama_init

from gabagool_bench.analysis import render_reparse, render_summary, reparse_results
from gabagool_bench.container import create_container
from gabagool_bench.exceptions import GabagoolBenchException
from gabagool_bench.factories import RunnerFactory, build_runner_config, select_models
from gabagool_bench.infrastructure import ConfigurationManager, FileSystemService, ResultStore, TimeService
from gabagool_bench.logging_config import DEFAULT_FORMAT, StructuredFormatter
from gabagool_bench.parsing import OutputParser

LOGGER = logging.getLogger("gabagool_bench.cli")


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Run Sopranos-style dilemma scenarios against LLMs via OpenRouter and fingerprint their choices."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML or JSON configuration file listing models and run settings.",
    )
    parser.add_argument(
        "--models",
        nargs="+",
        default=None,
        help="Model names from the config, or OpenRouter slugs (e.g. moonshotai/kimi-k2). Defaults to every configured model.",
    )
    parser.add_argument(
        "--scenarios",
        default=None,
        help="Directory of scenario definitions (defaults to run.scenarios_dir or ./scenarios).",
    )
    parser.add_argument(
        "--outdir",
        default=None,
        help="Results directory (defaults to run.outdir or ./results).",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Number of concurrent workers (default: 15).",
    )
    parser.add_argument(
        "--max-tokens",
        type=int,
        default=None,
        help="Token cap for model responses (default: 8000).",
    )
    parser.add_argument(
        "--analyze",
        nargs="?",
        const="",
        default=None,
        metavar="RUN_DIR",
        help="Report malformed outputs for a stored run instead of running (latest run when RUN_DIR is omitted).",
    )
    parser.add_argument(
        "--reparse",
        action="store_true",
        help="With --analyze, re-run the current output parser over stored raw text.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show each decision's reasoning as results arrive.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to trace HTTP calls and parser stages.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write log records, with exception context fields, to this file.",
    )
    return parser


def configure_logging(debug: bool, verbose: bool, log_file: str | None = None) -> bool:
    """Configure root logger; return whether colored output is enabled."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    use_color = sys.stderr.isatty() and os.getenv("NO_COLOR") is None
    handler = logging.StreamHandler()

    if use_color:
        colorama_init()

        class ColorFormatter(logging.Formatter):
            COLORS = {
                logging.DEBUG: Style.DIM + Fore.BLUE,
                logging.INFO: Fore.CYAN,
                logging.WARNING: Fore.YELLOW,
                logging.ERROR: Fore.RED,
                logging.CRITICAL: Style.BRIGHT + Fore.RED,
            }

            def format(self, record: logging.LogRecord) -> str:
                color = self.COLORS.get(record.levelno, "")
                message = super().format(record)
                if color:
                    return f"{color}{message}{Style.RESET_ALL}"
                return message

        formatter: logging.Formatter = ColorFormatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    else:
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [handler]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(StructuredFormatter(DEFAULT_FORMAT))
        handlers.append(file_handler)
    logging.basicConfig(level=level, handlers=handlers, force=True)
    return use_color


def analyze(args: argparse.Namespace) -> int:
    """Print the malformed-output report (and optional re-parse report) for a stored run."""
    config = ConfigurationManager(config_file=args.config)
    outdir = Path(args.outdir or str(config.get("run.outdir", "results")))
    store = ResultStore(outdir, FileSystemService(), TimeService())

    run_dir = Path(args.analyze) if args.analyze else store.find_latest_run()
    if run_dir is None:
        print(f"No results found in: {outdir}", file=sys.stderr)
        return 1

    results = store.load_results(run_dir)
    for line in render_summary(results, str(run_dir)):
        print(line)
    if args.reparse:
        print()
        for line in render_reparse(reparse_results(results, OutputParser()), len(results)):
            print(line)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    use_color = configure_logging(args.debug, args.verbose, args.log_file)

    if args.reparse and args.analyze is None:
        parser.error("--reparse requires --analyze")

    try:
        if args.analyze is not None:
            return analyze(args)

        print("Gabagool Bench\n")
        container = create_container(args.config)
        config_manager: ConfigurationManager = container.resolve(ConfigurationManager)
        config = build_runner_config(
            config_manager,
            select_models(config_manager.get_models(), args.models),
            scenarios_dir=Path(args.scenarios) if args.scenarios else None,
            outdir=Path(args.outdir) if args.outdir else None,
            concurrency=args.concurrency,
            max_tokens=args.max_tokens,
            verbose=args.verbose,
            use_color=use_color,
        )
        RunnerFactory(container).create_runner(config).run()
    except GabagoolBenchException as exc:
        LOGGER.debug("Run aborted", exc_info=True)
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n[Interrupted] Exiting.")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())

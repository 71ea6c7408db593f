#!/usr/bin/env python3
"""
cubench - compute-unit benchmark CLI (Typer)

Runs the measurement suite for one program target, unattended. Measurement
lines go to stdout (or --output); logs go to stderr. Exit status is 1 if any
case failed, 0 only when every planned case produced a measurement.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer
from typer import Argument, Option

from cubench.benchmark.defaults import PROGRAM_DIR_ENV, BenchConfig, parse_batch_sizes
from cubench.benchmark.exceptions import ConfigurationError
from cubench.benchmark.models import InstructionKind, Variant
from cubench.harness.reporter import ResultReporter
from cubench.harness.suite import BenchmarkSuite
from cubench.targets import available_targets, get_adapter
from cubench.targets.base import ProgramAdapter
from cubench.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


# =============================================================================
# Choice enums (Typer-compatible)
# =============================================================================


class ReportFormat(str, Enum):
    lines = "lines"
    table = "table"
    json = "json"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


app = typer.Typer(
    name="cubench",
    help="Compute-unit benchmarks for on-chain order book programs",
    add_completion=False,
    no_args_is_help=True,
)


def _load_adapter(target: str) -> ProgramAdapter:
    try:
        return get_adapter(target)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc), param_hint="TARGET") from exc
    except ImportError as exc:
        typer.echo(
            f"Target '{target}' needs the Solana SDK: {exc}. Install with: pip install 'cu-bench[svm]'",
            err=True,
        )
        raise typer.Exit(code=2) from exc


def _build_config(
    program_dir: Optional[Path],
    batch_sizes: Optional[str],
    no_hints: bool,
    kinds: Optional[List[InstructionKind]],
    variants: Optional[List[Variant]],
) -> BenchConfig:
    overrides = {"program_dir": program_dir, "hint_mode": "none" if no_hints else "hinted"}
    try:
        if batch_sizes:
            sizes = parse_batch_sizes(batch_sizes)
            overrides["batch_sizes"] = sizes
            overrides["swap_fill_sizes"] = sizes
        if kinds:
            overrides["kinds"] = tuple(k.value for k in kinds)
        if variants:
            overrides["variants"] = tuple(v.value for v in variants)
        return BenchConfig(**overrides)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("run")
def run(
    target: str = Argument(..., help="Program target to benchmark (see `cubench list-targets`)."),
    program_dir: Optional[Path] = Option(
        None,
        "--program-dir",
        "-d",
        envvar=PROGRAM_DIR_ENV,
        help=f"Directory holding <program>.so images (default: ${PROGRAM_DIR_ENV}).",
    ),
    output_format: ReportFormat = Option(ReportFormat.lines, "--format", "-f", help="Report format."),
    output: Optional[Path] = Option(None, "--output", "-o", help="Write the report to this file instead of stdout."),
    kinds: Optional[List[InstructionKind]] = Option(
        None, "--kind", "-k", case_sensitive=False, help="Only run these instruction kinds. Repeatable."
    ),
    variants: Optional[List[Variant]] = Option(
        None, "--variant", case_sensitive=False, help="Only run these market variants. Repeatable."
    ),
    batch_sizes: Optional[str] = Option(
        None, "--batch-sizes", "-n", help="Comma-separated batch sizes for batched kinds (default: 1,10,50)."
    ),
    no_hints: bool = Option(False, "--no-hints", help="Build instructions without index hints (worst-case lookups)."),
    log_level: LogLevel = Option(LogLevel.INFO, "--log-level", help="Log level."),
    log_file: Optional[Path] = Option(None, "--log-file", help="Also write logs to this file."),
) -> None:
    """Run every planned case for TARGET and print one line per case."""
    setup_logging(level=log_level.value, log_file=log_file)
    adapter = _load_adapter(target)
    config = _build_config(program_dir, batch_sizes, no_hints, kinds, variants)
    if config.program_dir is None:
        logger.warning(f"No program directory configured (set ${PROGRAM_DIR_ENV} or --program-dir)")

    report = BenchmarkSuite(adapter, config).run()
    reporter = ResultReporter(output_format.value)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w") as f:
            reporter.emit(report, f)
        logger.info(f"Report written to {output}")
    else:
        typer.echo(reporter.render(report))

    if not report.ok:
        logger.error(f"{len(report.failures)} case(s) failed for {adapter.name}")
    raise typer.Exit(code=report.exit_code)


@app.command("list-targets")
def list_targets() -> None:
    """Print the registered program targets."""
    for name in available_targets():
        typer.echo(name)


@app.command("list-cases")
def list_cases(
    target: str = Argument(..., help="Program target to plan."),
    batch_sizes: Optional[str] = Option(None, "--batch-sizes", "-n", help="Comma-separated batch sizes."),
) -> None:
    """Print the cases `run` would execute, in report order."""
    adapter = _load_adapter(target)
    config = _build_config(None, batch_sizes, False, None, None)
    suite = BenchmarkSuite(adapter, config)
    for case in suite.plan():
        typer.echo(case.label(adapter.name))


def main() -> None:
    app()


if __name__ == "__main__":
    main()

from __future__ import annotations
from pathlib import Path
import logging
from typing import Optional

import typer

from jmtbench.metrics import Advisory
from jmtbench.pipeline import (
    DEFAULT_OUTPUT_DIR,
    DEFAULT_ROOT,
    EXIT_CONFIG_ERROR,
    ConfigurationError,
    collect,
    run_pipeline,
)
from jmtbench.report import build_narrative, format_duration
from jmtbench.scaling import analyze
from jmtbench.settings import ReportSettings, SettingsError, load_settings

app = typer.Typer(add_completion=False, help="JMT benchmark report CLI")

ROOT_OPTION = typer.Option(
    DEFAULT_ROOT,
    "--root",
    help="Benchmark output directory to scan.",
    show_default=True,
)
CONFIG_OPTION = typer.Option(
    None,
    "--config",
    help="JSON or YAML settings file (default: $JMTBENCH_CONFIG).",
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _settings_or_exit(config: Optional[Path], **overrides) -> ReportSettings:
    try:
        return load_settings(config, **overrides)
    except SettingsError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)


def _echo_advisories(advisories: list[Advisory]) -> None:
    for advisory in advisories:
        typer.echo(f"warning: {advisory.render()}", err=True)


@app.command()
def report(
    root: Path = ROOT_OPTION,
    output_dir: Path = typer.Option(
        DEFAULT_OUTPUT_DIR,
        "--output-dir",
        help="Directory for charts and summary.md.",
        show_default=True,
    ),
    config: Optional[Path] = CONFIG_OPTION,
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Scan groups on N threads."),
    target_time: Optional[float] = typer.Option(
        None,
        "--target-time",
        help="Target measurement time in seconds for the sampling check.",
    ),
    tolerance: Optional[float] = typer.Option(
        None,
        "--tolerance",
        help="Relative per-entry change still reported as stable (e.g. 0.1).",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Render one chart per benchmark group plus a narrative summary."""
    _configure_logging(verbose)
    settings = _settings_or_exit(
        config,
        workers=workers,
        target_time_s=target_time,
        trend_tolerance=tolerance,
    )
    try:
        result = run_pipeline(root, output_dir, settings)
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)

    _echo_advisories(result.advisories)
    render = result.render
    if render is not None and render.message:
        typer.echo(render.message)
    elif render is not None:
        for chart in render.charts:
            typer.echo(f"- {chart.group}: {chart.path}")
    if render is not None and render.summary_path is not None:
        typer.echo(f"Summary written to {render.summary_path}")
    raise typer.Exit(result.exit_code)


@app.command()
def summary(
    root: Path = ROOT_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Print the narrative summary without writing any artifacts."""
    _configure_logging(verbose)
    settings = _settings_or_exit(config)
    try:
        result = run_pipeline(root, None, settings)
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)
    typer.echo(build_narrative(result.suite, result.scaling, result.advisories))


@app.command("list-results")
def list_results(
    root: Path = ROOT_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """List aggregated results, one line per group/parameter."""
    _configure_logging(verbose)
    settings = _settings_or_exit(config)
    try:
        collected = collect(root, settings)
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(EXIT_CONFIG_ERROR)
    scaling = analyze(collected.suite, settings)
    _echo_advisories(collected.advisories + scaling.advisories)
    if collected.suite.is_empty():
        typer.echo("No results found.")
        return
    for record in collected.suite.records():
        typer.echo(f"- {record.group}/{record.parameter}: {format_duration(record.point_estimate_ns)}")


def app_main():
    app()

if __name__ == "__main__":
    app_main()

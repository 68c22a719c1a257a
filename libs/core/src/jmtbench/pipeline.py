"""Reader -> Aggregator -> Analyzer -> Renderer, with exit codes for the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
import pathlib
from typing import List, Optional

from .aggregate import Aggregation, aggregate, merge_batches
from .interfaces import FileTree
from .metrics import ADVISORY_NOT_FOUND, Advisory, AggregatedSuite, ScalingReport
from .report import RenderOutcome, render_report
from .scaling import analyze
from .settings import ReportSettings
from .store import (
    NO_DATA_MESSAGE,
    InvalidResultRoot,
    ResultStoreNotFound,
    iter_results,
    scan_parallel,
)

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_CONFIG_ERROR = 2

DEFAULT_ROOT = pathlib.Path("target") / "criterion"
DEFAULT_OUTPUT_DIR = pathlib.Path("target") / "jmt-report"


class ConfigurationError(RuntimeError):
    """Setup problem that stops the whole pipeline (bad root, unwritable output)."""


@dataclass
class PipelineResult:
    suite: AggregatedSuite
    scaling: ScalingReport
    render: Optional[RenderOutcome]
    advisories: List[Advisory] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        if self.render is not None and self.render.failed:
            return EXIT_PARTIAL_FAILURE
        return EXIT_OK


def prepare_output_dir(output_dir: str | os.PathLike[str]) -> pathlib.Path:
    path = pathlib.Path(output_dir)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(f"Cannot create output directory {path}: {exc}") from exc
    if not os.access(path, os.W_OK | os.X_OK):
        raise ConfigurationError(f"Output directory is not writable: {path}")
    return path


def collect(
    root: str | os.PathLike[str],
    settings: ReportSettings | None = None,
    *,
    tree: FileTree | None = None,
) -> Aggregation:
    """Run the reader and aggregator; a missing root yields an empty suite."""
    settings = settings or ReportSettings()
    reader_advisories: List[Advisory] = []
    try:
        if settings.workers > 1:
            batches = scan_parallel(root, workers=settings.workers, tree=tree, settings=settings)
            return merge_batches(batches)
        records = iter_results(root, tree=tree, settings=settings, advisories=reader_advisories)
        result = aggregate(records)
    except ResultStoreNotFound as exc:
        log.warning("%s", exc)
        advisory = Advisory(kind=ADVISORY_NOT_FOUND, group=None, reason=NO_DATA_MESSAGE)
        return Aggregation(suite=AggregatedSuite(), advisories=[advisory])
    except InvalidResultRoot as exc:
        raise ConfigurationError(str(exc)) from exc
    return Aggregation(suite=result.suite, advisories=reader_advisories + result.advisories)


def run_pipeline(
    root: str | os.PathLike[str] = DEFAULT_ROOT,
    output_dir: str | os.PathLike[str] | None = DEFAULT_OUTPUT_DIR,
    settings: ReportSettings | None = None,
    *,
    tree: FileTree | None = None,
) -> PipelineResult:
    """Build the suite from ``root`` and render it into ``output_dir``.

    With ``output_dir=None`` nothing is written and ``render`` is None.
    """
    settings = settings or ReportSettings()
    target = prepare_output_dir(output_dir) if output_dir is not None else None

    collected = collect(root, settings, tree=tree)
    scaling = analyze(collected.suite, settings)
    advisories = collected.advisories + scaling.advisories

    render = None
    if target is not None:
        render = render_report(collected.suite, scaling, target, settings, advisories)
        advisories = advisories + render.advisories
    log.info(
        "Processed %d results in %d groups with %d advisories",
        len(collected.suite),
        len(collected.suite.groups),
        len(advisories),
    )
    return PipelineResult(
        suite=collected.suite,
        scaling=scaling,
        render=render,
        advisories=advisories,
    )

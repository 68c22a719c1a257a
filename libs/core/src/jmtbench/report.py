"""Bar charts and a Markdown narrative for an aggregated benchmark suite."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
import logging
import math
import pathlib
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from .metrics import (  # noqa: E402
    ADVISORY_WRITE_FAILURE,
    Advisory,
    AggregatedSuite,
    GroupScaling,
    ResultRecord,
    ScalingReport,
)
from .scaling import parameter_size  # noqa: E402
from .settings import ReportSettings  # noqa: E402

log = logging.getLogger(__name__)

NO_DATA_TO_VISUALIZE = "no data to visualize"
SUMMARY_FILENAME = "summary.md"

TIME_UNITS: Sequence[Tuple[str, float]] = (
    ("ns", 1.0),
    ("µs", 1e3),
    ("ms", 1e6),
    ("s", 1e9),
)

plt.style.use("seaborn-v0_8-colorblind")
plt.rcParams.update(
    {
        "axes.titlesize": 12,
        "axes.labelsize": 11,
        "axes.grid": True,
        "grid.alpha": 0.35,
        "grid.linestyle": "--",
        "legend.frameon": False,
        "xtick.labelsize": 9,
        "ytick.labelsize": 9,
    }
)


@dataclass(frozen=True)
class BarSpec:
    parameter: str
    value: float
    label: str


@dataclass
class ChartArtifact:
    group: str
    path: pathlib.Path
    unit: str
    bars: List[BarSpec]


@dataclass
class RenderOutcome:
    charts: List[ChartArtifact] = field(default_factory=list)
    summary_path: Optional[pathlib.Path] = None
    message: Optional[str] = None
    advisories: List[Advisory] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return any(adv.kind == ADVISORY_WRITE_FAILURE for adv in self.advisories)


def choose_time_unit(max_ns: float) -> Tuple[str, float]:
    """Largest unit that keeps ``max_ns`` at or above 1."""
    if not math.isfinite(max_ns) or max_ns <= 0:
        return TIME_UNITS[0]
    for unit, divisor in reversed(TIME_UNITS):
        if max_ns >= divisor:
            return unit, divisor
    return TIME_UNITS[0]


def _round2(value: float) -> str:
    return str(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_duration(value_ns: float, unit: str | None = None) -> str:
    """Render nanoseconds with two decimals, e.g. ``17885`` -> ``17.89µs``."""
    if unit is None:
        unit, divisor = choose_time_unit(value_ns)
    else:
        divisor = dict(TIME_UNITS)[unit]
    return f"{_round2(value_ns / divisor)}{unit}"


def _parameter_order(parameter: str) -> Tuple[bool, int, str]:
    size = parameter_size(parameter)
    return (size is None, size or 0, parameter)


def chart_filename(group: str, chart_format: str = "png") -> str:
    safe_name = group.strip().replace("/", "-").replace("\\", "-").replace(" ", "_")
    return f"{safe_name}_visualization.{chart_format}"


def _unique_chart_filename(group: str, chart_format: str, taken: set[str]) -> str:
    """Suffix ``_2``, ``_3``... when another group already sanitised to the same name."""
    name = chart_filename(group, chart_format)
    stem = name[: -len(f"_visualization.{chart_format}")]
    suffix = 2
    while name.lower() in taken:
        name = f"{stem}_{suffix}_visualization.{chart_format}"
        suffix += 1
    taken.add(name.lower())
    return name


def chart_bars(records: Mapping[str, ResultRecord]) -> Tuple[str, List[BarSpec]]:
    ordered = sorted(records, key=_parameter_order)
    max_ns = max((records[p].point_estimate_ns for p in ordered), default=0.0)
    unit, divisor = choose_time_unit(max_ns)
    bars = [
        BarSpec(
            parameter=parameter,
            value=records[parameter].point_estimate_ns / divisor,
            label=format_duration(records[parameter].point_estimate_ns, unit),
        )
        for parameter in ordered
    ]
    return unit, bars


def _save_figure(fig: plt.Figure, outfile: pathlib.Path, dpi: int) -> None:
    try:
        fig.tight_layout()
        fig.savefig(outfile, dpi=dpi)
    finally:
        plt.close(fig)


def render_group_chart(
    group: str,
    records: Mapping[str, ResultRecord],
    output_dir: pathlib.Path,
    settings: ReportSettings | None = None,
    filename: str | None = None,
) -> ChartArtifact:
    settings = settings or ReportSettings()
    unit, bars = chart_bars(records)
    labels = [bar.parameter for bar in bars]
    values = [bar.value for bar in bars]

    fig, ax = plt.subplots(figsize=(max(5.0, 1.2 * len(bars) + 2.0), 5))
    drawn = ax.bar(labels, values, color="#1f77b4")
    ax.set_title(group)
    ax.set_xlabel("Parameter")
    ax.set_ylabel(f"Mean time ({unit})")
    ax.grid(True, axis="y", linestyle="--", alpha=0.3)
    ymax = max(values) if values else 1.0
    ax.set_ylim(0, ymax * 1.18 or 1.0)
    for rect, bar in zip(drawn, bars):
        ax.text(
            rect.get_x() + rect.get_width() / 2.0,
            rect.get_height(),
            bar.label,
            ha="center",
            va="bottom",
            fontsize=9,
        )

    outfile = output_dir / (filename or chart_filename(group, settings.chart_format))
    _save_figure(fig, outfile, settings.dpi)
    log.info("Wrote %s", outfile)
    return ChartArtifact(group=group, path=outfile, unit=unit, bars=bars)


def _interval(record: ResultRecord) -> str:
    if record.confidence_low_ns is None or record.confidence_high_ns is None:
        return "n/a"
    return f"{format_duration(record.confidence_low_ns)} .. {format_duration(record.confidence_high_ns)}"


def _trend_line(scaling: GroupScaling) -> str:
    if scaling.trend is None:
        return "Per-entry cost trend: not enough numeric parameters to compare."
    first, last = scaling.points[0], scaling.points[-1]
    change = scaling.relative_change or 0.0
    change_text = "n/a" if math.isinf(change) else f"{change * 100:+.1f}%"
    return (
        f"Per-entry cost trend: **{scaling.trend}** "
        f"({format_duration(first.per_entry_ns)} per entry at {first.parameter}, "
        f"{format_duration(last.per_entry_ns)} per entry at {last.parameter}, {change_text})"
    )


def _outlier_lines(scaling: GroupScaling) -> List[str]:
    lines = []
    for parameter in sorted(scaling.outliers, key=_parameter_order):
        counts = scaling.outliers[parameter]
        if not counts.total:
            continue
        lines.append(
            f"- {parameter}: {counts.mild_high} mild high, {counts.severe_high} severe high, "
            f"{counts.mild_low} mild low, {counts.severe_low} severe low"
        )
    return lines


def build_narrative(
    suite: AggregatedSuite,
    scaling: ScalingReport,
    advisories: Iterable[Advisory] = (),
    charts: Mapping[str, ChartArtifact] | None = None,
) -> str:
    """Markdown summary: per-parameter values, per-entry trend, outliers and advisories.

    Advisories are reproduced with ``Advisory.render()`` so the text matches
    what the CLI prints.
    """
    charts = charts or {}
    by_group: Dict[str, List[Advisory]] = {}
    general: List[Advisory] = []
    for advisory in advisories:
        if advisory.group and advisory.group in suite.groups:
            by_group.setdefault(advisory.group, []).append(advisory)
        else:
            general.append(advisory)

    lines = ["# Benchmark summary", ""]
    if suite.is_empty():
        lines.append(NO_DATA_TO_VISUALIZE)
        lines.append("")
    for advisory in general:
        lines.append(f"- {advisory.render()}")
    if general:
        lines.append("")

    for group in suite.group_names():
        records = suite.groups[group]
        group_scaling = scaling.for_group(group) or GroupScaling(group=group)
        per_entry = {point.parameter: point.per_entry_ns for point in group_scaling.points}
        lines.append(f"## {group}")
        lines.append("")
        chart = charts.get(group)
        if chart is not None:
            lines.append(f"![{group}]({chart.path.name})")
            lines.append("")
        lines.append("| Parameter | Mean | Confidence interval | Per entry |")
        lines.append("| --- | --- | --- | --- |")
        for parameter in sorted(records, key=_parameter_order):
            record = records[parameter]
            cost = per_entry.get(parameter)
            lines.append(
                f"| {parameter} | {format_duration(record.point_estimate_ns)} | {_interval(record)} | "
                f"{format_duration(cost) if cost is not None else 'n/a'} |"
            )
        lines.append("")
        lines.append(_trend_line(group_scaling))
        lines.append("")
        outliers = _outlier_lines(group_scaling)
        if outliers:
            lines.append("Outliers reported by the estimator:")
            lines.extend(outliers)
            lines.append("")
        notes = by_group.get(group, [])
        if notes:
            lines.append("Warnings:")
            lines.extend(f"- {advisory.render()}" for advisory in notes)
            lines.append("")
    return "\n".join(lines)


def _write_summary(output_dir: pathlib.Path, text: str, outcome: RenderOutcome) -> None:
    path = output_dir / SUMMARY_FILENAME
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        log.error("Failed to write %s: %s", path, exc)
        outcome.advisories.append(
            Advisory(kind=ADVISORY_WRITE_FAILURE, reason=f"cannot write {path}: {exc}")
        )
        return
    outcome.summary_path = path


def render_report(
    suite: AggregatedSuite,
    scaling: ScalingReport,
    output_dir: pathlib.Path,
    settings: ReportSettings | None = None,
    advisories: Sequence[Advisory] = (),
) -> RenderOutcome:
    """Write one chart per group plus ``summary.md``; never touches the result store."""
    settings = settings or ReportSettings()
    output_dir = pathlib.Path(output_dir)
    outcome = RenderOutcome()

    if suite.is_empty():
        log.info("Nothing to render: %s", NO_DATA_TO_VISUALIZE)
        outcome.message = NO_DATA_TO_VISUALIZE
        _write_summary(output_dir, build_narrative(suite, scaling, advisories), outcome)
        return outcome

    charts: Dict[str, ChartArtifact] = {}
    taken: set[str] = set()
    for group in suite.group_names():
        filename = _unique_chart_filename(group, settings.chart_format, taken)
        if filename != chart_filename(group, settings.chart_format):
            log.warning("Chart name for %s collides with another group; writing %s", group, filename)
        try:
            chart = render_group_chart(group, suite.groups[group], output_dir, settings, filename)
        except OSError as exc:
            log.error("Failed to write chart for %s: %s", group, exc)
            outcome.advisories.append(
                Advisory(
                    kind=ADVISORY_WRITE_FAILURE,
                    group=group,
                    reason=f"cannot write chart: {exc}",
                )
            )
            continue
        charts[group] = chart
        outcome.charts.append(chart)

    narrative = build_narrative(
        suite,
        scaling,
        list(advisories) + outcome.advisories,
        charts,
    )
    _write_summary(output_dir, narrative, outcome)
    return outcome

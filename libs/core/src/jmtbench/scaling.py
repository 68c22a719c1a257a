"""Per-entry scaling, trend classification and sampling advisories."""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from .metrics import (
    ADVISORY_INSUFFICIENT_SAMPLES,
    Advisory,
    AggregatedSuite,
    GroupScaling,
    ResultRecord,
    ScalingPoint,
    ScalingReport,
)
from .settings import ReportSettings

log = logging.getLogger(__name__)

TREND_STABLE = "stable"
TREND_SUPERLINEAR = "superlinear"
TREND_SUBLINEAR = "sublinear"

INSUFFICIENT_REASON = "insufficient sample duration"

_SIZE_RE = re.compile(r"^[0-9]+$")


def parameter_size(parameter: str) -> int | None:
    """Return the parameter as a positive integer, or None."""
    if not _SIZE_RE.match(parameter):
        return None
    value = int(parameter)
    return value if value > 0 else None


def per_entry_cost(total_ns: float, parameter: str) -> float | None:
    size = parameter_size(parameter)
    if size is None:
        return None
    return total_ns / size


def classify_trend(first: float, last: float, tolerance: float) -> tuple[str, float]:
    """Compare per-entry cost at the smallest and largest parameter."""
    if first <= 0:
        if last <= 0:
            return TREND_STABLE, 0.0
        return TREND_SUPERLINEAR, float("inf")
    change = (last - first) / first
    if abs(change) <= tolerance:
        return TREND_STABLE, change
    if change > 0:
        return TREND_SUPERLINEAR, change
    return TREND_SUBLINEAR, change


def implied_duration_ns(record: ResultRecord) -> float | None:
    if record.measured_ns is not None:
        return record.measured_ns
    if record.iteration_count is not None:
        return record.point_estimate_ns * record.iteration_count
    if record.sample_count is not None:
        return record.point_estimate_ns * record.sample_count
    return None


def check_sampling(record: ResultRecord, settings: ReportSettings) -> Optional[Advisory]:
    """Flag records whose samples cover less than the target measurement time.

    Only records that report a sample count are checked. The threshold is
    ``target_time_ns * (1 - duration_slack)``.
    """
    if record.sample_count is None:
        return None
    implied = implied_duration_ns(record)
    if implied is None or implied >= settings.min_duration_ns:
        return None
    target_s = settings.target_time_ns / 1e9
    suggestion = (
        f"sampled {implied / 1e9:.3f}s of {target_s:.1f}s over {record.sample_count} samples; "
        f"increase measurement time to at least {target_s:.1f}s, enable flat sampling, "
        "or reduce sample count"
    )
    return Advisory(
        kind=ADVISORY_INSUFFICIENT_SAMPLES,
        group=record.group,
        parameter=record.parameter,
        reason=INSUFFICIENT_REASON,
        suggestion=suggestion,
    )


def analyze_group(group: str, records: List[ResultRecord], settings: ReportSettings) -> tuple[GroupScaling, List[Advisory]]:
    scaling = GroupScaling(group=group)
    advisories: List[Advisory] = []
    for record in records:
        size = parameter_size(record.parameter)
        if size is None:
            scaling.raw.append((record.parameter, record.point_estimate_ns))
        else:
            scaling.points.append(
                ScalingPoint(
                    parameter=record.parameter,
                    size=size,
                    total_ns=record.point_estimate_ns,
                    per_entry_ns=record.point_estimate_ns / size,
                )
            )
        if record.outliers is not None:
            scaling.outliers[record.parameter] = record.outliers
    scaling.points.sort(key=lambda point: point.size)
    scaling.raw.sort(key=lambda item: item[0])

    if len(scaling.points) >= 2:
        first = scaling.points[0].per_entry_ns
        last = scaling.points[-1].per_entry_ns
        scaling.trend, scaling.relative_change = classify_trend(first, last, settings.trend_tolerance)

    ordered = [point.parameter for point in scaling.points] + [name for name, _ in scaling.raw]
    by_parameter = {record.parameter: record for record in records}
    for parameter in ordered:
        advisory = check_sampling(by_parameter[parameter], settings)
        if advisory is not None:
            log.warning("%s", advisory.render())
            advisories.append(advisory)
    return scaling, advisories


def analyze(suite: AggregatedSuite, settings: ReportSettings | None = None) -> ScalingReport:
    settings = settings or ReportSettings()
    report = ScalingReport()
    for group in suite.group_names():
        records = list(suite.groups[group].values())
        scaling, advisories = analyze_group(group, records, settings)
        report.groups[group] = scaling
        report.advisories.extend(advisories)
    return report

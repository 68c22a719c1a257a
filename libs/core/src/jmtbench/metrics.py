from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

"""Result containers shared by the reader, aggregator, analyzer and renderer.

Every stage hands the next one immutable values: records and advisories are
frozen dataclasses and the aggregated suite is exposed through read-only
mappings.
"""

ADVISORY_NOT_FOUND = "not_found"
ADVISORY_PARSE_ERROR = "parse_error"
ADVISORY_DUPLICATE_KEY = "duplicate_key"
ADVISORY_INSUFFICIENT_SAMPLES = "insufficient_samples"
ADVISORY_WRITE_FAILURE = "write_failure"


@dataclass(frozen=True)
class OutlierCounts:
    mild_high: int = 0
    severe_high: int = 0
    mild_low: int = 0
    severe_low: int = 0

    @property
    def total(self) -> int:
        return self.mild_high + self.severe_high + self.mild_low + self.severe_low


@dataclass(frozen=True)
class ResultRecord:
    group: str
    parameter: str
    point_estimate_ns: float
    confidence_low_ns: float | None = None
    confidence_high_ns: float | None = None
    sample_count: int | None = None
    iteration_count: int | None = None
    measured_ns: float | None = None
    outliers: OutlierCounts | None = None
    function: str | None = None  # e.g. 'insert' in jmt_insert/insert/10
    source: str | None = None

    @property
    def key(self) -> Tuple[str, str]:
        return self.group, self.parameter


@dataclass(frozen=True)
class Advisory:
    """A non-fatal problem noticed by one of the pipeline stages."""

    kind: str
    reason: str
    group: str | None = None
    parameter: str | None = None
    suggestion: str | None = None

    @property
    def subject(self) -> str:
        if self.group and self.parameter:
            return f"{self.group}/{self.parameter}"
        return self.group or self.parameter or "-"

    def render(self) -> str:
        text = f"[{self.kind}] {self.subject}: {self.reason}"
        if self.suggestion:
            text += f" ({self.suggestion})"
        return text


class AggregatedSuite:
    """Read-only view of group -> parameter -> record."""

    def __init__(self, groups: Mapping[str, Mapping[str, ResultRecord]] | None = None) -> None:
        frozen = {
            name: MappingProxyType(dict(params))
            for name, params in (groups or {}).items()
            if params
        }
        self._groups: Mapping[str, Mapping[str, ResultRecord]] = MappingProxyType(frozen)

    @property
    def groups(self) -> Mapping[str, Mapping[str, ResultRecord]]:
        return self._groups

    def get(self, group: str, parameter: str) -> Optional[ResultRecord]:
        params = self._groups.get(group)
        if params is None:
            return None
        return params.get(parameter)

    def group_names(self) -> List[str]:
        return sorted(self._groups)

    def records(self) -> Iterator[ResultRecord]:
        for name in self.group_names():
            params = self._groups[name]
            for parameter in sorted(params):
                yield params[parameter]

    def is_empty(self) -> bool:
        return not self._groups

    def to_dict(self) -> Dict[str, Dict[str, ResultRecord]]:
        return {name: dict(params) for name, params in self._groups.items()}

    def __len__(self) -> int:
        return sum(len(params) for params in self._groups.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AggregatedSuite):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"AggregatedSuite(groups={self.group_names()!r}, records={len(self)})"


@dataclass(frozen=True)
class ScalingPoint:
    parameter: str
    size: int
    total_ns: float
    per_entry_ns: float


@dataclass
class GroupScaling:
    group: str
    points: List[ScalingPoint] = field(default_factory=list)
    raw: List[Tuple[str, float]] = field(default_factory=list)
    outliers: Dict[str, OutlierCounts] = field(default_factory=dict)
    trend: str | None = None
    relative_change: float | None = None


@dataclass
class ScalingReport:
    groups: Dict[str, GroupScaling] = field(default_factory=dict)
    advisories: List[Advisory] = field(default_factory=list)

    def for_group(self, group: str) -> Optional[GroupScaling]:
        return self.groups.get(group)

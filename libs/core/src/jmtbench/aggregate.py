"""Fold reader output into an AggregatedSuite keyed by group and parameter."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
import logging
from typing import Dict, Iterable, List, Sequence

from .metrics import ADVISORY_DUPLICATE_KEY, Advisory, AggregatedSuite, ResultRecord
from .store import ScanBatch

log = logging.getLogger(__name__)


@dataclass
class Aggregation:
    suite: AggregatedSuite
    advisories: List[Advisory] = field(default_factory=list)


def _duplicate(previous: ResultRecord, record: ResultRecord) -> Advisory:
    where = f" (was {previous.source})" if previous.source else ""
    return Advisory(
        kind=ADVISORY_DUPLICATE_KEY,
        group=record.group,
        parameter=record.parameter,
        reason=f"duplicate entry overwritten{where}",
    )


def aggregate(records: Iterable[ResultRecord]) -> Aggregation:
    """Last write wins per (group, parameter); each overwrite adds one advisory."""
    grouped: Dict[str, Dict[str, ResultRecord]] = defaultdict(dict)
    advisories: List[Advisory] = []
    for record in records:
        params = grouped[record.group]
        previous = params.get(record.parameter)
        if previous is not None:
            log.warning(
                "Duplicate result for %s/%s; keeping %s",
                record.group,
                record.parameter,
                record.source or "latest record",
            )
            advisories.append(_duplicate(previous, record))
        params[record.parameter] = record
    return Aggregation(suite=AggregatedSuite(grouped), advisories=advisories)


def merge_batches(batches: Sequence[ScanBatch]) -> Aggregation:
    """Merge per-worker batches; reader advisories come first, then collisions."""
    reader_advisories = [adv for batch in batches for adv in batch.advisories]
    merged = aggregate(record for batch in batches for record in batch.records)
    return Aggregation(suite=merged.suite, advisories=reader_advisories + merged.advisories)

"""Result store reader: walks ``<root>/<group>/[<function>/]<parameter>/[<label>/]estimates.*``."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
import json
import logging
import math
import os
import pathlib
import re
from pathlib import PurePath, PurePosixPath
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import yaml

from .interfaces import FileTree
from .metrics import ADVISORY_PARSE_ERROR, Advisory, OutlierCounts, ResultRecord
from .settings import ESTIMATE_FILENAMES, KNOWN_LABELS, SAMPLE_FILENAME, ReportSettings

log = logging.getLogger(__name__)

NO_DATA_MESSAGE = "no benchmark data; run benchmarks first"

# group/param/estimates.json up to group/function/param/label/estimates.json
_MIN_PARTS = 3
_MAX_PARTS = 5
_OUTLIER_FIELDS = ("mild_high", "severe_high", "mild_low", "severe_low")


class ResultStoreNotFound(FileNotFoundError):
    def __init__(self, root: PurePath) -> None:
        super().__init__(f"{NO_DATA_MESSAGE} ({root} does not exist)")
        self.root = root


class InvalidResultRoot(ValueError):
    pass


class InvalidResultPath(ValueError):
    pass


class EstimateParseError(ValueError):
    pass


class LocalFileTree:
    """FileTree backed by the real filesystem."""

    def exists(self, path: PurePath) -> bool:
        return pathlib.Path(path).exists()

    def is_dir(self, path: PurePath) -> bool:
        return pathlib.Path(path).is_dir()

    def list_dir(self, path: PurePath) -> List[str]:
        return sorted(os.listdir(path))

    def read_text(self, path: PurePath) -> str:
        return pathlib.Path(path).read_text(encoding="utf-8")


class MemoryFileTree:
    """FileTree over an in-memory ``{path: text}`` mapping.

    Directories are implied by file paths; ``dirs`` adds empty directories.
    """

    def __init__(self, files: Mapping[str, str] | None = None, dirs: Iterable[str] = ()) -> None:
        self._files: Dict[PurePosixPath, str] = {
            PurePosixPath(name): text for name, text in (files or {}).items()
        }
        self._dirs = set()
        for name in dirs:
            self._add_dir(PurePosixPath(name))
        for file_path in self._files:
            self._add_dir(file_path.parent)

    def _add_dir(self, path: PurePosixPath) -> None:
        self._dirs.add(path)
        self._dirs.update(path.parents)

    @staticmethod
    def _norm(path: PurePath) -> PurePosixPath:
        return PurePosixPath(path.as_posix())

    def exists(self, path: PurePath) -> bool:
        norm = self._norm(path)
        return norm in self._files or norm in self._dirs

    def is_dir(self, path: PurePath) -> bool:
        return self._norm(path) in self._dirs

    def list_dir(self, path: PurePath) -> List[str]:
        norm = self._norm(path)
        if norm not in self._dirs:
            raise NotADirectoryError(str(path))
        children = {p.name for p in self._files if p.parent == norm}
        children.update(d.name for d in self._dirs if d.parent == norm and d != norm)
        return sorted(children)

    def read_text(self, path: PurePath) -> str:
        try:
            return self._files[self._norm(path)]
        except KeyError:
            raise FileNotFoundError(str(path)) from None


@dataclass(frozen=True)
class ResultPath:
    group: str
    parameter: str
    filename: str
    function: str | None = None
    label: str | None = None


def _check_name(name: str, excluded: Sequence[str]) -> None:
    if not name or not name.strip():
        raise InvalidResultPath("empty path component")
    if name.startswith("."):
        raise InvalidResultPath(f"hidden component {name!r}")
    if name in excluded:
        raise InvalidResultPath(f"excluded directory {name!r}")


def parse_result_path(parts: Sequence[str], settings: ReportSettings | None = None) -> ResultPath:
    """Map the path components below the root onto (group, parameter, ...).

    Raises ``InvalidResultPath`` for anything that is not an estimate file of
    the configured label.
    """
    settings = settings or ReportSettings()
    if not _MIN_PARTS <= len(parts) <= _MAX_PARTS:
        raise InvalidResultPath(f"unexpected depth {len(parts)}")
    filename = parts[-1]
    if filename not in ESTIMATE_FILENAMES:
        raise InvalidResultPath(f"not an estimates file: {filename!r}")
    dirs = list(parts[:-1])
    for name in dirs:
        _check_name(name, settings.excluded_dirs)

    label: str | None = None
    if dirs[-1] in KNOWN_LABELS:
        label = dirs.pop()
        if label != settings.label:
            raise InvalidResultPath(f"label {label!r} is not {settings.label!r}")
    if len(dirs) == 2:
        group, parameter = dirs
        function = None
    elif len(dirs) == 3:
        group, function, parameter = dirs
    else:
        raise InvalidResultPath(f"expected group/[function/]parameter, got {'/'.join(dirs)!r}")
    return ResultPath(
        group=group,
        parameter=parameter,
        filename=filename,
        function=function,
        label=label,
    )


def _number(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    val = float(value)
    if not math.isfinite(val):
        return None
    return val


def _count(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


class _EstimateLoader(yaml.SafeLoader):
    """SafeLoader that also reads ``1e5``-style exponents (no dot) as floats."""


_EstimateLoader.add_implicit_resolver(
    "tag:yaml.org,2002:float",
    re.compile(r"^[-+]?[0-9][0-9_]*(?:\.[0-9_]*)?[eE][-+]?[0-9]+$"),
    list("-+0123456789"),
)


def _load_mapping(text: str, filename: str) -> Mapping[str, object]:
    try:
        if filename.endswith((".yaml", ".yml")):
            data = yaml.load(text, Loader=_EstimateLoader)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise EstimateParseError(f"malformed {filename}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise EstimateParseError(f"{filename} does not contain a mapping")
    return data


def _parse_outliers(raw: object) -> OutlierCounts | None:
    if not isinstance(raw, Mapping):
        return None
    counts = {}
    for name in _OUTLIER_FIELDS:
        value = _count(raw.get(name, 0))
        if value is None:
            return None
        counts[name] = value
    return OutlierCounts(**counts)


def parse_estimates(text: str, location: ResultPath, *, source: str | None = None) -> ResultRecord:
    data = _load_mapping(text, location.filename)
    mean = data.get("mean")
    if not isinstance(mean, Mapping) or "point_estimate" not in mean:
        raise EstimateParseError("missing mean point estimate")
    point = _number(mean.get("point_estimate"))
    if point is None or point < 0:
        raise EstimateParseError(f"invalid mean point estimate: {mean.get('point_estimate')!r}")

    low = high = None
    interval = mean.get("confidence_interval")
    if isinstance(interval, Mapping):
        low = _number(interval.get("lower_bound"))
        high = _number(interval.get("upper_bound"))

    return ResultRecord(
        group=location.group,
        parameter=location.parameter,
        point_estimate_ns=point,
        confidence_low_ns=low,
        confidence_high_ns=high,
        sample_count=_count(data.get("sample_count")),
        outliers=_parse_outliers(data.get("outliers")),
        function=location.function,
        source=source,
    )


def parse_samples(text: str) -> Tuple[int, int, float] | None:
    """Return (sample_count, iteration_count, measured_ns) from a sample file."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, Mapping):
        return None
    iters = data.get("iters")
    times = data.get("times")
    if not isinstance(iters, list) or not isinstance(times, list) or len(iters) != len(times):
        return None
    iter_values = [_number(v) for v in iters]
    time_values = [_number(v) for v in times]
    if any(v is None for v in iter_values) or any(v is None for v in time_values):
        return None
    return len(iters), int(sum(iter_values)), float(sum(time_values))  # type: ignore[arg-type]


def _with_samples(record: ResultRecord, tree: FileTree, directory: PurePath) -> ResultRecord:
    sample_path = directory / SAMPLE_FILENAME
    if not tree.exists(sample_path):
        return record
    try:
        parsed = parse_samples(tree.read_text(sample_path))
    except (OSError, UnicodeDecodeError) as exc:
        log.debug("Ignoring unreadable sample file %s: %s", sample_path, exc)
        return record
    if parsed is None:
        log.debug("Ignoring malformed sample file %s", sample_path)
        return record
    sample_count, iteration_count, measured_ns = parsed
    return replace(
        record,
        sample_count=record.sample_count if record.sample_count is not None else sample_count,
        iteration_count=iteration_count,
        measured_ns=measured_ns,
    )


def _walk_group(
    tree: FileTree,
    root: PurePath,
    group: str,
    settings: ReportSettings,
    advisories: List[Advisory],
) -> Iterator[ResultRecord]:
    stack: List[Tuple[str, ...]] = [(group,)]
    while stack:
        parts = stack.pop()
        directory = root.joinpath(*parts)
        try:
            names = tree.list_dir(directory)
        except OSError as exc:
            log.warning("Cannot list %s: %s", directory, exc)
            continue
        subdirs: List[Tuple[str, ...]] = []
        for name in names:
            child = parts + (name,)
            path = directory / name
            if tree.is_dir(path):
                # leave room for the estimates file below the deepest directory
                if len(child) < _MAX_PARTS and name not in settings.excluded_dirs:
                    subdirs.append(child)
                continue
            if name not in ESTIMATE_FILENAMES:
                continue
            try:
                location = parse_result_path(child, settings)
            except InvalidResultPath as exc:
                log.debug("Skipping %s: %s", path, exc)
                continue
            try:
                record = parse_estimates(tree.read_text(path), location, source=str(path))
            except (EstimateParseError, OSError, UnicodeDecodeError) as exc:
                log.warning("Skipping estimates %s: %s", path, exc)
                advisories.append(
                    Advisory(
                        kind=ADVISORY_PARSE_ERROR,
                        group=location.group,
                        parameter=location.parameter,
                        reason=f"unreadable estimates file {path}: {exc}",
                    )
                )
                continue
            yield _with_samples(record, tree, directory)
        stack.extend(reversed(subdirs))


def _check_root(tree: FileTree, root: PurePath) -> None:
    if not tree.exists(root):
        raise ResultStoreNotFound(root)
    if not tree.is_dir(root):
        raise InvalidResultRoot(f"Result store root is not a directory: {root}")


def group_names(
    root: str | os.PathLike[str],
    *,
    tree: FileTree | None = None,
    settings: ReportSettings | None = None,
) -> List[str]:
    tree = tree or LocalFileTree()
    settings = settings or ReportSettings()
    root_path = PurePath(root)
    _check_root(tree, root_path)
    out = []
    for name in tree.list_dir(root_path):
        try:
            _check_name(name, settings.excluded_dirs)
        except InvalidResultPath:
            continue
        if tree.is_dir(root_path / name):
            out.append(name)
    return out


def iter_results(
    root: str | os.PathLike[str],
    *,
    tree: FileTree | None = None,
    settings: ReportSettings | None = None,
    advisories: Optional[List[Advisory]] = None,
) -> Iterator[ResultRecord]:
    """Lazily yield one record per estimates file below ``root``.

    The root is checked eagerly so a missing store raises
    ``ResultStoreNotFound`` here rather than on first iteration. Skipped files
    are reported through ``advisories`` as they are encountered.
    """
    tree = tree or LocalFileTree()
    settings = settings or ReportSettings()
    sink = advisories if advisories is not None else []
    names = group_names(root, tree=tree, settings=settings)
    root_path = PurePath(root)

    def _generate() -> Iterator[ResultRecord]:
        for group in names:
            yield from _walk_group(tree, root_path, group, settings, sink)

    return _generate()


@dataclass
class ScanBatch:
    group: str
    records: List[ResultRecord]
    advisories: List[Advisory]


def scan_parallel(
    root: str | os.PathLike[str],
    *,
    workers: int = 4,
    tree: FileTree | None = None,
    settings: ReportSettings | None = None,
) -> List[ScanBatch]:
    """Scan each group on a worker thread; batches come back in group order."""
    tree = tree or LocalFileTree()
    settings = settings or ReportSettings()
    names = group_names(root, tree=tree, settings=settings)
    root_path = PurePath(root)

    def _scan(group: str) -> ScanBatch:
        found: List[Advisory] = []
        records = list(_walk_group(tree, root_path, group, settings, found))
        return ScanBatch(group=group, records=records, advisories=found)

    if not names:
        return []
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        return list(pool.map(_scan, names))

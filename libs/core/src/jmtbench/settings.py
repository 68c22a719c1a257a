"""Report settings: defaults, an optional JSON/YAML file, then environment overrides."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
import json
import os
import pathlib
from typing import Any, Dict, Mapping, Tuple

import yaml

KNOWN_LABELS: Tuple[str, ...] = ("new", "base", "change")
ESTIMATE_FILENAMES: Tuple[str, ...] = ("estimates.json", "estimates.yaml", "estimates.yml")
SAMPLE_FILENAME = "sample.json"
CHART_FORMATS: Tuple[str, ...] = ("png", "svg", "pdf", "eps", "ps", "jpg", "jpeg", "tif", "tiff", "webp")


class SettingsError(ValueError):
    """Raised when an explicitly requested settings file cannot be used."""


@dataclass(frozen=True)
class ReportSettings:
    target_time_ns: float = 5e9
    duration_slack: float = 0.1
    trend_tolerance: float = 0.10
    label: str = "new"
    excluded_dirs: Tuple[str, ...] = ("report",)
    chart_format: str = "png"
    dpi: int = 200
    workers: int = 1

    @property
    def min_duration_ns(self) -> float:
        return self.target_time_ns * (1.0 - self.duration_slack)


def _try_float(value: object) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _try_int(value: object) -> int | None:
    parsed = _try_float(value)
    if parsed is None or not parsed.is_integer():
        return None
    return int(parsed)


def _split_names(raw: object) -> Tuple[str, ...] | None:
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        return None
    names = tuple(item.strip() for item in items if item.strip())
    return names or None


def _read_config_file(path: pathlib.Path) -> Mapping[str, Any]:
    if not path.exists():
        raise SettingsError(f"Settings file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() in (".yaml", ".yml"):
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise SettingsError(f"Failed to read settings file {path}: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise SettingsError(f"Settings file {path} must contain a mapping")
    return raw


def _coerce_overrides(raw: Mapping[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(ReportSettings)}
    unknown = sorted(set(raw) - known - {"target_time_s"})
    if unknown:
        raise SettingsError(f"Unknown settings: {', '.join(unknown)}")
    out: Dict[str, Any] = {}
    if "target_time_s" in raw:
        seconds = _try_float(raw["target_time_s"])
        if seconds is None or seconds <= 0:
            raise SettingsError("target_time_s must be a positive number")
        out["target_time_ns"] = seconds * 1e9
    for key in ("target_time_ns", "duration_slack", "trend_tolerance"):
        if key in raw:
            value = _try_float(raw[key])
            if value is None or value < 0:
                raise SettingsError(f"{key} must be a non-negative number")
            out[key] = value
    for key in ("dpi", "workers"):
        if key in raw:
            value = _try_int(raw[key])
            if value is None or value < 1:
                raise SettingsError(f"{key} must be a positive integer")
            out[key] = value
    if "label" in raw:
        out["label"] = str(raw["label"]).strip()
    if "chart_format" in raw:
        out["chart_format"] = str(raw["chart_format"]).strip().lower()
    if "excluded_dirs" in raw:
        names = _split_names(raw["excluded_dirs"])
        if names is None:
            raise SettingsError("excluded_dirs must be a list of directory names")
        out["excluded_dirs"] = names
    return out


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    seconds = _try_float(env.get("JMTBENCH_TARGET_TIME_S"))
    if seconds and seconds > 0:
        out["target_time_ns"] = seconds * 1e9
    slack = _try_float(env.get("JMTBENCH_DURATION_SLACK"))
    if slack is not None and 0.0 <= slack < 1.0:
        out["duration_slack"] = slack
    tolerance = _try_float(env.get("JMTBENCH_TREND_TOLERANCE"))
    if tolerance is not None and tolerance >= 0:
        out["trend_tolerance"] = tolerance
    label = (env.get("JMTBENCH_LABEL") or "").strip()
    if label:
        out["label"] = label
    excluded = _split_names(env.get("JMTBENCH_EXCLUDED_DIRS"))
    if excluded:
        out["excluded_dirs"] = excluded
    chart_format = (env.get("JMTBENCH_CHART_FORMAT") or "").strip().lower()
    if chart_format:
        out["chart_format"] = chart_format
    dpi = _try_int(env.get("JMTBENCH_DPI"))
    if dpi and dpi > 0:
        out["dpi"] = dpi
    workers = _try_int(env.get("JMTBENCH_WORKERS"))
    if workers and workers > 0:
        out["workers"] = workers
    return out


def load_settings(
    config_path: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> ReportSettings:
    """Build settings from defaults, a config file, the environment and explicit overrides.

    Later sources win. ``overrides`` with a ``None`` value are ignored so CLI
    options that were not passed leave the lower layers untouched.
    """
    env_map = env if env is not None else os.environ
    settings = ReportSettings()
    path_value = config_path or env_map.get("JMTBENCH_CONFIG")
    if path_value:
        raw = _read_config_file(pathlib.Path(path_value))
        settings = replace(settings, **_coerce_overrides(raw))
    settings = replace(settings, **_env_overrides(env_map))
    explicit = {key: value for key, value in overrides.items() if value is not None}
    if explicit:
        settings = replace(settings, **_coerce_overrides(explicit))
    if settings.label not in KNOWN_LABELS:
        raise SettingsError(
            f"label must be one of {', '.join(KNOWN_LABELS)} (got {settings.label!r})"
        )
    if settings.chart_format not in CHART_FORMATS:
        raise SettingsError(
            f"chart_format must be one of {', '.join(CHART_FORMATS)} (got {settings.chart_format!r})"
        )
    if not 0.0 <= settings.duration_slack < 1.0:
        raise SettingsError("duration_slack must be in [0, 1)")
    return settings

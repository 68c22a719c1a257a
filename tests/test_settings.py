from __future__ import annotations

import json
import math
from pathlib import Path

import pytest

from jmtbench.settings import ReportSettings, SettingsError, load_settings


def test_defaults_without_file_or_env() -> None:
    settings = load_settings(env={})
    assert settings == ReportSettings()
    assert math.isclose(settings.min_duration_ns, 4.5e9, rel_tol=1e-9)
    assert settings.excluded_dirs == ("report",)


def test_env_overrides() -> None:
    settings = load_settings(
        env={
            "JMTBENCH_TARGET_TIME_S": "10",
            "JMTBENCH_TREND_TOLERANCE": "0.2",
            "JMTBENCH_WORKERS": "4",
            "JMTBENCH_EXCLUDED_DIRS": "report, tmp",
            "JMTBENCH_CHART_FORMAT": "svg",
        }
    )
    assert settings.target_time_ns == 10e9
    assert settings.trend_tolerance == 0.2
    assert settings.workers == 4
    assert settings.excluded_dirs == ("report", "tmp")
    assert settings.chart_format == "svg"


def test_unparseable_env_values_are_ignored() -> None:
    settings = load_settings(env={"JMTBENCH_TARGET_TIME_S": "soon", "JMTBENCH_WORKERS": "1.5"})
    assert settings.target_time_ns == ReportSettings().target_time_ns
    assert settings.workers == 1


def test_yaml_file_then_env_then_explicit(tmp_path: Path) -> None:
    config = tmp_path / "jmtbench.yaml"
    config.write_text("target_time_s: 3\ntrend_tolerance: 0.05\nworkers: 2\n", encoding="utf-8")
    settings = load_settings(config, env={"JMTBENCH_WORKERS": "3"}, trend_tolerance=0.15)
    assert settings.target_time_ns == 3e9
    assert settings.workers == 3
    assert settings.trend_tolerance == 0.15


def test_config_path_from_env(tmp_path: Path) -> None:
    config = tmp_path / "settings.json"
    config.write_text(json.dumps({"label": "base", "dpi": 120}), encoding="utf-8")
    settings = load_settings(env={"JMTBENCH_CONFIG": str(config)})
    assert settings.label == "base"
    assert settings.dpi == 120


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps(["a", "b"]),
        json.dumps({"colour": "blue"}),
        json.dumps({"workers": 0}),
        json.dumps({"label": "change-me"}),
        json.dumps({"chart_format": "xyz"}),
    ],
)
def test_bad_config_file_raises(tmp_path: Path, content: str) -> None:
    config = tmp_path / "settings.json"
    config.write_text(content, encoding="utf-8")
    with pytest.raises(SettingsError):
        load_settings(config, env={})


def test_chart_format_is_normalised_and_checked() -> None:
    assert load_settings(env={"JMTBENCH_CHART_FORMAT": " SVG "}).chart_format == "svg"
    with pytest.raises(SettingsError):
        load_settings(env={"JMTBENCH_CHART_FORMAT": "xyz"})
    with pytest.raises(SettingsError):
        load_settings(env={}, chart_format="bmp")


def test_missing_config_file_raises(tmp_path: Path) -> None:
    with pytest.raises(SettingsError):
        load_settings(tmp_path / "absent.yaml", env={})

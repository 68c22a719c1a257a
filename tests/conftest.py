from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
CLI_SRC = ROOT / "apps" / "cli" / "src"
CORE_SRC = ROOT / "libs" / "core" / "src"

for candidate in (CLI_SRC, CORE_SRC):
    candidate_str = str(candidate)
    if candidate_str not in sys.path:
        sys.path.insert(0, candidate_str)


def estimates_payload(
    mean_ns: float,
    *,
    low: Optional[float] = None,
    high: Optional[float] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Criterion-shaped estimates.json content."""
    lower = mean_ns * 0.99 if low is None else low
    upper = mean_ns * 1.01 if high is None else high
    payload: Dict[str, Any] = {
        "mean": {
            "confidence_interval": {
                "confidence_level": 0.95,
                "lower_bound": lower,
                "upper_bound": upper,
            },
            "point_estimate": mean_ns,
            "standard_error": mean_ns * 0.002,
        },
        "median": {"point_estimate": mean_ns},
        "std_dev": {"point_estimate": mean_ns * 0.01},
    }
    payload.update(extra)
    return payload


@pytest.fixture
def write_estimates(tmp_path: Path) -> Callable[..., Path]:
    """Write ``<root>/<group>/<function>/<parameter>/new/estimates.json`` under tmp_path."""

    def _write(
        group: str,
        parameter: str,
        mean_ns: float,
        *,
        function: Optional[str] = None,
        label: Optional[str] = "new",
        root: Optional[Path] = None,
        **extra: Any,
    ) -> Path:
        base = (root or tmp_path / "criterion") / group
        if function:
            base = base / function
        base = base / parameter
        if label:
            base = base / label
        base.mkdir(parents=True, exist_ok=True)
        path = base / "estimates.json"
        path.write_text(json.dumps(estimates_payload(mean_ns, **extra)), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def jmt_tree(write_estimates, tmp_path: Path) -> Path:
    """The three JMT groups at sizes 10/100/1000, laid out the way Criterion writes them."""
    timings = {
        "jmt_insert": {"10": 17900.0, "100": 182700.0, "1000": 1798300.0},
        "jmt_get": {"10": 9100.0, "100": 95500.0, "1000": 1201000.0},
        "jmt_update": {"10": 21000.0, "100": 160000.0, "1000": 1100000.0},
    }
    for group, params in timings.items():
        function = group.split("_", 1)[1]
        for parameter, mean_ns in params.items():
            write_estimates(group, parameter, mean_ns, function=function)
    report_dir = tmp_path / "criterion" / "report"
    report_dir.mkdir(parents=True, exist_ok=True)
    (report_dir / "index.html").write_text("<html></html>", encoding="utf-8")
    return tmp_path / "criterion"

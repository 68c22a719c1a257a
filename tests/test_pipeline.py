from __future__ import annotations

import json
from pathlib import Path

import pytest

from jmtbench.metrics import (
    ADVISORY_DUPLICATE_KEY,
    ADVISORY_NOT_FOUND,
    ADVISORY_PARSE_ERROR,
)
from jmtbench.pipeline import (
    EXIT_OK,
    EXIT_PARTIAL_FAILURE,
    ConfigurationError,
    collect,
    run_pipeline,
)
from jmtbench.report import NO_DATA_TO_VISUALIZE
from jmtbench.settings import ReportSettings
from jmtbench.store import MemoryFileTree

from conftest import estimates_payload


def test_full_run_over_criterion_layout(jmt_tree: Path, tmp_path: Path) -> None:
    out = tmp_path / "out"
    result = run_pipeline(jmt_tree, out)
    assert result.exit_code == EXIT_OK
    assert len(result.suite) == 9
    assert result.scaling.for_group("jmt_insert").trend == "stable"
    assert result.scaling.for_group("jmt_get").trend == "superlinear"
    assert result.scaling.for_group("jmt_update").trend == "sublinear"
    assert sorted(p.name for p in out.iterdir()) == [
        "jmt_get_visualization.png",
        "jmt_insert_visualization.png",
        "jmt_update_visualization.png",
        "summary.md",
    ]
    # the result store is left untouched
    assert not any(p.name.endswith(".png") for p in jmt_tree.rglob("*"))


def test_parallel_scan_gives_same_suite(jmt_tree: Path) -> None:
    sequential = collect(jmt_tree, ReportSettings())
    parallel = collect(jmt_tree, ReportSettings(workers=4))
    assert parallel.suite == sequential.suite


def test_empty_root_is_success_with_no_data(tmp_path: Path) -> None:
    root = tmp_path / "criterion"
    root.mkdir()
    out = tmp_path / "out"
    result = run_pipeline(root, out)
    assert result.exit_code == EXIT_OK
    assert result.suite.is_empty()
    assert result.render.message == NO_DATA_TO_VISUALIZE
    assert [p.name for p in out.iterdir()] == ["summary.md"]
    assert result.advisories == []


def test_missing_root_is_advisory_not_error(tmp_path: Path) -> None:
    result = run_pipeline(tmp_path / "missing", tmp_path / "out")
    assert result.exit_code == EXIT_OK
    assert result.suite.is_empty()
    assert [adv.kind for adv in result.advisories] == [ADVISORY_NOT_FOUND]
    assert "run benchmarks first" in result.advisories[0].reason


def test_root_that_is_a_file_is_a_configuration_error(tmp_path: Path) -> None:
    root = tmp_path / "criterion"
    root.write_text("", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        run_pipeline(root, tmp_path / "out")


def test_unwritable_output_dir_is_a_configuration_error(tmp_path: Path, jmt_tree: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        run_pipeline(jmt_tree, blocker / "out")


def test_duplicates_and_parse_errors_flow_into_advisories(tmp_path: Path) -> None:
    tree = MemoryFileTree(
        {
            # both resolve to (jmt_insert, 10): one with a function level, one without
            "root/jmt_insert/10/new/estimates.json": json.dumps(estimates_payload(17000.0)),
            "root/jmt_insert/insert/10/new/estimates.json": json.dumps(estimates_payload(17900.0)),
            "root/jmt_insert/insert/100/new/estimates.json": json.dumps({"mean": {}}),
        }
    )
    result = run_pipeline("root", tmp_path / "out", tree=tree)
    kinds = [adv.kind for adv in result.advisories]
    assert kinds.count(ADVISORY_DUPLICATE_KEY) == 1
    assert kinds.count(ADVISORY_PARSE_ERROR) == 1
    assert len(result.suite) == 1
    assert result.suite.get("jmt_insert", "10").point_estimate_ns == 17900.0
    summary = (tmp_path / "out" / "summary.md").read_text(encoding="utf-8")
    for advisory in result.advisories:
        assert advisory.render() in summary


def test_write_failure_gives_partial_exit_code(jmt_tree: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import jmtbench.report as report_module

    def refuse(fig, outfile, dpi):
        report_module.plt.close(fig)
        raise OSError("disk full")

    monkeypatch.setattr(report_module, "_save_figure", refuse)
    result = run_pipeline(jmt_tree, tmp_path / "out")
    assert result.exit_code == EXIT_PARTIAL_FAILURE
    assert result.render.summary_path is not None


def test_no_output_dir_skips_rendering(jmt_tree: Path) -> None:
    result = run_pipeline(jmt_tree, None)
    assert result.render is None
    assert result.exit_code == EXIT_OK

from .interfaces import FileTree
from .metrics import (
    Advisory,
    AggregatedSuite,
    GroupScaling,
    OutlierCounts,
    ResultRecord,
    ScalingPoint,
    ScalingReport,
)
from .settings import ReportSettings, SettingsError, load_settings
from .store import (
    LocalFileTree,
    MemoryFileTree,
    ResultStoreNotFound,
    iter_results,
    scan_parallel,
)
from .aggregate import aggregate, merge_batches
from .scaling import analyze
from .pipeline import ConfigurationError, PipelineResult, run_pipeline

__all__ = [
    "FileTree",
    "Advisory",
    "AggregatedSuite",
    "GroupScaling",
    "OutlierCounts",
    "ResultRecord",
    "ScalingPoint",
    "ScalingReport",
    "ReportSettings",
    "SettingsError",
    "load_settings",
    "LocalFileTree",
    "MemoryFileTree",
    "ResultStoreNotFound",
    "iter_results",
    "scan_parallel",
    "aggregate",
    "merge_batches",
    "analyze",
    "ConfigurationError",
    "PipelineResult",
    "run_pipeline",
]

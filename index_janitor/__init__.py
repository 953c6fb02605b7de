"""Retention cleanup and snapshot jobs for daily OpenSearch indices."""
from __future__ import annotations

from .cleanup import CycleReport, RuleOutcome, clean_rule, delete_indices, list_indices, run_one_cycle
from .config import (
    CleanupConfig,
    RetentionRule,
    Settings,
    SnapshotConfig,
    SnapshotRule,
    load_cleanup_config,
    load_settings,
    load_snapshot_config,
)
from .errors import (
    ClusterQueryFailure,
    ConfigurationError,
    ConnectionFailure,
    DeleteFailure,
    ErrorClassifier,
    JanitorError,
    NotAcknowledged,
    SnapshotFailure,
)
from .retention import compute_kept_set, diff_indices, index_name_for
from .scheduler import CleanupScheduler, CronSchedule, IntervalSchedule, Ticker
from .snapshot import SnapshotScheduler, run_snapshot_cycle

__version__ = "0.1.0"

__all__ = [
    "CleanupConfig",
    "CleanupScheduler",
    "ClusterQueryFailure",
    "ConfigurationError",
    "ConnectionFailure",
    "CronSchedule",
    "CycleReport",
    "DeleteFailure",
    "ErrorClassifier",
    "IntervalSchedule",
    "JanitorError",
    "NotAcknowledged",
    "RetentionRule",
    "RuleOutcome",
    "Settings",
    "SnapshotConfig",
    "SnapshotFailure",
    "SnapshotRule",
    "SnapshotScheduler",
    "Ticker",
    "clean_rule",
    "compute_kept_set",
    "delete_indices",
    "diff_indices",
    "index_name_for",
    "list_indices",
    "load_cleanup_config",
    "load_settings",
    "load_snapshot_config",
    "run_one_cycle",
    "run_snapshot_cycle",
]

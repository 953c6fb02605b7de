"""Configuration loading for the maintenance jobs.

Two layers:

* ``Settings``: process-level knobs (cluster URL, credentials, log level)
  read from the environment, with ``.env`` support.
* ``CleanupConfig`` / ``SnapshotConfig``: the job definitions, read once from
  a JSON file and validated into frozen dataclasses.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
import json
import os
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError


OPERATIONS = ("cleanup", "snapshot")

# a century of daily indices; stepping back must stay above date.min
MAX_RETAIN_DAYS = 36500


def _get_str(name: str, default_val: str) -> str:
    v = os.getenv(name)
    if v is None:
        return default_val
    return v

def _get_int(name: str, default_val: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default_val
    try:
        return int(v)
    except ValueError:
        return default_val


def _get_bool(name: str, default_val: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default_val
    return v.lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration parameters for the application."""

    # Cluster
    opensearch_url: str = "http://127.0.0.1:9200"
    opensearch_user: str = ""
    opensearch_password: str = ""
    opensearch_verify_certs: bool = True
    opensearch_timeout_secs: int = 30

    # Job selection
    config_file: str = "/etc/index-janitor/cleanup.json"
    operation: str = "cleanup"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Index names carry the UTC date instead of the local one
    index_date_utc: bool = False


def load_settings() -> Settings:
    """Load settings from environment variables (with .env support)."""
    load_dotenv()
    return Settings(
        opensearch_url=_get_str("OPENSEARCH_URL", Settings.opensearch_url),
        opensearch_user=_get_str("OPENSEARCH_USER", Settings.opensearch_user),
        opensearch_password=_get_str("OPENSEARCH_PASS", Settings.opensearch_password),
        opensearch_verify_certs=_get_bool(
            "OPENSEARCH_VERIFY_CERTS", Settings.opensearch_verify_certs
        ),
        opensearch_timeout_secs=_get_int(
            "OPENSEARCH_TIMEOUT_SECS", Settings.opensearch_timeout_secs
        ),
        config_file=_get_str("JANITOR_CONFIG", Settings.config_file),
        operation=_get_str("JANITOR_OPERATION", Settings.operation),
        log_level=_get_str("LOG_LEVEL", Settings.log_level),
        log_json=_get_bool("LOG_JSON", Settings.log_json),
        index_date_utc=_get_bool("INDEX_DATE_UTC", Settings.index_date_utc),
    )


# ---------------------------------------------------------------------------
# Job definitions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetentionRule:
    """Keep the last ``retain_days`` daily indices named ``<index_prefix>-YYYY.MM.DD``."""

    index_prefix: str
    retain_days: int


@dataclass(frozen=True)
class CleanupConfig:
    check_interval: int
    rules: Tuple[RetentionRule, ...]


@dataclass(frozen=True)
class SnapshotRule:
    """Snapshot every index matching ``index`` into a filesystem repository."""

    index: str
    repository: str
    snap_name: str
    location: str


@dataclass(frozen=True)
class SnapshotConfig:
    cron: str
    rules: Tuple[SnapshotRule, ...]


def _read_json(path: str | Path) -> Dict[str, Any]:
    path = Path(path).expanduser()
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must hold a JSON object")
    return data


def _require_int(value: Any, where: str, minimum: int, maximum: Optional[int] = None) -> int:
    # bool is an int subclass; JSON true must not pass as 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{where} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{where} must be >= {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ConfigurationError(f"{where} must be <= {maximum}, got {value}")
    return value


def _require_str(value: Any, where: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{where} must be a non-empty string, got {value!r}")
    return value.strip()


def _require_list(data: Mapping[str, Any], key: str) -> List[Any]:
    if key not in data:
        raise ConfigurationError(f"Missing required key '{key}'")
    value = data[key]
    if not isinstance(value, list):
        raise ConfigurationError(f"'{key}' must be a list, got {type(value).__name__}")
    return value


def parse_retention_rule(entry: Any, position: int) -> RetentionRule:
    where = f"clean_indices[{position}]"
    if not isinstance(entry, dict):
        raise ConfigurationError(f"{where} must be an object, got {entry!r}")
    prefix = _require_str(entry.get("index"), f"{where}.index")
    if "*" in prefix:
        raise ConfigurationError(f"{where}.index must not contain a wildcard: {prefix!r}")
    days = _require_int(entry.get("time_series"), f"{where}.time_series", 1, MAX_RETAIN_DAYS)
    return RetentionRule(index_prefix=prefix, retain_days=days)


def parse_cleanup_config(data: Mapping[str, Any]) -> CleanupConfig:
    """Validate an already decoded cleanup config mapping."""
    if "check_interval" not in data:
        raise ConfigurationError("Missing required key 'check_interval'")
    interval = _require_int(data["check_interval"], "check_interval", 1)
    entries = _require_list(data, "clean_indices")
    rules = tuple(parse_retention_rule(e, i) for i, e in enumerate(entries))
    return CleanupConfig(check_interval=interval, rules=rules)


def parse_snapshot_rule(entry: Any, position: int) -> SnapshotRule:
    where = f"snapshot_indices[{position}]"
    if not isinstance(entry, dict):
        raise ConfigurationError(f"{where} must be an object, got {entry!r}")
    repository = _require_str(entry.get("repository"), f"{where}.repository")
    location = entry.get("location")
    return SnapshotRule(
        index=_require_str(entry.get("index"), f"{where}.index"),
        repository=repository,
        snap_name=_require_str(entry.get("snap_name"), f"{where}.snap_name"),
        location=_require_str(location, f"{where}.location") if location is not None else repository,
    )


def parse_snapshot_config(data: Mapping[str, Any]) -> SnapshotConfig:
    """Validate an already decoded snapshot config mapping."""
    cron = _require_str(data.get("cron"), "cron")
    entries = _require_list(data, "snapshot_indices")
    rules = tuple(parse_snapshot_rule(e, i) for i, e in enumerate(entries))
    return SnapshotConfig(cron=cron, rules=rules)


def load_cleanup_config(path: str | Path) -> CleanupConfig:
    return parse_cleanup_config(_read_json(path))


def load_snapshot_config(path: str | Path) -> SnapshotConfig:
    return parse_snapshot_config(_read_json(path))


__all__ = [
    "CleanupConfig",
    "MAX_RETAIN_DAYS",
    "OPERATIONS",
    "RetentionRule",
    "Settings",
    "SnapshotConfig",
    "SnapshotRule",
    "load_cleanup_config",
    "load_settings",
    "load_snapshot_config",
    "parse_cleanup_config",
    "parse_snapshot_config",
]

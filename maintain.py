#!/usr/bin/env python3
"""
Index janitor: retention cleanup and scheduled snapshots for daily indices

What it does
------------
cleanup   Every `check_interval` seconds, for each `clean_indices` rule, keep
          the last `time_series` daily indices `<index>-YYYY.MM.DD` and delete
          every other index matching `<index>*` in one request. Runs until
          stopped (SIGINT/SIGTERM) or until the cluster cannot be reached.

snapshot  On the `cron` schedule, register an fs repository and snapshot the
          indices matching each `snapshot_indices` pattern.

Usage
-----
  # Cleanup loop with config from JANITOR_CONFIG / .env
  ./maintain.py

  # See what WOULD be deleted, one pass only
  ./maintain.py --config cleanup.json --dry-run --once

  # Snapshot job against a specific cluster
  ./maintain.py --operation.type snapshot --url http://search:9200

Exit codes
----------
0  stopped by signal, or a successful --once run
1  cluster unreachable (fatal)
2  bad configuration or arguments
"""

from __future__ import annotations

import argparse
import signal
from dataclasses import replace
from typing import Optional, Sequence

from index_janitor.config import (
    OPERATIONS,
    Settings,
    load_cleanup_config,
    load_settings,
    load_snapshot_config,
)
from index_janitor.errors import ConfigurationError, ConnectionFailure
from index_janitor.logging import configure_logging, get_logger
from index_janitor.opensearch_client import validate_url
from index_janitor.scheduler import CleanupScheduler
from index_janitor.snapshot import SnapshotScheduler

LOGGER = get_logger("index_janitor.cli")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


def parse_args(argv: Sequence[str] | None = None, settings: Optional[Settings] = None) -> argparse.Namespace:
    """Parse CLI arguments; defaults come from the environment settings."""
    settings = settings or load_settings()
    p = argparse.ArgumentParser(description="Retention cleanup and snapshots for daily OpenSearch indices.")
    p.add_argument("--operation.type", dest="operation", choices=OPERATIONS, default=settings.operation,
                   help="Operation to run: cleanup or snapshot (default %(default)s).")
    p.add_argument("--config", "--cleanup.config", dest="config", default=settings.config_file,
                   help="Path to the JSON job config (default %(default)s).")
    p.add_argument("--url", "--elasticsearch.url", dest="url", default=settings.opensearch_url,
                   help="Cluster URL (default %(default)s).")
    p.add_argument("--loglevel", type=str.upper, choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                   default=settings.log_level.upper(), help="Log level (default %(default)s).")
    p.add_argument("--dry-run", action="store_true", default=False,
                   help="Cleanup only: log the indices that would be deleted, delete nothing.")
    p.add_argument("--once", action="store_true", default=False,
                   help="Run a single cycle (or snapshot firing) and exit.")
    args = p.parse_args(argv)
    # defaults from JANITOR_OPERATION bypass argparse choices
    if args.operation not in OPERATIONS:
        p.error(f"invalid operation type {args.operation!r} (choose from {', '.join(OPERATIONS)})")
    return args


def build_scheduler(args: argparse.Namespace, settings: Settings):
    validate_url(settings.opensearch_url)
    if args.operation == "cleanup":
        config = load_cleanup_config(args.config)
        return CleanupScheduler(settings, config, dry_run=args.dry_run)
    if args.operation == "snapshot":
        config = load_snapshot_config(args.config)
        return SnapshotScheduler(settings, config)
    raise ConfigurationError(f"Unknown operation type {args.operation!r}")


def main(argv: Sequence[str] | None = None) -> int:
    env_settings = load_settings()
    args = parse_args(argv, env_settings)
    settings = replace(env_settings, opensearch_url=args.url, config_file=args.config,
                       operation=args.operation, log_level=args.loglevel)
    configure_logging(settings.log_level, settings.log_json)

    LOGGER.info("cluster.url: %s", settings.opensearch_url)
    LOGGER.info("operation.type: %s", settings.operation)
    LOGGER.info("config.file: %s", settings.config_file)
    LOGGER.info("log level: %s", settings.log_level)

    try:
        scheduler = build_scheduler(args, settings)
    except ConfigurationError as e:
        LOGGER.error("Configuration error: %s", e)
        return EXIT_CONFIG

    def stop(signum, frame):
        LOGGER.info("received signal %d, stopping after the current cycle", signum)
        scheduler.stop()

    signal.signal(signal.SIGINT, stop)
    signal.signal(signal.SIGTERM, stop)

    try:
        if args.once:
            scheduler.run_once()
        else:
            scheduler.run_forever()
    except ConnectionFailure as e:
        LOGGER.error("Can not connect to cluster, exiting: %s", e)
        return EXIT_FATAL
    except ConfigurationError as e:
        LOGGER.error("Configuration error: %s", e)
        return EXIT_CONFIG
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())

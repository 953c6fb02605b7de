"""Cron-driven snapshots of selected indices into filesystem repositories.

Per firing, for each configured rule:

* register (or re-register) an ``fs`` repository,
* resolve the index pattern to concrete names,
* create ``<snap_name>-<unix seconds>`` without waiting for completion; the
  cluster must answer ``{"accepted": true}``.

A rule that fails is logged and the next rule runs. A firing that cannot
reach the cluster is skipped; the schedule itself keeps going.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Any, List, Optional

from opensearchpy import OpenSearch

from .config import Settings, SnapshotConfig, SnapshotRule
from .errors import ConnectionFailure, ErrorClassifier, SnapshotFailure
from .logging import get_logger
from .opensearch_client import connect
from .scheduler import CronSchedule, Ticker


LOGGER = get_logger(__name__)

_DEFAULT_CLASSIFIER = ErrorClassifier()


def ensure_repository(
    client: OpenSearch,
    repository: str,
    location: str,
    *,
    classifier: ErrorClassifier = _DEFAULT_CLASSIFIER,
    logger: Optional[logging.Logger] = None,
) -> None:
    log = logger or LOGGER
    body = {"type": "fs", "settings": {"location": location, "compress": True}}
    try:
        resp = client.snapshot.create_repository(repository=repository, body=body)
    except classifier.catchable as exc:
        raise classifier.classify(
            exc, SnapshotFailure, f"Create snapshot repository [{repository}] error"
        ) from exc
    if not (resp or {}).get("acknowledged"):
        raise SnapshotFailure(f"Create snapshot repository [{repository}] not acknowledged: {resp!r}")
    log.info("Create snapshot repository [%s] successfully!", repository)


def resolve_indices(
    client: OpenSearch,
    pattern: str,
    *,
    classifier: ErrorClassifier = _DEFAULT_CLASSIFIER,
    logger: Optional[logging.Logger] = None,
) -> List[str]:
    """Concrete index names for ``pattern``; empty when the query fails."""
    log = logger or LOGGER
    try:
        resp = client.indices.get(index=pattern)
    except classifier.catchable as exc:
        if classifier.is_fatal(exc):
            raise classifier.classify(exc, SnapshotFailure, "Get indices") from exc
        log.error("Get all indices of [%s] error: %s", pattern, exc)
        return []
    return sorted(resp or {})


def snapshot_request_body(indices: List[str]) -> Dict[str, Any]:
    return {
        "indices": ",".join(indices),
        "ignore_unavailable": True,
        "include_global_state": False,
    }


def make_snapshot(
    client: OpenSearch,
    repository: str,
    snap_name: str,
    indices: List[str],
    *,
    now: Optional[float] = None,
    classifier: ErrorClassifier = _DEFAULT_CLASSIFIER,
    logger: Optional[logging.Logger] = None,
) -> str:
    """
    Ask the cluster to snapshot ``indices`` and return the snapshot name.

    The name is suffixed with the current unix time so repeated firings
    never collide.
    """
    log = logger or LOGGER
    name = f"{snap_name}-{int(now if now is not None else time.time())}"
    body = snapshot_request_body(indices)

    log.debug("Create snapshot %s/%s: %s", repository, name, body)
    try:
        resp = client.snapshot.create(
            repository=repository,
            snapshot=name,
            body=body,
            wait_for_completion=False,
        )
    except classifier.catchable as exc:
        raise classifier.classify(
            exc, SnapshotFailure, f"Snapshot indices[{body['indices']}] failed"
        ) from exc
    log.debug("Snapshot response: %s", resp)

    if not (resp or {}).get("accepted"):
        raise SnapshotFailure(f"Snapshot indices[{body['indices']}] failed: {resp!r}")
    log.info("Snapshot indices[%s] success, snapshot name is %s", body["indices"], name)
    return name


def snapshot_rule(
    client: OpenSearch,
    rule: SnapshotRule,
    *,
    now: Optional[float] = None,
    classifier: ErrorClassifier = _DEFAULT_CLASSIFIER,
    logger: Optional[logging.Logger] = None,
) -> Optional[str]:
    """Snapshot one rule. Returns the snapshot name, or None when nothing matched."""
    log = logger or LOGGER
    ensure_repository(client, rule.repository, rule.location, classifier=classifier, logger=log)
    indices = resolve_indices(client, rule.index, classifier=classifier, logger=log)
    if not indices:
        log.warning("No indices match [%s]; skipping snapshot", rule.index)
        return None
    return make_snapshot(
        client, rule.repository, rule.snap_name, indices, now=now, classifier=classifier, logger=log
    )


def run_snapshot_cycle(
    rules,
    client: OpenSearch,
    *,
    now: Optional[float] = None,
    classifier: ErrorClassifier = _DEFAULT_CLASSIFIER,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, Optional[str]]:
    """Run every snapshot rule; map ``"<repository>/<index>"`` to the snapshot taken."""
    log = logger or LOGGER
    taken: Dict[str, Optional[str]] = {}
    for rule in rules:
        key = f"{rule.repository}/{rule.index}"
        log.info("---begin to snapshot index[%s] in repository[%s]", rule.index, rule.repository)
        try:
            taken[key] = snapshot_rule(client, rule, now=now, classifier=classifier, logger=log)
        except SnapshotFailure as exc:
            log.error("Snapshot of [%s] failed: %s", rule.index, exc)
            taken[key] = None
        log.info("---End to snapshot index[%s] in repository[%s]", rule.index, rule.repository)
    return taken


class SnapshotScheduler:
    """Fire ``run_snapshot_cycle`` on the configured cron expression."""

    def __init__(
        self,
        settings: Settings,
        config: SnapshotConfig,
        *,
        connector: Callable[[Settings], object] = connect,
        classifier: Optional[ErrorClassifier] = None,
        logger: Optional[logging.Logger] = None,
        ticker: Optional[Ticker] = None,
    ) -> None:
        self.settings = settings
        self.config = config
        self.connector = connector
        self.classifier = classifier or ErrorClassifier()
        self.logger = logger or LOGGER
        self.schedule = CronSchedule(config.cron)
        self.ticker = ticker or Ticker(self.schedule)

    def fire(self) -> Dict[str, Optional[str]]:
        log = self.logger
        log.info("========================")
        try:
            client = self.connector(self.settings)
        except ConnectionFailure as exc:
            log.error("Can not connect to cluster, skipping this firing: %s", exc)
            return {}
        try:
            return run_snapshot_cycle(
                self.config.rules, client, classifier=self.classifier, logger=log
            )
        except ConnectionFailure as exc:
            log.error("Lost connection to cluster during snapshot: %s", exc)
            return {}
        finally:
            client.close()

    def run_once(self) -> Dict[str, Optional[str]]:
        return self.fire()

    def run_forever(self) -> None:
        self.logger.info(
            "Snapshot schedule %r started, next firing at %s",
            self.config.cron,
            self.schedule.next_fire().isoformat(),
        )
        self.ticker.run(self.fire, run_immediately=False)
        self.logger.info("Snapshot schedule stopped")

    def stop(self) -> None:
        self.ticker.stop()


__all__ = [
    "SnapshotScheduler",
    "ensure_repository",
    "make_snapshot",
    "resolve_indices",
    "run_snapshot_cycle",
    "snapshot_request_body",
    "snapshot_rule",
]

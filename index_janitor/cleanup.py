"""Purge daily indices that fell out of their retention window.

One cycle walks the configured rules in order. For each rule:

1. compute the kept set for today,
2. list the live indices matching ``<prefix>*``,
3. diff the two,
4. delete the remainder in a single request.

Query and delete failures are contained to their rule. A connection failure
propagates to the caller and ends the loop.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import FrozenSet, Iterable, List, Optional

from opensearchpy import OpenSearch

from .config import RetentionRule
from .errors import (
    ClusterQueryFailure,
    DeleteFailure,
    ErrorClassifier,
    JanitorError,
    NotAcknowledged,
)
from .logging import get_logger
from .retention import compute_kept_set, diff_indices


LOGGER = get_logger(__name__)

_DEFAULT_CLASSIFIER = ErrorClassifier()


@dataclass
class RuleOutcome:
    rule: RetentionRule
    kept: FrozenSet[str] = frozenset()
    live: FrozenSet[str] = frozenset()
    deleted: FrozenSet[str] = frozenset()
    error: Optional[JanitorError] = None
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CycleReport:
    outcomes: List[RuleOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[RuleOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def deleted(self) -> FrozenSet[str]:
        names: FrozenSet[str] = frozenset()
        for outcome in self.outcomes:
            names |= outcome.deleted
        return names


def list_indices(
    client: OpenSearch,
    prefix: str,
    *,
    classifier: ErrorClassifier = _DEFAULT_CLASSIFIER,
    logger: Optional[logging.Logger] = None,
) -> FrozenSet[str]:
    """Return every index name the cluster reports for ``<prefix>*``."""
    log = logger or LOGGER
    pattern = f"{prefix}*"
    try:
        resp = client.indices.get(index=pattern)
    except classifier.catchable as exc:
        raise classifier.classify(
            exc, ClusterQueryFailure, f"Listing indices {pattern} failed"
        ) from exc
    live = frozenset(resp or {})
    log.debug("Live indices for %s: %s", pattern, ", ".join(sorted(live)) or "<none>")
    return live


def delete_indices(
    client: OpenSearch,
    names: Iterable[str],
    *,
    classifier: ErrorClassifier = _DEFAULT_CLASSIFIER,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Delete ``names`` with a single request.

    An empty input issues no request. The whole batch is either acknowledged
    or treated as failed.
    """
    log = logger or LOGGER
    targets = sorted(set(names))
    if not targets:
        return

    log.info("Delete below indices: %s", ", ".join(targets))
    try:
        resp = client.indices.delete(index=targets)
    except classifier.catchable as exc:
        raise classifier.classify(exc, DeleteFailure, "Delete index error") from exc

    if not (resp or {}).get("acknowledged"):
        raise NotAcknowledged(
            f"Delete of {len(targets)} indices was not acknowledged: {resp!r}"
        )
    log.info("Delete indices successful! (%d removed)", len(targets))


def clean_rule(
    client: OpenSearch,
    rule: RetentionRule,
    today: date,
    *,
    dry_run: bool = False,
    classifier: ErrorClassifier = _DEFAULT_CLASSIFIER,
    logger: Optional[logging.Logger] = None,
) -> RuleOutcome:
    """Apply one retention rule. Raises on query, delete or connection errors."""
    log = logger or LOGGER
    outcome = RuleOutcome(rule=rule, dry_run=dry_run)

    outcome.kept = compute_kept_set(rule.index_prefix, rule.retain_days, today)
    log.info("Reserved indices: %s", ", ".join(sorted(outcome.kept, reverse=True)))

    outcome.live = list_indices(client, rule.index_prefix, classifier=classifier, logger=log)
    doomed = diff_indices(outcome.live, outcome.kept)
    if not doomed:
        log.info("Nothing to delete for prefix %s", rule.index_prefix)
        return outcome

    if dry_run:
        log.info("[DRY-RUN] Would delete: %s", ", ".join(sorted(doomed)))
        return outcome

    delete_indices(client, doomed, classifier=classifier, logger=log)
    outcome.deleted = doomed
    return outcome


def run_one_cycle(
    rules: Iterable[RetentionRule],
    client: OpenSearch,
    *,
    today: date,
    dry_run: bool = False,
    classifier: ErrorClassifier = _DEFAULT_CLASSIFIER,
    logger: Optional[logging.Logger] = None,
) -> CycleReport:
    """Run every rule in order against an already connected ``client``.

    ``ConnectionFailure`` is not caught here.
    """
    log = logger or LOGGER
    report = CycleReport()
    for rule in rules:
        try:
            outcome = clean_rule(
                client, rule, today, dry_run=dry_run, classifier=classifier, logger=log
            )
        except (ClusterQueryFailure, DeleteFailure) as exc:
            log.error("Rule %s (keep %d days) failed: %s", rule.index_prefix, rule.retain_days, exc)
            outcome = RuleOutcome(rule=rule, error=exc, dry_run=dry_run)
        report.outcomes.append(outcome)
    return report


__all__ = [
    "CycleReport",
    "RuleOutcome",
    "clean_rule",
    "delete_indices",
    "list_indices",
    "run_one_cycle",
]

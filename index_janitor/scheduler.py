"""Timers that drive the maintenance jobs.

``Ticker`` owns cancellation: ``stop()`` is observed only while waiting
between runs or before a new run starts, so a job already talking to the
cluster is never cut short.
"""
from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timezone
from typing import Callable, Optional

from croniter import croniter

from .cleanup import CycleReport, run_one_cycle
from .config import CleanupConfig, Settings
from .errors import ConfigurationError, ConnectionFailure, ErrorClassifier
from .logging import get_logger
from .opensearch_client import connect


LOGGER = get_logger(__name__)


class IntervalSchedule:
    """Fixed delay between the end of one run and the start of the next."""

    def __init__(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError(f"interval must be > 0 seconds, got {seconds}")
        self.seconds = float(seconds)

    def next_delay(self) -> float:
        return self.seconds


class CronSchedule:
    """Delay until the next fire time of a cron expression.

    Six-field expressions carry seconds in the first position
    (``"0 */5 * * * *"``); five-field expressions fire on the minute.
    """

    def __init__(self, expression: str, now: Optional[Callable[[], datetime]] = None) -> None:
        self.expression = expression
        self._now = now or datetime.now
        self._croniter_expr = self._normalize(expression)
        self._last_fire: Optional[datetime] = None
        try:
            croniter(self._croniter_expr, self._now())
        except (ValueError, KeyError) as exc:
            raise ConfigurationError(f"Invalid cron expression {expression!r}: {exc}") from exc

    @staticmethod
    def _normalize(expression: str) -> str:
        fields = expression.split()
        if len(fields) == 6:
            # croniter expects seconds last
            fields = fields[1:] + fields[:1]
        return " ".join(fields)

    def next_fire(self) -> datetime:
        """Next fire time strictly after both now and the last scheduled fire."""
        start = self._now()
        if self._last_fire is not None and self._last_fire > start:
            start = self._last_fire
        return croniter(self._croniter_expr, start).get_next(datetime)

    def next_delay(self) -> float:
        # each slot is handed out once, even when Event.wait wakes a little early
        nxt = self.next_fire()
        self._last_fire = nxt
        return max(0.0, (nxt - self._now()).total_seconds())


class Ticker:
    """Run a job repeatedly on a schedule until stopped."""

    def __init__(self, schedule, stop_event: Optional[threading.Event] = None) -> None:
        self.schedule = schedule
        self._stop = stop_event or threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def _wait(self) -> bool:
        """Sleep until the next run; True when stop was requested."""
        return self._stop.wait(self.schedule.next_delay())

    def run(self, job: Callable[[], object], *, run_immediately: bool = True) -> None:
        if not run_immediately and self._wait():
            return
        while not self._stop.is_set():
            job()
            if self._wait():
                return


def today_for(settings: Settings) -> date:
    if settings.index_date_utc:
        return datetime.now(timezone.utc).date()
    return date.today()


class CleanupScheduler:
    """
    Poll loop for the cleanup operation.

    Each cycle pings the cluster once and shares that handle across all
    rules. A connection failure is logged and re-raised, which ends the
    loop: the cluster is expected to be reachable and an outage needs an
    operator.
    """

    def __init__(
        self,
        settings: Settings,
        config: CleanupConfig,
        *,
        connector: Callable[[Settings], object] = connect,
        clock: Optional[Callable[[], date]] = None,
        dry_run: bool = False,
        classifier: Optional[ErrorClassifier] = None,
        logger: Optional[logging.Logger] = None,
        ticker: Optional[Ticker] = None,
    ) -> None:
        self.settings = settings
        self.config = config
        self.connector = connector
        self.clock = clock or (lambda: today_for(settings))
        self.dry_run = dry_run
        self.classifier = classifier or ErrorClassifier()
        self.logger = logger or LOGGER
        self.ticker = ticker or Ticker(IntervalSchedule(config.check_interval))
        self.last_report: Optional[CycleReport] = None

    def run_cycle(self) -> CycleReport:
        log = self.logger
        log.info("========================")
        log.info("---begin---")
        try:
            client = self.connector(self.settings)
        except ConnectionFailure as exc:
            log.error("Can not connect to cluster at %s: %s", self.settings.opensearch_url, exc)
            raise

        try:
            report = run_one_cycle(
                self.config.rules,
                client,
                today=self.clock(),
                dry_run=self.dry_run,
                classifier=self.classifier,
                logger=log,
            )
        except ConnectionFailure as exc:
            log.error("Lost connection to cluster mid-cycle: %s", exc)
            raise
        finally:
            client.close()

        log.info(
            "---end--- rules=%d failed=%d deleted=%d",
            len(report.outcomes),
            len(report.failures),
            len(report.deleted),
        )
        self.last_report = report
        return report

    def run_once(self) -> CycleReport:
        return self.run_cycle()

    def run_forever(self) -> None:
        """Cycle, sleep ``check_interval`` seconds, repeat until stopped or fatal."""
        self.logger.info(
            "Cleanup loop started: %d rule(s), every %ds",
            len(self.config.rules),
            self.config.check_interval,
        )
        self.ticker.run(self.run_cycle)
        self.logger.info("Cleanup loop stopped")

    def stop(self) -> None:
        self.ticker.stop()


__all__ = [
    "CleanupScheduler",
    "CronSchedule",
    "IntervalSchedule",
    "Ticker",
    "today_for",
]

"""Periodic driver for the aggregation pipeline.

One cycle:
  1. Collect the distinct keywords of all users
  2. Aggregate postings for them from every source
  3. Merge them into the store
  4. Notify users, if anything new was inserted
  5. Append the per-source run logs (a failure here is logged only)

`run_forever` repeats cycles on a fixed interval until its stop event is
set. A failed cycle is logged and the loop carries on; cancellation is
noticed while sleeping and by the scrapers between units of work. A
cycle cancelled during extraction is dropped before anything is merged.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import NamedTuple, Optional

from jobfeed.config import PipelineConfig
from jobfeed.discovery import Aggregator
from jobfeed.merge import merge_and_persist
from jobfeed.notify import notify
from jobfeed.storage import Repository

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = "Idle"
    RUNNING = "Running"


class CycleResult(NamedTuple):
    """Outcome of a single cycle."""

    keywords: int
    found: int
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    alerts: int = 0
    cancelled: bool = False


class Scheduler:
    """Runs aggregation cycles, one at a time, on a fixed interval."""

    def __init__(
        self,
        config: PipelineConfig,
        store: Repository,
        aggregator: Optional[Aggregator] = None,
        stop_event: Optional[threading.Event] = None,
        interval_seconds: Optional[float] = None,
    ):
        self.config = config
        self.store = store
        self.stop_event = stop_event or threading.Event()
        self.aggregator = aggregator or Aggregator(config, self.stop_event)
        self.aggregator.bind_stop_event(self.stop_event)
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else config.scrape_interval_seconds
        )
        self.state = SchedulerState.IDLE
        self._lock = threading.Lock()

    def run_once(self) -> Optional[CycleResult]:
        """Run one cycle now.

        Returns None without doing anything if another cycle is in
        progress. Exceptions from the cycle propagate to the caller.
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("A cycle is already running, skipping this trigger")
            return None

        self.state = SchedulerState.RUNNING
        try:
            return self._cycle()
        finally:
            self.state = SchedulerState.IDLE
            self._lock.release()

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        """Run cycles until `stop_event` (or the scheduler's own event) is set."""
        if stop_event is not None and stop_event is not self.stop_event:
            self.stop_event = stop_event
            self.aggregator.bind_stop_event(stop_event)

        logger.info(
            "Scheduler starting, interval %.1f hours", self.interval_seconds / 3600
        )
        while not self.stop_event.is_set():
            logger.info("Cycle starting at %s", datetime.now(timezone.utc).isoformat())
            try:
                self.run_once()
            except Exception:
                logger.exception("Error occurred while running aggregation cycle")

            next_run = datetime.now(timezone.utc) + timedelta(seconds=self.interval_seconds)
            logger.info("Sleeping until %s", next_run.isoformat())
            if self.stop_event.wait(self.interval_seconds):
                break

        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self.stop_event.set()

    def _cycle(self) -> CycleResult:
        started = datetime.now(timezone.utc)

        keywords = self.store.list_all_keyword_texts()
        if not keywords:
            logger.info("No keywords found, skipping aggregation")
            return CycleResult(keywords=0, found=0)

        logger.info("Starting aggregation with %d unique keywords", len(keywords))
        records = self.aggregator.aggregate(keywords, self.config.max_results_per_source)

        if self.stop_event.is_set():
            logger.info("Cycle cancelled after extraction, discarding %d postings", len(records))
            self._append_run_logs()
            return CycleResult(keywords=len(keywords), found=len(records), cancelled=True)

        merged = merge_and_persist(records, self.store)
        self.aggregator.record_new(merged.new_ids)

        logger.info(
            "Aggregation completed. Found %d jobs, %d are new", len(records), merged.inserted
        )

        alerts = []
        try:
            if merged.inserted > 0:
                alerts = notify(self.store, since=started)
        finally:
            self._append_run_logs()

        return CycleResult(
            keywords=len(keywords),
            found=len(records),
            inserted=merged.inserted,
            updated=merged.updated,
            skipped=merged.skipped,
            alerts=len(alerts),
        )

    def _append_run_logs(self) -> None:
        try:
            self.store.append_run_logs(self.aggregator.run_logs)
        except Exception:
            logger.exception("Failed to append run log")

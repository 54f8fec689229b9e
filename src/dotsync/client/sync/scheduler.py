"""Scheduler for periodic reconciliation passes.

This module provides:
- SyncScheduler: fires a reconciliation pass every ``interval`` seconds,
  independent of watcher events

Ticks never queue up behind a running pass: a tick that finds a pass in
flight is coalesced into a no-op.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from dotsync.client.sync.types import PassResult, TriggerSource

if TYPE_CHECKING:
    from dotsync.client.sync.pipeline import SyncPipeline

logger = logging.getLogger(__name__)

JOB_ID = "reconciliation_pass"


class SyncScheduler:
    """Runs a reconciliation pass at a fixed interval."""

    def __init__(self, pipeline: SyncPipeline, interval: int) -> None:
        """Initialize the scheduler.

        Args:
            pipeline: Pipeline that runs the passes.
            interval: Seconds between ticks.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._pipeline = pipeline
        self._interval = interval
        self._scheduler: BackgroundScheduler | None = None

    @property
    def interval(self) -> int:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def tick(self) -> PassResult | None:
        """Run one scheduled pass unless a pass is already in flight.

        Returns:
            The pass report, or None if the tick was coalesced or failed.
        """
        logger.debug("Scheduler tick")
        try:
            result = self._pipeline.run_pass(TriggerSource.SCHEDULE, blocking=False)
        except Exception:
            logger.exception("Error during scheduled pass")
            return None
        if result is None:
            logger.info("Scheduled tick coalesced: a pass is already running")
        return result

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self._interval),
            id=JOB_ID,
            name="Periodic reconciliation pass",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Sync scheduler started (every %d seconds)", self._interval)

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Sync scheduler stopped")

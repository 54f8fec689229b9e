"""Tests for the interval sync scheduler."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from dotsync.client.sync.scheduler import JOB_ID, SyncScheduler
from dotsync.client.sync.types import PassResult, TriggerSource


@pytest.fixture
def pipeline() -> MagicMock:
    """Create a mock pipeline."""
    return MagicMock()


class TestTick:
    """Tests for a single scheduler tick."""

    def test_tick_runs_non_blocking_pass(self, pipeline: MagicMock) -> None:
        """Each tick asks for a scheduled, non-blocking pass."""
        result = PassResult(profile="default", trigger=TriggerSource.SCHEDULE)
        pipeline.run_pass.return_value = result

        assert SyncScheduler(pipeline, 60).tick() is result
        pipeline.run_pass.assert_called_once_with(TriggerSource.SCHEDULE, blocking=False)

    def test_tick_coalesced_while_running(self, pipeline: MagicMock) -> None:
        """A tick during a running pass is a no-op."""
        pipeline.run_pass.return_value = None

        assert SyncScheduler(pipeline, 60).tick() is None

    def test_tick_error_is_contained(self, pipeline: MagicMock) -> None:
        """A failing pass does not escape into the scheduler thread."""
        pipeline.run_pass.side_effect = RuntimeError("boom")

        assert SyncScheduler(pipeline, 60).tick() is None

    def test_interval_must_be_positive(self, pipeline: MagicMock) -> None:
        """Zero or negative intervals are rejected."""
        with pytest.raises(ValueError):
            SyncScheduler(pipeline, 0)


class TestSchedulerLifecycle:
    """Tests for starting and stopping the scheduler."""

    def test_start_adds_interval_job(self, pipeline: MagicMock) -> None:
        """Start registers one coalescing interval job."""
        scheduler = SyncScheduler(pipeline, 300)

        with patch("dotsync.client.sync.scheduler.BackgroundScheduler") as mock_cls:
            scheduler.start()

        mock_scheduler = mock_cls.return_value
        mock_scheduler.add_job.assert_called_once()
        kwargs = mock_scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == JOB_ID
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True
        assert kwargs["trigger"].interval.total_seconds() == 300
        mock_scheduler.start.assert_called_once()
        assert scheduler.is_running

    def test_start_twice_is_noop(self, pipeline: MagicMock) -> None:
        """Starting an already running scheduler does nothing."""
        scheduler = SyncScheduler(pipeline, 300)

        with patch("dotsync.client.sync.scheduler.BackgroundScheduler") as mock_cls:
            scheduler.start()
            scheduler.start()

        assert mock_cls.call_count == 1

    def test_stop(self, pipeline: MagicMock) -> None:
        """Stop shuts the scheduler down without waiting."""
        scheduler = SyncScheduler(pipeline, 300)

        with patch("dotsync.client.sync.scheduler.BackgroundScheduler") as mock_cls:
            scheduler.start()
            scheduler.stop()

        mock_cls.return_value.shutdown.assert_called_once_with(wait=False)
        assert not scheduler.is_running

    def test_real_scheduler_runs_ticks(self, pipeline: MagicMock) -> None:
        """A real BackgroundScheduler starts and stops cleanly."""
        scheduler = SyncScheduler(pipeline, 3600)
        scheduler.start()
        try:
            assert scheduler.is_running
        finally:
            scheduler.stop()

"""Tests for crewupload.services.events."""

from __future__ import annotations

import logging

import pytest

from conftest import RecordingConsumer, wait_for
from crewupload.models.progress import BatchReport
from crewupload.models.task import UploadStatus
from crewupload.services.events import (
    AuthExpired,
    BatchMonitor,
    EventBus,
    TaskCompleted,
    TaskFailed,
    TaskPaused,
    TaskProgress,
    TaskQueued,
    TaskRemoved,
    TaskReset,
    TaskStarted,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reports() -> list[BatchReport]:
    return []


@pytest.fixture
def monitor(clock: FakeClock, reports: list[BatchReport]) -> BatchMonitor:
    return BatchMonitor(reporter=reports.append, interval=2.0, clock=clock)


def _queue_two(monitor: BatchMonitor) -> None:
    monitor.handle(TaskQueued("a", bytes_total=1000))
    monitor.handle(TaskQueued("b", bytes_total=3000))


def _progress(task_id: str, uploaded: int, total: int, speed: float) -> TaskProgress:
    return TaskProgress(
        task_id, bytes_uploaded=uploaded, bytes_total=total, speed=speed, average_speed=speed
    )


# =============================================================================
# BatchMonitor
# =============================================================================


class TestBatchMonitor:
    def test_queued_tasks_are_not_reported(self, monitor: BatchMonitor, reports: list):
        _queue_two(monitor)

        assert reports == []
        assert monitor.snapshot().bytes_total == 4000
        assert monitor.snapshot().percent == 0.0

    def test_empty_files_report_zero_percent(self, monitor: BatchMonitor, reports: list):
        monitor.handle(TaskQueued("a", bytes_total=0))
        monitor.handle(TaskStarted("a", bytes_uploaded=0, bytes_total=0))
        monitor.handle(TaskCompleted("a", bytes_total=0))

        assert [r.percent for r in reports] == [0.0, 0.0]
        assert reports[-1].final
        assert reports[-1].bytes_total == 0

    def test_lifecycle_events_report_immediately(self, monitor: BatchMonitor, reports: list):
        _queue_two(monitor)

        monitor.handle(TaskStarted("a", bytes_uploaded=0, bytes_total=1000))

        assert len(reports) == 1
        assert reports[0].counts == {"uploading": 1, "pending": 1}
        assert not reports[0].final

    def test_progress_waits_for_tick(
        self, monitor: BatchMonitor, reports: list, clock: FakeClock
    ):
        _queue_two(monitor)
        monitor.handle(TaskStarted("a", bytes_uploaded=0, bytes_total=1000))
        monitor.handle(_progress("a", 500, 1000, 250.0))
        assert len(reports) == 1

        clock.now = 1.0
        monitor.tick()
        assert len(reports) == 1

        clock.now = 2.0
        monitor.tick()
        assert len(reports) == 2
        assert reports[-1].bytes_uploaded == 500
        assert reports[-1].percent == pytest.approx(12.5)

    def test_speed_counts_only_uploading_tasks(self, monitor: BatchMonitor):
        _queue_two(monitor)
        monitor.handle(TaskStarted("a", bytes_uploaded=0, bytes_total=1000))
        monitor.handle(TaskStarted("b", bytes_uploaded=0, bytes_total=3000))
        monitor.handle(_progress("a", 400, 1000, 100.0))
        monitor.handle(_progress("b", 600, 3000, 300.0))
        assert monitor.snapshot().speed == pytest.approx(400.0)

        monitor.handle(TaskPaused("b", bytes_uploaded=600))

        report = monitor.snapshot()
        assert report.speed == pytest.approx(100.0)
        assert report.bytes_uploaded == 1000

    def test_final_report_when_every_task_settles(self, monitor: BatchMonitor, reports: list):
        _queue_two(monitor)
        monitor.handle(TaskStarted("a", bytes_uploaded=0, bytes_total=1000))
        monitor.handle(TaskStarted("b", bytes_uploaded=0, bytes_total=3000))
        monitor.handle(TaskCompleted("a", bytes_total=1000))
        assert not reports[-1].final

        monitor.handle(TaskFailed("b", message="Network unreachable."))

        final = reports[-1]
        assert final.final
        assert final.completed == 1
        assert final.failed == 1
        assert not monitor.running

    def test_no_ticks_after_final_report(
        self, monitor: BatchMonitor, reports: list, clock: FakeClock
    ):
        monitor.handle(TaskQueued("a", bytes_total=10))
        monitor.handle(TaskStarted("a", bytes_uploaded=0, bytes_total=10))
        monitor.handle(TaskCompleted("a", bytes_total=10))
        count = len(reports)

        clock.now = 100.0
        monitor.tick()

        assert len(reports) == count

    def test_reset_returns_task_to_pending(self, monitor: BatchMonitor):
        monitor.handle(TaskQueued("a", bytes_total=10))
        monitor.handle(TaskStarted("a", bytes_uploaded=0, bytes_total=10))
        monitor.handle(_progress("a", 5, 10, 1.0))
        monitor.handle(TaskFailed("a", message="x"))

        monitor.handle(TaskReset("a"))

        stats = monitor.stats["a"]
        assert stats.status == UploadStatus.PENDING
        assert stats.bytes_uploaded == 0

    def test_removed_task_leaves_totals(self, monitor: BatchMonitor):
        _queue_two(monitor)

        monitor.handle(TaskRemoved("b"))

        assert monitor.snapshot().bytes_total == 1000

    def test_auth_expired_flag(self, monitor: BatchMonitor):
        monitor.handle(TaskQueued("a", bytes_total=10))
        monitor.handle(AuthExpired("a"))
        assert monitor.auth_expired

        monitor.handle(TaskStarted("a", bytes_uploaded=0, bytes_total=10))
        assert not monitor.auth_expired

    def test_sink_sees_every_event_in_order(self, clock: FakeClock):
        seen: list = []
        monitor = BatchMonitor(sink=seen.append, clock=clock)
        events = [
            TaskQueued("a", bytes_total=10),
            TaskStarted("a", bytes_uploaded=0, bytes_total=10),
            _progress("a", 10, 10, 5.0),
            TaskCompleted("a", bytes_total=10),
        ]

        for event in events:
            monitor.handle(event)

        assert seen == events

    def test_events_for_unknown_tasks_are_forwarded(self, monitor: BatchMonitor):
        seen: list = []
        monitor.sink = seen.append

        monitor.handle(_progress("ghost", 1, 2, 1.0))

        assert len(seen) == 1
        assert monitor.stats == {}

    def test_report_eta(self):
        report = BatchReport(timestamp=0, bytes_uploaded=100, bytes_total=1100, speed=50.0)
        assert report.eta_seconds == pytest.approx(20.0)
        assert BatchReport(timestamp=0).eta_seconds is None


# =============================================================================
# EventBus
# =============================================================================


class TestEventBus:
    def test_drain_delivers_in_publish_order(self):
        consumer = RecordingConsumer()
        bus = EventBus(consumer)
        events = [TaskQueued(str(i), bytes_total=i) for i in range(5)]

        for event in events:
            bus.publish(event)

        assert bus.drain() == 5
        assert consumer.events == events
        assert bus.drain() == 0

    def test_consumer_failure_is_logged_and_skipped(self, caplog: pytest.LogCaptureFixture):
        consumer = RecordingConsumer()
        calls = []

        def handle(event):
            calls.append(event)
            if len(calls) == 1:
                raise ValueError("bad event")

        consumer.handle = handle
        bus = EventBus(consumer)
        bus.publish(TaskReset("a"))
        bus.publish(TaskReset("b"))

        with caplog.at_level(logging.ERROR, logger="crewupload.services.events"):
            assert bus.drain() == 2

        assert len(calls) == 2
        assert "Event consumer failed" in caplog.text

    def test_dispatcher_thread(self):
        consumer = RecordingConsumer()
        bus = EventBus(consumer, poll_interval=0.01)
        bus.start()
        try:
            assert bus.is_running
            bus.publish(TaskReset("a"))
            assert wait_for(lambda: len(consumer.events) == 1)
            assert wait_for(lambda: consumer.ticks > 0)
        finally:
            bus.stop(timeout=2)

        assert not bus.is_running

    def test_stop_delivers_leftovers(self):
        consumer = RecordingConsumer()
        bus = EventBus(consumer)
        bus.publish(TaskReset("a"))

        bus.stop()

        assert consumer.of_type(TaskReset) == [TaskReset("a")]

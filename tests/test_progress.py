"""Tests for progress sinks, reporters, tokens and deadlines."""

import threading
import time

from lineup_simlab.progress import (
    CancellationToken,
    Deadline,
    ProgressEvent,
    ProgressReporter,
    ProgressSink,
)


def _event(i):
    return ProgressEvent(stage="test", completed=i, total=10, fraction=i / 10)


class TestProgressSink:
    def test_coalesces_when_full(self):
        """A full sink drops the oldest events and keeps the latest."""
        sink = ProgressSink(capacity=3)
        for i in range(1, 6):
            sink.publish(_event(i))

        events = sink.drain()
        assert [e.completed for e in events] == [3, 4, 5]
        assert sink.dropped == 2
        assert sink.latest().completed == 5
        assert sink.drain() == []

    def test_publish_never_blocks_across_threads(self):
        """Concurrent publishers never block on a full sink."""
        sink = ProgressSink(capacity=1)

        def produce():
            for i in range(200):
                sink.publish(_event(i))

        threads = [threading.Thread(target=produce) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert not any(t.is_alive() for t in threads)
        assert len(sink.drain()) == 1


class TestProgressReporter:
    def test_fraction_and_eta(self):
        """Reporters publish fraction, label and an ETA."""
        sink = ProgressSink()
        reporter = ProgressReporter(sink, "generation", 4)

        reporter.advance(1, label="a")
        event = reporter.advance(1, label="b")

        assert event.completed == 2
        assert event.fraction == 0.5
        assert event.label == "b"
        assert event.eta_seconds is not None
        assert len(sink.drain()) == 2

    def test_without_sink(self):
        """Reporters count progress without a sink."""
        reporter = ProgressReporter(None, "simulation", 2)
        assert reporter.advance() is None
        assert reporter.completed == 1


class TestCancellationAndDeadline:
    def test_token(self):
        """Cancellation tokens latch once cancelled."""
        token = CancellationToken()
        assert not token.is_cancelled
        token.cancel()
        assert token.is_cancelled

    def test_deadline(self):
        """Deadlines expire and report remaining time."""
        assert Deadline(0).expired()
        long = Deadline(60)
        assert not long.expired()
        assert 0 < long.remaining() <= 60
        assert Deadline.at(time.monotonic() - 1).expired()

"""Progress reporting, cancellation tokens and deadlines.

Producers never block on a slow consumer: a full :class:`ProgressSink` drops its
oldest event to make room for the newest one.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and the workers."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class Deadline:
    """Wall-clock budget measured on the monotonic clock."""

    def __init__(self, seconds: float):
        if seconds < 0:
            raise ValueError(f"Deadline must be non-negative, got {seconds}")
        self._expires_at = time.monotonic() + seconds

    @classmethod
    def at(cls, monotonic_ts: float) -> "Deadline":
        deadline = cls(0)
        deadline._expires_at = monotonic_ts
        return deadline

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    completed: int
    total: int
    fraction: float
    label: str = ""
    elapsed_seconds: float = 0.0
    eta_seconds: Optional[float] = None


class ProgressSink:
    """Bounded, non-blocking event buffer.

    ``publish`` may be overridden by subclasses that want to react to events
    synchronously (for example to cancel a run after N lineups).
    """

    def __init__(self, capacity: int = 256):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._queue: "queue.Queue[ProgressEvent]" = queue.Queue(maxsize=capacity)
        self._lock = threading.Lock()
        self._latest: Optional[ProgressEvent] = None
        self.dropped = 0

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            self._latest = event
            while True:
                try:
                    self._queue.put_nowait(event)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                        self.dropped += 1
                    except queue.Empty:
                        pass

    def drain(self) -> List[ProgressEvent]:
        """Remove and return every buffered event, oldest first."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def latest(self) -> Optional[ProgressEvent]:
        return self._latest


class ProgressReporter:
    """Thread-safe counter for one stage that publishes to a sink."""

    def __init__(self, sink: Optional[ProgressSink], stage: str, total: int):
        self.sink = sink
        self.stage = stage
        self.total = max(0, int(total))
        self.completed = 0
        self._lock = threading.Lock()
        self._started = time.monotonic()

    def advance(self, n: int = 1, label: str = "") -> Optional[ProgressEvent]:
        """Record ``n`` completed units and publish an event.

        Args:
            n: Units completed since the previous call
            label: Free-form description of the unit (lineup id, batch number)

        Returns:
            The published event, or None when there is no sink
        """
        with self._lock:
            self.completed += n
            completed = self.completed
            elapsed = time.monotonic() - self._started

        fraction = min(1.0, completed / self.total) if self.total else 1.0
        eta = None
        if 0 < completed < self.total and elapsed > 0:
            eta = (self.total - completed) * elapsed / completed

        event = ProgressEvent(
            stage=self.stage,
            completed=completed,
            total=self.total,
            fraction=fraction,
            label=label,
            elapsed_seconds=elapsed,
            eta_seconds=eta,
        )
        if self.sink is None:
            return None
        try:
            self.sink.publish(event)
        except Exception:
            logger.exception("Progress sink failed on %s event", self.stage)
        return event

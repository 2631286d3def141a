# logsieve/core/control.py
"""
Cooperative cancellation and progress reporting.

Every per-record loop in the analysis core polls a CancellationToken and
ticks a ProgressReporter. Neither ever blocks: the token is a flag and the
reporter only calls the sink, it never waits for an answer.
"""

import logging
import threading
import time
from typing import Callable, Optional

from .config import get_settings
from .models import ProgressEvent, ProgressPhase

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], None]


class CancellationToken:
    """Flag the caller sets to stop a running analysis early"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self):
        return f"<CancellationToken(cancelled={self.cancelled})>"


def is_cancelled(token: Optional[CancellationToken]) -> bool:
    return token is not None and token.cancelled


class ProgressReporter:
    """
    Emits ProgressEvents at a fixed cadence.

    tick() is called once per record; an event goes out for record 0 and
    then every `interval` records. Safe to share between worker threads.
    """

    def __init__(
        self,
        sink: Optional[ProgressSink] = None,
        interval: int = 100,
        total: Optional[int] = None
    ):
        self.sink = sink
        self.interval = max(1, interval)
        self.total = total
        self._started = time.monotonic()
        self._lock = threading.Lock()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started

    def tick(self, phase: ProgressPhase, position: int, retained: int = 0):
        """Report that the record at `position` was processed"""
        if self.sink is None or position % self.interval != 0:
            return
        self.emit(phase, position, retained)

    def emit(self, phase: ProgressPhase, scanned: int, retained: int = 0):
        if self.sink is None:
            return
        event = ProgressEvent(
            phase=phase,
            records_scanned=scanned,
            records_retained=retained,
            total=self.total,
            elapsed=self.elapsed,
        )
        with self._lock:
            try:
                self.sink(event)
            except Exception as e:
                # A broken display must not kill the analysis
                logger.warning("Progress sink failed: %s", e)

    def finish(self, scanned: int, retained: int = 0):
        self.emit(ProgressPhase.DONE, scanned, retained)


def as_reporter(
    progress,
    total: Optional[int] = None,
    interval: Optional[int] = None
) -> ProgressReporter:
    """Accept a ready ProgressReporter, a bare sink callable, or None"""
    if isinstance(progress, ProgressReporter):
        return progress
    if interval is None:
        interval = get_settings().progress_interval
    return ProgressReporter(progress, interval=interval, total=total)

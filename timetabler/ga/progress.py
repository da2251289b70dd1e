"""Delivery of progress reports off the search thread."""

from __future__ import annotations
import logging
import queue
import threading
from typing import Callable

from timetabler.schemas import ProgressReport

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressReport], None]


class ProgressRelay:
    """
    Hands reports to a callback on a background thread.

    ``publish`` never waits: when the callback falls behind and the queue is
    full, the report is dropped. ``close`` delivers what is still queued,
    waiting at most ``drain_seconds``.
    """

    def __init__(self, callback: ProgressCallback, max_pending: int, drain_seconds: float) -> None:
        self.callback = callback
        self.drain_seconds = drain_seconds
        self.dropped = 0
        self._queue: "queue.Queue[ProgressReport]" = queue.Queue(maxsize=max_pending)
        self._closed = threading.Event()
        self._thread = threading.Thread(target=self._deliver, name="progress-relay", daemon=True)
        self._thread.start()

    def publish(self, report: ProgressReport) -> None:
        try:
            self._queue.put_nowait(report)
        except queue.Full:
            self.dropped += 1
            logger.debug(f"Dropped progress report for generation {report.generation}")

    def close(self) -> None:
        self._closed.set()
        self._thread.join(self.drain_seconds)
        if self._thread.is_alive():
            logger.warning(f"Progress callback still busy after {self.drain_seconds}s; not waiting for it")
        if self.dropped:
            logger.info(f"Dropped {self.dropped} progress reports while the callback was busy")

    def _deliver(self) -> None:
        while True:
            try:
                report = self._queue.get(timeout=0.05)
            except queue.Empty:
                if self._closed.is_set():
                    return
                continue
            try:
                self.callback(report)
            except Exception:
                logger.exception(f"Progress callback failed at generation {report.generation}")

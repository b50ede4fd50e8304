"""
Background sweep scheduler.

Runs the lifecycle sweep on a fixed interval in a daemon thread. A failing
sweep is logged and the next one still runs on schedule.
"""

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class SweepScheduler:
    def __init__(self, sweep: Callable[[], object], interval_seconds: float) -> None:
        self._sweep = sweep
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="proof-sweep", daemon=True)
        self._thread.start()
        logger.info("Sweep scheduler started: interval=%ss", self._interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Sweep scheduler stopped")

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._sweep()
            except Exception:
                logger.exception("Scheduled sweep failed")

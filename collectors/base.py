# ==============================================================================
# FILE: collectors/base.py
# PURPOSE: Periodic trigger shared by every collector.
# ==============================================================================
import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class PeriodicCollector:
    """
    Runs collect() on a daemon thread every `interval` seconds.

    Stopping only prevents future ticks; a tick already running finishes
    (or times out) on its own. An exception escaping collect() is logged and
    the next tick still runs.
    """

    def __init__(self, name: str, interval: float, run_immediately: bool = True):
        self.name = name
        self.interval = interval
        self.run_immediately = run_immediately
        self.ticks = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def collect(self):
        raise NotImplementedError

    def tick(self):
        try:
            self.collect()
        except Exception:
            logger.exception(f"[{self.name}] Tick failed")
        finally:
            self.ticks += 1

    def _run(self):
        logger.info(f"[{self.name}] Collector started (interval {self.interval}s)")
        if self.run_immediately:
            self.tick()
        while not self._stop_event.wait(self.interval):
            self.tick()
        logger.info(f"[{self.name}] Collector stopped")

    def start(self):
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

"""
topology/cache/scheduler.py - Periodic background reload

Runs the full reload pipeline on a daemon thread: once after an initial delay,
then at a fixed interval. A failed pass is logged and the previous snapshot
stays published; the schedule keeps running.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class ReloadScheduler:
    """Fixed-delay scheduler around a reload callable.

    Usage:
        scheduler = ReloadScheduler(pipeline.run, interval=60, initial_delay=10)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        reload: Callable[[], Any],
        interval: float,
        initial_delay: float = 0.0,
        name: str = "topology-reload",
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive: {interval}")
        self._reload = reload
        self.interval = interval
        self.initial_delay = max(initial_delay, 0.0)
        self.name = name
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self.runs = 0
        self.failures = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread (no-op if already running)."""
        if self.is_running:
            if not self._stop_event.is_set():
                return
            # stop() timed out mid-pass; wait for that loop to exit
            self._thread.join()
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"Scheduled cache reload every {self.interval}s (initial delay {self.initial_delay}s)")

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the thread to stop and wait for the current pass to finish."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if not self._thread.is_alive():
                self._thread = None

    def run_once(self) -> Any:
        """One guarded reload pass; exceptions are logged, never raised."""
        self.runs += 1
        try:
            return self._reload()
        except Exception:
            self.failures += 1
            logger.exception("Cache reload failed; keeping the previous snapshot")
            return None

    def _run(self) -> None:
        if self._stop_event.wait(self.initial_delay):
            return
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self.interval)

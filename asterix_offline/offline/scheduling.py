# =============================================================================
# asterix_offline/offline/scheduling.py
# Cancellable Recurring Tasks
# =============================================================================
"""
ScheduledTask - a recurring background call with an explicit handle.

Used for the periodic sync timer and the expired-cache sweep. cancel() only
stops future firings: a call already running finishes normally.
"""

from __future__ import annotations
import threading
from typing import Callable, Optional
import logging

logger = logging.getLogger(__name__)


class ScheduledTask:
    """
    Runs ``func`` every ``interval_ms`` on a daemon thread.

    Usage:
        with ScheduledTask(store.cleanup_expired_cache, 3_600_000, "CacheSweep"):
            ...
        # thread stopped and joined here
    """

    def __init__(
        self,
        func: Callable[[], object],
        interval_ms: int,
        name: str = "ScheduledTask",
    ):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.func = func
        self.interval_ms = interval_ms
        self.name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def start(self) -> ScheduledTask:
        """Start the background loop (no-op if already running)."""
        if self.is_running:
            return self

        # Fresh stop event: a cancelled loop still finishing its last call
        # keeps the old one and exits on its own
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._loop,
            args=(self._stop,),
            daemon=True,
            name=self.name,
        )
        self._thread.start()
        logger.debug(f"{self.name} started (every {self.interval_ms} ms)")
        return self

    def _loop(self, stop: threading.Event) -> None:
        interval = self.interval_ms / 1000.0
        while not stop.is_set():
            # Wait for interval or stop signal
            if stop.wait(timeout=interval):
                break

            try:
                self.func()
            except Exception as e:
                logger.error(f"Error in {self.name}: {e}", exc_info=True)
            finally:
                self.runs += 1

    def cancel(self, wait: bool = False, timeout: Optional[float] = 10.0) -> None:
        """
        Stop future firings.

        Args:
            wait: Join the worker thread (skipped when called from it)
            timeout: Join timeout in seconds
        """
        self._stop.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.debug(f"{self.name} cancelled")

    def __enter__(self) -> ScheduledTask:
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cancel(wait=True)

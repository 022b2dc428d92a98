# =============================================================================
# asterix_offline/offline/connectivity.py
# Connectivity Providers (injected online/offline capability)
# =============================================================================
"""
ConnectivityProvider - tells the coordinator whether the remote side is
reachable and notifies it on every online/offline edge.

Implementations:
- ManualConnectivity: push-based; the application (or a test) calls
  set_online(True/False)
- PollingConnectivity: checks a TCP endpoint on a background thread
"""

from __future__ import annotations
import socket
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)

ConnectivityCallback = Callable[[bool], None]


class ConnectivityProvider(ABC):
    """Single boolean state with edge-triggered notifications."""

    def __init__(self):
        self._callbacks: List[ConnectivityCallback] = []
        self._callbacks_lock = threading.Lock()

    @property
    @abstractmethod
    def is_online(self) -> bool:
        """Current connectivity."""

    def register_callback(self, callback: ConnectivityCallback) -> None:
        """
        Register a callback for connectivity changes.

        Args:
            callback: Called with the new state on every edge
        """
        with self._callbacks_lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def unregister_callback(self, callback: ConnectivityCallback) -> None:
        """Remove a registered callback."""
        with self._callbacks_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _notify_callbacks(self, online: bool) -> None:
        """Notify all registered callbacks of a status change."""
        with self._callbacks_lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(online)
            except Exception as e:
                logger.error(f"Error in connectivity callback: {e}")

    def close(self) -> None:
        """Stop any background activity."""


class ManualConnectivity(ConnectivityProvider):
    """
    Push-based provider.

    Usage:
        connectivity = ManualConnectivity(online=False)
        connectivity.set_online(True)   # fires callbacks once
        connectivity.set_online(True)   # no edge, no callback
    """

    def __init__(self, online: bool = True):
        super().__init__()
        self._online = bool(online)
        self._state_lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> bool:
        """
        Update the state.

        Returns:
            True if this was an edge (callbacks fired)
        """
        online = bool(online)
        with self._state_lock:
            changed = online != self._online
            self._online = online

        if changed:
            logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
            self._notify_callbacks(online)
        return changed

    def go_online(self) -> bool:
        return self.set_online(True)

    def go_offline(self) -> bool:
        return self.set_online(False)


class PollingConnectivity(ConnectivityProvider):
    """
    Poll-based provider: opens a TCP connection to the query service.

    Usage:
        connectivity = PollingConnectivity("http://localhost:19002")
        connectivity.start_monitoring()
    """

    CHECK_INTERVAL_ONLINE = 30      # Seconds between checks when online
    CHECK_INTERVAL_OFFLINE = 10     # Seconds between checks when offline
    CONNECTION_TIMEOUT = 5          # Timeout for connection tests

    def __init__(
        self,
        url: str,
        check_interval_online: Optional[float] = None,
        check_interval_offline: Optional[float] = None,
        probe: Optional[Callable[[], bool]] = None,
    ):
        super().__init__()
        parsed = urlparse(url)
        self.host = parsed.hostname or "localhost"
        self.port = parsed.port or (443 if parsed.scheme == "https" else 80)
        self.check_interval_online = check_interval_online or self.CHECK_INTERVAL_ONLINE
        self.check_interval_offline = check_interval_offline or self.CHECK_INTERVAL_OFFLINE
        self._probe = probe or self._check_endpoint
        self._online = False
        self.last_check: Optional[datetime] = None
        self.last_online: Optional[datetime] = None
        self.consecutive_failures = 0
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()

    @property
    def is_online(self) -> bool:
        return self._online

    def _check_endpoint(self) -> bool:
        """
        Check reachability of the query service host.

        Returns:
            True if a TCP connection could be opened
        """
        try:
            with socket.create_connection((self.host, self.port), timeout=self.CONNECTION_TIMEOUT):
                return True
        except OSError as e:
            logger.debug(f"Connectivity probe to {self.host}:{self.port} failed: {e}")
            return False

    def check_connection(self) -> bool:
        """
        Perform a check and update state (fires callbacks on an edge).

        Returns:
            Updated online flag
        """
        old = self._online
        self.last_check = datetime.now()

        try:
            online = bool(self._probe())
        except Exception as e:
            logger.error(f"Error in connection check: {e}")
            online = False

        self._online = online
        if online:
            self.last_online = self.last_check
            self.consecutive_failures = 0
        else:
            self.consecutive_failures += 1

        if old != online:
            logger.info(f"Connection status changed: {'online' if online else 'offline'}")
            self._notify_callbacks(online)

        return online

    def start_monitoring(self) -> None:
        """Start background connection monitoring (runs one check first)."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self.check_connection()
        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectionMonitor"
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background connection monitoring."""
        self._stop_monitoring.set()
        if self._monitor_thread and self._monitor_thread is not threading.current_thread():
            self._monitor_thread.join(timeout=5)
        self._monitor_thread = None
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        """Background monitoring loop."""
        while not self._stop_monitoring.is_set():
            interval = (
                self.check_interval_online
                if self._online
                else self.check_interval_offline
            )

            # Wait for interval or stop signal
            if self._stop_monitoring.wait(timeout=interval):
                break

            self.check_connection()

    def close(self) -> None:
        self.stop_monitoring()

# geo_sync_API/app/core/Sync/connectivity.py
# Reachability gate: a sync attempt proceeds only when the network signal is up
# and a remote API base is configured.
import socket
import threading
from typing import Callable, List, Optional
from urllib.parse import urlparse

from loguru import logger


class NetworkProbe:
    """Connectivity signal: can a TCP connection be opened to the API host (or an explicit probe host)?"""

    def __init__(self, api_base: str = "", host: Optional[str] = None, port: Optional[int] = None,
                 timeout: float = 2.0):
        parsed = urlparse(api_base) if api_base else None
        self.host = host or (parsed.hostname if parsed else None)
        default_port = 443 if parsed and parsed.scheme == "https" else 80
        self.port = port or (parsed.port if parsed and parsed.port else default_port)
        self.timeout = timeout

    def __call__(self) -> bool:
        if not self.host:
            return False
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError as e:
            logger.debug(f"Network probe to {self.host}:{self.port} failed: {e}")
            return False


class ReachabilityGate:
    def __init__(self, api_base: str, signal: Callable[[], bool]):
        self.api_base = api_base or ""
        self._signal = signal
        self._last_signal = False
        self._listeners: List[Callable[[bool], None]] = []
        self._lock = threading.Lock()

    @property
    def has_remote(self) -> bool:
        return bool(self.api_base.strip())

    def _read_signal(self) -> bool:
        try:
            self._last_signal = bool(self._signal())
        except Exception as e:
            logger.warning(f"Connectivity signal raised, using cached value {self._last_signal}: {e}")
        return self._last_signal

    def is_online(self) -> bool:
        if not self.has_remote:
            return False
        return self._read_signal()

    def add_listener(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Registers a callback for online/offline transitions. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)
        return unsubscribe

    def refresh(self) -> bool:
        """Re-evaluates the gate and notifies listeners if the state changed."""
        previous = self.has_remote and self._last_signal
        current = self.is_online()
        if current != previous:
            logger.info(f"Connectivity changed: {'online' if current else 'offline'}")
            with self._lock:
                listeners = list(self._listeners)
            for callback in listeners:
                try:
                    callback(current)
                except Exception as e:
                    logger.error(f"Connectivity listener {callback!r} failed: {e}")
        return current

    def dispose(self):
        with self._lock:
            self._listeners.clear()

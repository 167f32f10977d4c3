# geo_sync_API/app/core/Sync/context.py
# Explicitly owned sync state: the local store handle, the transport and the
# reachability gate, with an open/close lifecycle.
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from loguru import logger

from geo_sync_API.app.core.DB_Management.Geo_DB import GeoDB
from .connectivity import NetworkProbe, ReachabilityGate
from .transport import HttpApiTransport, SyncTransport


class SyncContext:
    def __init__(self,
                 db_path: Union[str, Path],
                 device_code: str,
                 api_base: str = "",
                 reset_token: str = "",
                 transport: Optional[SyncTransport] = None,
                 connectivity_signal: Optional[Callable[[], bool]] = None,
                 http_timeout: float = 30):
        if not device_code:
            raise ValueError("device_code cannot be empty")
        self.db_path = db_path
        self.device_code = device_code
        self.api_base = (api_base or "").strip()
        self.reset_token = reset_token or ""
        self.http_timeout = http_timeout
        self._transport = transport
        self._connectivity_signal = connectivity_signal

        self.db: Optional[GeoDB] = None
        self.transport: Optional[SyncTransport] = None
        self.gate: Optional[ReachabilityGate] = None

    @classmethod
    def from_settings(cls, settings: Dict[str, Any], **overrides) -> 'SyncContext':
        kwargs = dict(
            db_path=settings["DB_PATH"],
            device_code=settings["DEVICE_CODE"],
            api_base=settings.get("API_BASE", ""),
            reset_token=settings.get("RESET_TOKEN", ""),
            http_timeout=settings.get("HTTP_TIMEOUT", 30),
        )
        if "connectivity_signal" not in overrides and settings.get("API_BASE"):
            overrides["connectivity_signal"] = NetworkProbe(
                settings["API_BASE"],
                host=settings.get("PROBE_HOST") or None,
                port=settings.get("PROBE_PORT") or None,
                timeout=settings.get("PROBE_TIMEOUT", 2.0),
            )
        kwargs.update(overrides)
        return cls(**kwargs)

    @property
    def is_open(self) -> bool:
        return self.db is not None

    def open(self) -> 'SyncContext':
        if self.is_open:
            return self
        self.db = GeoDB(self.db_path, device_code=self.device_code)
        if self._transport is not None:
            self.transport = self._transport
        elif self.api_base:
            self.transport = HttpApiTransport(self.api_base, timeout=self.http_timeout)
        signal = self._connectivity_signal or (lambda: self.transport is not None)
        self.gate = ReachabilityGate(self.api_base, signal)
        logger.info(f"Sync context opened (device={self.device_code}, remote={self.api_base or 'none'})")
        return self

    def close(self):
        if self.gate is not None:
            self.gate.dispose()
        if self.transport is not None:
            self.transport.close()
        if self.db is not None:
            self.db.close_connection()
        self.db = None
        self.transport = None
        self.gate = None
        logger.info(f"Sync context closed (device={self.device_code})")

    def __enter__(self) -> 'SyncContext':
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

# geo_sync_API/app/core/Sync/__init__.py
from .core import SyncManager
from .context import SyncContext
from .models import CloudQueueEntry, OutboxEntry, SyncReport
from .exceptions import (SyncError, TransportError, RemoteRejectedError, PayloadError, ApplyError,
                         SyncInProgressError)
from .transport import SyncTransport, HttpApiTransport
from .conflict import ConflictResolver, LastWriteWinsStrategy
from .connectivity import NetworkProbe, ReachabilityGate
from .monitor import ConnectivityMonitor
from .field_mapping import FIELD_MAPPINGS, to_local, to_remote

__all__ = [
    "SyncManager",
    "SyncContext",
    "CloudQueueEntry",
    "OutboxEntry",
    "SyncReport",
    "SyncError",
    "TransportError",
    "RemoteRejectedError",
    "PayloadError",
    "ApplyError",
    "SyncInProgressError",
    "SyncTransport",
    "HttpApiTransport",
    "ConflictResolver",
    "LastWriteWinsStrategy",
    "NetworkProbe",
    "ReachabilityGate",
    "ConnectivityMonitor",
    "FIELD_MAPPINGS",
    "to_local",
    "to_remote",
]

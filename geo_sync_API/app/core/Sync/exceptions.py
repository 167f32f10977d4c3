# geo_sync_API/app/core/Sync/exceptions.py
from typing import Optional


class SyncError(Exception):
    """Base exception for the sync engine."""
    pass


class TransportError(SyncError):
    """Represents an error during data transport (fetch/send), including non-2xx responses."""
    def __init__(self, message, status_code: Optional[int] = None, *args):
        super().__init__(message, *args)
        self.status_code = status_code

    def __str__(self):
        base = super().__str__()
        return f"{base} (HTTP {self.status_code})" if self.status_code else base


class RemoteRejectedError(TransportError):
    """The remote was reachable but its response did not confirm success."""
    pass


class PayloadError(SyncError):
    """A queue entry's payload is unusable (unparsable JSON, missing uuid)."""
    def __init__(self, message, queue_id=None, table=None, record_uuid=None, *args):
        super().__init__(message, *args)
        self.queue_id = queue_id
        self.table = table
        self.record_uuid = record_uuid

    def __str__(self):
        base = super().__str__()
        details = []
        if self.queue_id is not None: details.append(f"QueueID: {self.queue_id}")
        if self.table: details.append(f"Table: {self.table}")
        if self.record_uuid: details.append(f"RecordUUID: {self.record_uuid}")
        return f"{base} ({', '.join(details)})" if details else base


class ApplyError(SyncError):
    """Represents an error applying a cloud change locally."""
    def __init__(self, message, queue_id=None, record_uuid=None, *args):
        super().__init__(message, *args)
        self.queue_id = queue_id
        self.record_uuid = record_uuid

    def __str__(self):
        base = super().__str__()
        details = []
        if self.queue_id is not None: details.append(f"QueueID: {self.queue_id}")
        if self.record_uuid: details.append(f"RecordUUID: {self.record_uuid}")
        return f"{base} ({', '.join(details)})" if details else base


class SyncInProgressError(SyncError):
    """Another sync cycle (or reset) currently holds the sync guard."""
    pass

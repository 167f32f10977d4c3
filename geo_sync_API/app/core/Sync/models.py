# geo_sync_API/app/core/Sync/models.py
import json
import sqlite3
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, Tuple, Union
from datetime import datetime, timezone

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import PayloadError


# Helper to parse stored timestamps (ISO-8601, assumed UTC when naive)
def parse_timestamp(ts_str: Optional[str]) -> Optional[datetime]:
    if not ts_str:
        return None
    try:
        dt = datetime.fromisoformat(str(ts_str).replace('Z', '+00:00'))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        try:
            # Fallback for SQLite's CURRENT_TIMESTAMP format
            dt = datetime.strptime(str(ts_str), '%Y-%m-%d %H:%M:%S')
            return dt.replace(tzinfo=timezone.utc)
        except ValueError:
            logger.warning(f"Could not parse timestamp string: {ts_str}")
            return None


def unwrap_payload(raw: Union[str, Dict[str, Any], None]) -> Tuple[Dict[str, Any], Optional[str]]:
    """
    Decodes a queue payload into (record data, envelope operation).

    Payloads are either the envelope {"operation": ..., "data": {...}} or a bare record dict,
    stored as a JSON string or already decoded. Raises ValueError when it cannot be decoded
    into a dict.
    """
    if raw is None or raw == "":
        return {}, None
    decoded = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(decoded, dict):
        raise ValueError(f"Payload must decode to an object, got {type(decoded).__name__}")
    envelope_op = decoded.get("operation")
    data = decoded.get("data", decoded)
    if not isinstance(data, dict):
        raise ValueError(f"Payload 'data' must be an object, got {type(data).__name__}")
    return dict(data), envelope_op


class CloudQueueEntry(BaseModel):
    """One element of the remote change queue (GET /api/get_sync_queue)."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: int
    table_name: str = Field(..., min_length=1)
    record_uuid: Optional[str] = None
    operation: Optional[str] = None
    json_payload: Union[str, Dict[str, Any], None] = None
    origin_device_code: Optional[str] = None

    @field_validator("table_name")
    @classmethod
    def normalise_table_name(cls, v: str) -> str:
        return v.strip().lower()

    def decode(self) -> Tuple[Dict[str, Any], str]:
        """Returns (record data, upper-cased operation); the row-level operation wins over the envelope's."""
        try:
            data, envelope_op = unwrap_payload(self.json_payload)
        except ValueError as e:
            raise PayloadError(f"Unparsable cloud payload: {e}", queue_id=self.id, table=self.table_name,
                               record_uuid=self.record_uuid) from e
        operation = (self.operation or envelope_op or "UPSERT").upper()
        return data, operation


@dataclass
class OutboxEntry:
    id: int
    table_name: str
    record_uuid: str
    operation: str  # 'UPSERT' | 'DELETE'
    origin_device_code: str
    created_at: str
    json_payload: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_row(cls, row: Union[sqlite3.Row, Dict[str, Any]]):
        """Creates an OutboxEntry from a sync_queue row."""
        return cls(
            id=row['id'],
            table_name=row['table_name'],
            record_uuid=row['record_uuid'],
            operation=row['operation'],
            origin_device_code=row['origin_device_code'],
            created_at=row['created_at'],
            json_payload=row['json_payload'],
        )

    def decode(self) -> Dict[str, Any]:
        try:
            data, _ = unwrap_payload(self.json_payload)
        except ValueError as e:
            raise PayloadError(f"Unparsable outbox payload: {e}", queue_id=self.id, table=self.table_name,
                               record_uuid=self.record_uuid) from e
        return data


@dataclass
class SyncReport:
    """Counters for one sync cycle."""
    # Phase 1 (cloud -> local)
    fetched: int = 0
    applied: int = 0
    kept_local: int = 0
    already_acked: int = 0
    pull_failed: int = 0
    fetch_error: Optional[str] = None
    # Phase 2 (local -> cloud)
    pushed: int = 0
    push_failed: int = 0
    rejected: int = 0
    invalid: int = 0
    deferred: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

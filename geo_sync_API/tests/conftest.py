# conftest.py
# Shared fixtures: tmp_path-backed stores and an in-memory stand-in for the cloud API.
#
# Imports
import json
from typing import Any, Dict, List, Optional
#
# Third-Party Imports
import pytest
#
# Local Imports
from geo_sync_API.app.core.DB_Management.Geo_DB import GeoDB
from geo_sync_API.app.core.Sync import (
    CloudQueueEntry, RemoteRejectedError, SyncContext, SyncManager, SyncTransport, TransportError
)
from geo_sync_API.app.core.Sync.field_mapping import to_remote
#
#######################################################################################################################
#
# Functions:

class FakeRemote(SyncTransport):
    """In-memory cloud: per-table record store plus a change queue, with switchable failures."""

    def __init__(self, reset_token: str = "s3cret", echo_pushes: bool = False):
        self.records: Dict[str, Dict[str, Dict[str, Any]]] = {"countries": {}, "states": {}, "cities": {}}
        self.queue: List[Dict[str, Any]] = []
        self.pushes: List[Dict[str, Any]] = []
        self.calls: List[str] = []
        self.reset_token = reset_token
        self.echo_pushes = echo_pushes
        self.online = True
        self.fail_fetch = False
        self.fail_uuids = set()
        self.reject_uuids = set()
        self.fail_next = 0
        self._next_id = 1000

    def add_cloud_entry(self, table: str, record_uuid: Optional[str], operation: Optional[str],
                        payload: Any, entry_id: Optional[int] = None) -> int:
        if entry_id is None:
            self._next_id += 1
            entry_id = self._next_id
        if isinstance(payload, dict):
            payload = json.dumps(to_remote(table, payload))
        self.queue.append({
            "id": entry_id,
            "table_name": table,
            "record_uuid": record_uuid,
            "operation": operation,
            "json_payload": payload,
        })
        return entry_id

    def fetch_sync_queue(self) -> List[CloudQueueEntry]:
        self.calls.append("fetch")
        if self.fail_fetch:
            raise TransportError("Failed to fetch sync queue", status_code=502)
        return [CloudQueueEntry.model_validate(raw) for raw in self.queue]

    def push_record(self, table: str, operation: str, record_uuid: str, data: Dict[str, Any]) -> bool:
        self.calls.append(f"push:{table}:{record_uuid}")
        self.pushes.append({"table": table, "operation": operation, "uuid": record_uuid, "data": dict(data)})
        if self.fail_next > 0:
            self.fail_next -= 1
            raise TransportError(f"save_{table} unavailable", status_code=503)
        if record_uuid in self.fail_uuids:
            raise TransportError(f"save_{table} failed for {record_uuid}", status_code=500)
        if record_uuid in self.reject_uuids:
            raise RemoteRejectedError(f"save_{table} did not confirm success for {record_uuid}", status_code=200)

        existing = self.records[table].get(record_uuid, {})
        self.records[table][record_uuid] = {**existing, **data}
        if self.echo_pushes:
            self._next_id += 1
            self.queue.append({
                "id": self._next_id,
                "table_name": table,
                "record_uuid": record_uuid,
                "operation": operation,
                "json_payload": json.dumps({"operation": operation, "data": data}),
            })
        return True

    def truncate_all(self, reset_token: str) -> bool:
        self.calls.append("truncate_all")
        if reset_token != self.reset_token:
            return False
        for table in self.records.values():
            table.clear()
        self.queue.clear()
        return True


@pytest.fixture
def device_code():
    return "DEV-A"


@pytest.fixture
def db_path(tmp_path):
    """Provides a temporary path for the database file for each test."""
    return tmp_path / "geo_sync_test.db"


@pytest.fixture
def geo_db(db_path, device_code):
    db = GeoDB(db_path, device_code)
    yield db
    db.close_connection()


@pytest.fixture
def fake_remote():
    return FakeRemote()


def make_context(db_path, device_code, remote: FakeRemote, api_base: str = "http://cloud.test") -> SyncContext:
    return SyncContext(db_path, device_code, api_base=api_base, reset_token=remote.reset_token,
                       transport=remote, connectivity_signal=lambda: remote.online)


@pytest.fixture
def sync_context(db_path, device_code, fake_remote):
    context = make_context(db_path, device_code, fake_remote).open()
    yield context
    context.close()


@pytest.fixture
def sync_manager(sync_context):
    return SyncManager(sync_context)


@pytest.fixture
def context_factory():
    """Opens extra contexts (e.g. a second device) and closes them after the test."""
    opened = []

    def _factory(db_path, device_code, remote: FakeRemote, api_base: str = "http://cloud.test") -> SyncContext:
        context = make_context(db_path, device_code, remote, api_base=api_base).open()
        opened.append(context)
        return context

    yield _factory
    for context in opened:
        context.close()


@pytest.fixture(scope="session")
def remote_factory():
    return FakeRemote

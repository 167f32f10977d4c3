# test_geo_db.py
#
#
# Imports
import json
import sqlite3
from unittest.mock import patch
#
# Third-Party Imports
import pytest
#
# Local Imports
from geo_sync_API.app.core.DB_Management.Geo_DB import (
    GeoDB,
    GeoDBError,
    SchemaError,
    InputError,
    ConflictError,
    ChildRecordsExistError,
    RecordNotFoundError,
    SOURCE_CLOUD,
    SOURCE_LOCAL,
)
#
#######################################################################################################################
#
# Functions:

def _queue_rows(db: GeoDB):
    return [dict(r) for r in db.execute_query("SELECT * FROM sync_queue ORDER BY id").fetchall()]


class TestDBInitialization:
    def test_db_creation(self, db_path, device_code):
        assert not db_path.exists()
        db = GeoDB(db_path, device_code)
        assert db_path.exists()
        assert db.device_code == device_code

        conn = db.get_connection()
        version = conn.execute("SELECT version FROM db_schema_version WHERE schema_name = ?",
                               (db._SCHEMA_NAME,)).fetchone()['version']
        assert version == db._CURRENT_SCHEMA_VERSION
        tables = {r['name'] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"countries", "states", "cities", "sync_queue", "sync_ack"} <= tables
        db.close_connection()

    def test_missing_device_code(self, db_path):
        with pytest.raises(ValueError, match="Device code cannot be empty or None."):
            GeoDB(db_path, "")
        with pytest.raises(ValueError, match="Device code cannot be empty or None."):
            GeoDB(db_path, None)

    def test_reopen_db_keeps_data(self, db_path, device_code):
        db1 = GeoDB(db_path, device_code)
        country_uuid = db1.save_country("Testland")
        db1.close_connection()

        db2 = GeoDB(db_path, device_code)
        assert db2.get_record("countries", country_uuid)["name"] == "Testland"
        assert db2.count_outbox_entries() == 1
        db2.close_connection()

    def test_schema_newer_than_code(self, db_path, device_code):
        db = GeoDB(db_path, device_code)
        db.execute_query("UPDATE db_schema_version SET version = ? WHERE schema_name = ?",
                         (GeoDB._CURRENT_SCHEMA_VERSION + 1, GeoDB._SCHEMA_NAME))
        db.close_connection()

        with pytest.raises(GeoDBError, match="is newer than supported by code") as exc_info:
            GeoDB(db_path, device_code)
        assert isinstance(exc_info.value.__cause__, SchemaError)


class TestEntityStore:
    def test_save_country_generates_uuid_and_enqueues(self, geo_db: GeoDB):
        country_uuid = geo_db.save_country("Testland")
        assert len(country_uuid) == 32
        int(country_uuid, 16)  # hex only

        row = geo_db.get_record("countries", country_uuid)
        assert row["name"] == "Testland"
        assert row["deleted_at"] is None
        assert row["last_updated"].endswith("Z")

        queue = _queue_rows(geo_db)
        assert len(queue) == 1
        assert queue[0]["operation"] == "UPSERT"
        assert queue[0]["table_name"] == "countries"
        assert queue[0]["record_uuid"] == country_uuid
        assert queue[0]["origin_device_code"] == geo_db.device_code
        payload = json.loads(queue[0]["json_payload"])
        assert payload["operation"] == "UPSERT"
        assert payload["data"]["uuid"] == country_uuid
        assert payload["data"]["name"] == "Testland"

    def test_save_is_upsert_by_uuid(self, geo_db: GeoDB):
        country_uuid = geo_db.save_country("Old Name")
        geo_db.save_country("New Name", record_uuid=country_uuid, last_updated="2030-01-01T00:00:00.000Z")

        rows = geo_db.list_countries()
        assert len(rows) == 1
        assert rows[0]["name"] == "New Name"
        assert rows[0]["last_updated"] == "2030-01-01T00:00:00.000Z"
        assert geo_db.count_outbox_entries() == 2

    def test_save_state_payload_uses_local_parent_column(self, geo_db: GeoDB):
        country_uuid = geo_db.save_country("Testland")
        state_uuid = geo_db.save_state("North", country_uuid)
        payload = json.loads(_queue_rows(geo_db)[-1]["json_payload"])
        assert payload["data"]["country_uuid"] == country_uuid
        assert payload["data"]["uuid"] == state_uuid

    def test_list_orders_by_name_and_joins_parent(self, geo_db: GeoDB):
        country_uuid = geo_db.save_country("Testland")
        geo_db.save_state("Zeta", country_uuid)
        geo_db.save_state("Alpha", country_uuid)

        states = geo_db.list_states()
        assert [s["name"] for s in states] == ["Alpha", "Zeta"]
        assert all(s["country_name"] == "Testland" for s in states)

    def test_list_with_missing_parent_yields_null_name(self, geo_db: GeoDB):
        geo_db.save_city("Orphan City", "f" * 32)
        cities = geo_db.list_cities()
        assert len(cities) == 1
        assert cities[0]["state_name"] is None

    @pytest.mark.parametrize("table, record, message", [
        ("countries", {"name": "   "}, "Name cannot be empty"),
        ("states", {"name": "North"}, "'country_uuid' is required"),
        ("cities", {"name": "Springfield", "state_uuid": ""}, "'state_uuid' is required"),
        ("planets", {"name": "Mars"}, "Unknown entity table"),
    ])
    def test_invalid_input_writes_nothing(self, geo_db: GeoDB, table, record, message):
        with pytest.raises(InputError, match=message):
            geo_db.save_record(table, record)
        assert geo_db.count_outbox_entries() == 0

    def test_enqueue_failure_rolls_back_entity_write(self, geo_db: GeoDB):
        with patch.object(GeoDB, "_enqueue", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(GeoDBError, match="Failed to save countries record"):
                geo_db.save_country("Ghostland", record_uuid="a" * 32)
        assert geo_db.get_record("countries", "a" * 32) is None
        assert geo_db.count_outbox_entries() == 0


class TestSoftDelete:
    def test_soft_delete_hides_from_list_but_keeps_row(self, geo_db: GeoDB):
        country_uuid = geo_db.save_country("Testland")
        assert geo_db.soft_delete_country(country_uuid) is True

        assert geo_db.list_countries() == []
        row = geo_db.get_record("countries", country_uuid)
        assert row is not None
        assert row["deleted_at"] is not None
        assert row["last_updated"] == row["deleted_at"]

        queue = _queue_rows(geo_db)
        assert [q["operation"] for q in queue] == ["UPSERT", "DELETE"]
        delete_payload = json.loads(queue[-1]["json_payload"])
        assert delete_payload == {"operation": "DELETE",
                                  "data": {"uuid": country_uuid, "deleted_at": row["deleted_at"]}}

    def test_soft_delete_is_idempotent(self, geo_db: GeoDB):
        country_uuid = geo_db.save_country("Testland")
        geo_db.soft_delete_country(country_uuid)
        assert geo_db.soft_delete_country(country_uuid) is True
        assert geo_db.count_outbox_entries() == 2

    def test_soft_delete_unknown_record(self, geo_db: GeoDB):
        with pytest.raises(RecordNotFoundError):
            geo_db.soft_delete_city("0" * 32)
        assert geo_db.count_outbox_entries() == 0

    def test_has_children_counts_only_active_children(self, geo_db: GeoDB):
        country_uuid = geo_db.save_country("Testland")
        assert geo_db.has_states(country_uuid) is False
        state_uuid = geo_db.save_state("North", country_uuid)
        assert geo_db.has_states(country_uuid) is True

        assert geo_db.has_cities(state_uuid) is False
        city_uuid = geo_db.save_city("Springfield", state_uuid)
        assert geo_db.has_cities(state_uuid) is True
        geo_db.soft_delete_city(city_uuid)
        assert geo_db.has_cities(state_uuid) is False

    def test_guarded_delete_refuses_parent_with_children(self, geo_db: GeoDB):
        country_uuid = geo_db.save_country("Testland")
        geo_db.save_state("North", country_uuid)
        before = geo_db.count_outbox_entries()

        with pytest.raises(ChildRecordsExistError) as exc_info:
            geo_db.soft_delete_guarded("countries", country_uuid)
        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.entity_id == country_uuid
        assert geo_db.get_record("countries", country_uuid)["deleted_at"] is None
        assert geo_db.count_outbox_entries() == before

    def test_guarded_delete_allows_leaf(self, geo_db: GeoDB):
        country_uuid = geo_db.save_country("Testland")
        state_uuid = geo_db.save_state("North", country_uuid)
        assert geo_db.soft_delete_guarded("states", state_uuid) is True
        assert geo_db.soft_delete_guarded("countries", country_uuid) is True
        assert geo_db.list_countries() == []


class TestOutboxAndLedger:
    def test_unacked_entries_are_oldest_first_and_exclude_acked(self, geo_db: GeoDB):
        geo_db.save_country("A")
        geo_db.save_country("B")
        geo_db.save_country("C")
        entries = geo_db.get_unacked_outbox_entries()
        ids = [e["id"] for e in entries]
        assert ids == sorted(ids)

        geo_db.ack(ids[0], SOURCE_LOCAL)
        remaining = [e["id"] for e in geo_db.get_unacked_outbox_entries()]
        assert remaining == ids[1:]

    def test_ack_is_idempotent(self, geo_db: GeoDB):
        geo_db.ack(42, SOURCE_CLOUD)
        geo_db.ack(42, SOURCE_CLOUD)
        assert geo_db.count_acks(SOURCE_CLOUD) == 1
        assert geo_db.is_acked(42, SOURCE_CLOUD) is True
        assert geo_db.is_acked(42, SOURCE_LOCAL) is False

    def test_ack_rejects_unknown_source(self, geo_db: GeoDB):
        with pytest.raises(InputError):
            geo_db.ack(1, "satellite")

    def test_acks_are_scoped_to_device(self, db_path, geo_db: GeoDB):
        geo_db.ack(7, SOURCE_CLOUD)
        other_device = GeoDB(db_path, "DEV-B")
        assert other_device.is_acked(7, SOURCE_CLOUD) is False
        other_device.close_connection()

    def test_retire_outbox_entry_acks_and_deletes(self, geo_db: GeoDB):
        geo_db.save_country("Testland")
        queue_id = geo_db.get_unacked_outbox_entries()[0]["id"]
        geo_db.retire_outbox_entry(queue_id)
        assert geo_db.count_outbox_entries() == 0
        assert geo_db.is_acked(queue_id, SOURCE_LOCAL) is True

    def test_enqueue_rejects_unknown_operation(self, geo_db: GeoDB):
        with pytest.raises(InputError, match="Unsupported outbox operation"):
            geo_db.enqueue("countries", "a" * 32, "MERGE", {})


class TestRemoteWrites:
    def test_upsert_from_remote_does_not_enqueue(self, geo_db: GeoDB):
        geo_db.upsert_from_remote("countries", {"uuid": "c" * 32, "name": "Cloudland",
                                                "last_updated": "2024-01-01T00:00:00.000Z", "deleted_at": None})
        assert geo_db.get_record("countries", "c" * 32)["name"] == "Cloudland"
        assert geo_db.count_outbox_entries() == 0

    def test_mark_deleted_from_remote_missing_row_is_noop(self, geo_db: GeoDB):
        touched = geo_db.mark_deleted_from_remote("states", "d" * 32, "2024-01-01T00:00:00.000Z",
                                                  "2024-01-01T00:00:00.000Z")
        assert touched == 0
        assert geo_db.get_record("states", "d" * 32) is None


def test_reset_local_clears_everything(geo_db: GeoDB):
    country_uuid = geo_db.save_country("Testland")
    geo_db.save_state("North", country_uuid)
    geo_db.ack(1, SOURCE_CLOUD)

    geo_db.reset_local()

    assert geo_db.list_countries() == []
    assert geo_db.get_record("countries", country_uuid) is None
    assert geo_db.count_outbox_entries() == 0
    assert geo_db.count_acks() == 0

#
# End of test_geo_db.py
#######################################################################################################################

# Geo_DB.py
# Description: DB Library for the offline geography store (countries, states, cities),
#   the local outbox queue of pending uploads and the sync acknowledgment ledger.
#
# Imports
import json
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
#
# Third-Party Libraries
from loguru import logger
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# --- Custom Exceptions ---
class GeoDBError(Exception):
    """Base exception for GeoDB related errors."""
    pass


class SchemaError(GeoDBError):
    """Exception for schema version mismatches or migration failures."""
    pass


class InputError(ValueError):
    """Custom exception for input validation errors."""
    pass


class ConflictError(GeoDBError):
    """Indicates the requested change cannot be applied to the current state of a record."""

    def __init__(self, message="Conflict detected.", entity: Optional[str] = None, entity_id: Any = None):
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id

    def __str__(self):
        base = super().__str__()
        details = []
        if self.entity:
            details.append(f"Entity: {self.entity}")
        if self.entity_id:
            details.append(f"ID: {self.entity_id}")
        return f"{base} ({', '.join(details)})" if details else base


class ChildRecordsExistError(ConflictError):
    """Raised when a guarded delete is refused because active child records still exist."""
    pass


class RecordNotFoundError(ConflictError):
    """The targeted record does not exist in the local store."""
    pass


# --- Entity configuration ---
# parent_col: column holding the parent uuid; parent_name_alias: display column produced by the list join.
ENTITY_CONFIG: Dict[str, Dict[str, Optional[str]]] = {
    "countries": {"parent_col": None, "parent_table": None, "parent_name_alias": None, "child_table": "states"},
    "states": {"parent_col": "country_uuid", "parent_table": "countries", "parent_name_alias": "country_name",
               "child_table": "cities"},
    "cities": {"parent_col": "state_uuid", "parent_table": "states", "parent_name_alias": "state_name",
               "child_table": None},
}

OPERATION_UPSERT = "UPSERT"
OPERATION_DELETE = "DELETE"
SOURCE_LOCAL = "local"
SOURCE_CLOUD = "cloud"


def get_entity_config(table: str) -> Dict[str, Optional[str]]:
    """Gets the hierarchy configuration for an entity table, raising InputError for unknown tables."""
    config = ENTITY_CONFIG.get(table)
    if config is None:
        raise InputError(f"Unknown entity table: '{table}'. Expected one of {sorted(ENTITY_CONFIG)}.")
    return config


def get_utc_timestamp_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


# --- Database Class ---
class GeoDB:
    """
    Manages the SQLite connection and operations for the offline geography store.

    Every local mutation writes the entity row and its outbox entry in one transaction,
    stamped with the configured device code. The acknowledgment ledger records which
    queue entries this device has already processed per direction (local/cloud).
    """
    _CURRENT_SCHEMA_VERSION = 1
    _SCHEMA_NAME = "geo_sync_schema"

    _FULL_SCHEMA_SQL_V1 = """
/*───────────────────────────────────────────────────────────────
  Geo Sync Schema  –  Version 1
───────────────────────────────────────────────────────────────*/
CREATE TABLE IF NOT EXISTS db_schema_version(
  schema_name TEXT PRIMARY KEY NOT NULL,
  version     INTEGER NOT NULL
);
INSERT OR IGNORE INTO db_schema_version(schema_name,version)
VALUES('geo_sync_schema',0);

/*----------------------------------------------------------------
  1. Entity tables (soft-deletable, last-writer-wins on last_updated)
----------------------------------------------------------------*/
CREATE TABLE IF NOT EXISTS countries(
  uuid          TEXT PRIMARY KEY,
  name          TEXT NOT NULL,
  deleted_at    TEXT NULL,
  last_updated  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS states(
  uuid          TEXT PRIMARY KEY,
  name          TEXT NOT NULL,
  country_uuid  TEXT NULL,
  deleted_at    TEXT NULL,
  last_updated  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS cities(
  uuid          TEXT PRIMARY KEY,
  name          TEXT NOT NULL,
  state_uuid    TEXT NULL,
  deleted_at    TEXT NULL,
  last_updated  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_states_country ON states(country_uuid);
CREATE INDEX IF NOT EXISTS idx_cities_state ON cities(state_uuid);

/*----------------------------------------------------------------
  2. Outbox queue (append-only until confirmed upload)
----------------------------------------------------------------*/
CREATE TABLE IF NOT EXISTS sync_queue(
  id                  INTEGER PRIMARY KEY AUTOINCREMENT,
  origin_device_code  TEXT NOT NULL,
  table_name          TEXT NOT NULL,
  record_uuid         TEXT NOT NULL,
  operation           TEXT NOT NULL CHECK(operation IN ('UPSERT','DELETE')),
  json_payload        TEXT NOT NULL,
  created_at          TEXT NOT NULL
);

/*----------------------------------------------------------------
  3. Acknowledgment ledger (insert-or-ignore, never deleted)
----------------------------------------------------------------*/
CREATE TABLE IF NOT EXISTS sync_ack(
  id                     INTEGER PRIMARY KEY AUTOINCREMENT,
  queue_id               INTEGER NOT NULL,
  synced_by_device_code  TEXT NOT NULL,
  source_type            TEXT NOT NULL CHECK(source_type IN ('local','cloud'))
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_sync_ack
  ON sync_ack(queue_id, synced_by_device_code, source_type);
CREATE INDEX IF NOT EXISTS idx_sync_ack_lookup
  ON sync_ack(queue_id, synced_by_device_code, source_type);

UPDATE db_schema_version SET version = 1 WHERE schema_name = 'geo_sync_schema' AND version = 0;
"""

    def __init__(self, db_path: Union[str, Path], device_code: str):
        if isinstance(db_path, Path):
            self.is_memory_db = False
            self.db_path = db_path.resolve()
        else:
            self.is_memory_db = (db_path == ':memory:')
            self.db_path = Path(db_path).resolve() if not self.is_memory_db else Path(":memory:")
        self.db_path_str = str(self.db_path) if not self.is_memory_db else ':memory:'

        if not device_code:
            raise ValueError("Device code cannot be empty or None.")
        self.device_code = device_code

        if not self.is_memory_db:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise GeoDBError(f"Failed to create database directory {self.db_path.parent}: {e}") from e

        logger.info(f"Initializing GeoDB for path: {self.db_path_str} [Device: {self.device_code}]")
        self._local = threading.local()
        try:
            self._initialize_schema()
        except (GeoDBError, sqlite3.Error) as e:
            logger.critical(f"FATAL: DB Initialization failed for {self.db_path_str}: {e}")
            self.close_connection()
            raise GeoDBError(f"Database initialization failed: {e}") from e

    # --- Connection Management ---
    def _get_thread_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn:
            try:
                conn.execute("SELECT 1")
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                logger.warning(f"Thread-local connection for {self.db_path_str} became unusable. Reopening.")
                conn = None

        if not conn:
            try:
                # isolation_level=None: statements autocommit unless inside an explicit BEGIN.
                conn = sqlite3.connect(
                    self.db_path_str,
                    check_same_thread=False,
                    timeout=15,
                    isolation_level=None,
                )
                conn.row_factory = sqlite3.Row
                if not self.is_memory_db:
                    conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA foreign_keys = ON;")
                self._local.conn = conn
                logger.debug(f"Opened SQLite connection to {self.db_path_str} for thread {threading.get_ident()}")
            except sqlite3.Error as e:
                logger.error(f"Failed to connect to database {self.db_path_str}: {e}")
                self._local.conn = None
                raise GeoDBError(f"Failed to connect to database '{self.db_path_str}': {e}") from e
        return self._local.conn

    def get_connection(self) -> sqlite3.Connection:
        return self._get_thread_connection()

    def close_connection(self):
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            try:
                if conn.in_transaction:
                    logger.warning(f"Connection to {self.db_path_str} closed inside an open transaction. Rolling back.")
                    conn.rollback()
                conn.close()
                logger.debug(f"Closed connection for thread {threading.get_ident()} to {self.db_path_str}.")
            except sqlite3.Error as e:
                logger.warning(f"Error during SQLite connection close for {self.db_path_str}: {e}")
            finally:
                self._local.conn = None

    # --- Query Execution ---
    def execute_query(self, query: str, params: Optional[Union[tuple, Dict[str, Any]]] = None) -> sqlite3.Cursor:
        conn = self.get_connection()
        try:
            logger.trace(f"Executing SQL: {query[:300]}... Params: {str(params)[:200]}")
            return conn.execute(query, params or ())
        except sqlite3.IntegrityError as e:
            logger.warning(f"Integrity constraint violation: {query[:300]}... Error: {e}")
            if "unique constraint failed" in str(e).lower():
                raise ConflictError(message=f"Unique constraint violation: {e}") from e
            raise GeoDBError(f"Database constraint violation: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Query execution failed: {query[:300]}... Error: {e}")
            raise GeoDBError(f"Query execution failed: {e}") from e

    # --- Transaction Context ---
    def transaction(self, immediate: bool = False) -> 'TransactionContextManager':
        return TransactionContextManager(self, immediate=immediate)

    # --- Schema Initialization ---
    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        try:
            cursor = conn.execute("SELECT version FROM db_schema_version WHERE schema_name = ? LIMIT 1",
                                  (self._SCHEMA_NAME,))
            result = cursor.fetchone()
            return result['version'] if result else 0
        except sqlite3.Error as e:
            if "no such table" in str(e).lower():
                return 0
            raise SchemaError(f"Could not determine schema version for '{self._SCHEMA_NAME}': {e}") from e

    def _initialize_schema(self):
        conn = self.get_connection()
        current_version = self._get_db_version(conn)
        target_version = self._CURRENT_SCHEMA_VERSION
        logger.info(f"Checking DB schema '{self._SCHEMA_NAME}'. Current version: {current_version}. "
                    f"Code supports: {target_version}")

        if current_version == target_version:
            logger.debug(f"Database schema '{self._SCHEMA_NAME}' is up to date.")
            return
        if current_version > target_version:
            raise SchemaError(f"Database schema '{self._SCHEMA_NAME}' version ({current_version}) is newer than "
                              f"supported by code ({target_version}). Aborting.")
        try:
            # Additive only: every statement is CREATE ... IF NOT EXISTS.
            conn.executescript(self._FULL_SCHEMA_SQL_V1)
        except sqlite3.Error as e:
            raise SchemaError(f"DB schema V1 setup failed for '{self._SCHEMA_NAME}': {e}") from e

        final_version = self._get_db_version(conn)
        if final_version != target_version:
            raise SchemaError(f"Schema version check failed for '{self._SCHEMA_NAME}'. "
                              f"Expected {target_version}, got: {final_version}")
        logger.info(f"Database schema '{self._SCHEMA_NAME}' initialized to version {final_version}.")

    # --- Internal Helpers ---
    def _generate_uuid(self) -> str:
        return uuid.uuid4().hex

    def _upsert_row(self, conn: sqlite3.Connection, table: str, row: Dict[str, Any]):
        """Insert-or-overwrite of the mutable columns of an entity row, keyed by uuid."""
        parent_col = get_entity_config(table)['parent_col']
        columns = ["uuid", "name"] + ([parent_col] if parent_col else []) + ["last_updated", "deleted_at"]
        updates = ", ".join(f"{col}=excluded.{col}" for col in columns if col != "uuid")
        sql = (f"INSERT INTO {table}({', '.join(columns)}) VALUES({', '.join('?' for _ in columns)}) "
               f"ON CONFLICT(uuid) DO UPDATE SET {updates}")
        conn.execute(sql, tuple(row.get(col) for col in columns))

    def _enqueue(self, conn: sqlite3.Connection, table: str, record_uuid: str, operation: str,
                 payload: Dict[str, Any]) -> int:
        cursor = conn.execute(
            """INSERT INTO sync_queue(origin_device_code, table_name, record_uuid, operation, json_payload, created_at)
               VALUES(?,?,?,?,?,?)""",
            (self.device_code, table, record_uuid, operation, json.dumps(payload), get_utc_timestamp_iso())
        )
        return cursor.lastrowid

    # --- Entity Store ---
    def save_record(self, table: str, record: Dict[str, Any]) -> str:
        """
        Upserts an entity row and appends the matching UPSERT outbox entry in one transaction.

        Args:
            table: 'countries', 'states' or 'cities'.
            record: Mapping with 'name', the parent uuid column for states/cities, and optional
                'uuid', 'last_updated' and 'deleted_at'.

        Returns:
            The record uuid (generated when the caller supplied none).

        Raises:
            InputError: Unknown table, empty name or missing parent reference.
            GeoDBError: The entity write or the enqueue failed; neither is kept.
        """
        config = get_entity_config(table)
        name = (record.get("name") or "").strip()
        if not name:
            raise InputError(f"Name cannot be empty for {table}.")
        parent_col = config['parent_col']
        if parent_col and not record.get(parent_col):
            raise InputError(f"'{parent_col}' is required for {table}.")

        row = {
            "uuid": record.get("uuid") or self._generate_uuid(),
            "name": name,
            "last_updated": record.get("last_updated") or get_utc_timestamp_iso(),
            "deleted_at": record.get("deleted_at"),
        }
        if parent_col:
            row[parent_col] = record[parent_col]

        try:
            with self.transaction() as conn:
                self._upsert_row(conn, table, row)
                queue_id = self._enqueue(conn, table, row["uuid"], OPERATION_UPSERT,
                                         {"operation": OPERATION_UPSERT, "data": row})
        except sqlite3.Error as e:
            logger.error(f"Failed to save {table} record {row['uuid']}: {e}")
            raise GeoDBError(f"Failed to save {table} record: {e}") from e
        logger.info(f"Saved {table} '{name}' ({row['uuid']}) offline, queued as entry {queue_id}.")
        return row["uuid"]

    def save_country(self, name: str, record_uuid: Optional[str] = None, last_updated: Optional[str] = None,
                     deleted_at: Optional[str] = None) -> str:
        return self.save_record("countries", {"uuid": record_uuid, "name": name, "last_updated": last_updated,
                                              "deleted_at": deleted_at})

    def save_state(self, name: str, country_uuid: str, record_uuid: Optional[str] = None,
                   last_updated: Optional[str] = None, deleted_at: Optional[str] = None) -> str:
        return self.save_record("states", {"uuid": record_uuid, "name": name, "country_uuid": country_uuid,
                                           "last_updated": last_updated, "deleted_at": deleted_at})

    def save_city(self, name: str, state_uuid: str, record_uuid: Optional[str] = None,
                  last_updated: Optional[str] = None, deleted_at: Optional[str] = None) -> str:
        return self.save_record("cities", {"uuid": record_uuid, "name": name, "state_uuid": state_uuid,
                                           "last_updated": last_updated, "deleted_at": deleted_at})

    def list_records(self, table: str) -> List[Dict[str, Any]]:
        """Returns the non-deleted rows of a table ordered by name, with the parent's display name."""
        config = get_entity_config(table)
        if config['parent_table']:
            query = (f"SELECT e.*, p.name AS {config['parent_name_alias']} FROM {table} e "
                     f"LEFT JOIN {config['parent_table']} p ON p.uuid = e.{config['parent_col']} "
                     f"WHERE e.deleted_at IS NULL ORDER BY e.name")
        else:
            query = f"SELECT e.* FROM {table} e WHERE e.deleted_at IS NULL ORDER BY e.name"
        cursor = self.execute_query(query)
        return [dict(row) for row in cursor.fetchall()]

    def list_countries(self) -> List[Dict[str, Any]]:
        return self.list_records("countries")

    def list_states(self) -> List[Dict[str, Any]]:
        return self.list_records("states")

    def list_cities(self) -> List[Dict[str, Any]]:
        return self.list_records("cities")

    def get_record(self, table: str, record_uuid: str) -> Optional[Dict[str, Any]]:
        """Fetches a row by uuid, soft-deleted or not."""
        get_entity_config(table)
        cursor = self.execute_query(f"SELECT * FROM {table} WHERE uuid = ?", (record_uuid,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def _count_active_children(self, conn: sqlite3.Connection, table: str, record_uuid: str) -> int:
        child_table = get_entity_config(table)['child_table']
        if not child_table:
            return 0
        child_col = ENTITY_CONFIG[child_table]['parent_col']
        row = conn.execute(f"SELECT COUNT(*) AS n FROM {child_table} WHERE deleted_at IS NULL AND {child_col} = ?",
                           (record_uuid,)).fetchone()
        return row['n'] if row else 0

    def has_children(self, table: str, record_uuid: str) -> bool:
        return self._count_active_children(self.get_connection(), table, record_uuid) > 0

    def has_states(self, country_uuid: str) -> bool:
        return self.has_children("countries", country_uuid)

    def has_cities(self, state_uuid: str) -> bool:
        return self.has_children("states", state_uuid)

    def _soft_delete_in_transaction(self, conn: sqlite3.Connection, table: str, record_uuid: str) -> bool:
        existing = conn.execute(f"SELECT deleted_at FROM {table} WHERE uuid = ?", (record_uuid,)).fetchone()
        if not existing:
            raise RecordNotFoundError(f"Record not found in {table}.", entity=table, entity_id=record_uuid)
        if existing['deleted_at']:
            logger.info(f"{table} {record_uuid} already soft-deleted. Operation considered successful (idempotent).")
            return True

        now = get_utc_timestamp_iso()
        conn.execute(f"UPDATE {table} SET deleted_at = ?, last_updated = ? WHERE uuid = ?", (now, now, record_uuid))
        queue_id = self._enqueue(conn, table, record_uuid, OPERATION_DELETE,
                                 {"operation": OPERATION_DELETE, "data": {"uuid": record_uuid, "deleted_at": now}})
        logger.info(f"Soft-deleted {table} {record_uuid}, queued as entry {queue_id}.")
        return True

    def soft_delete(self, table: str, record_uuid: str) -> bool:
        """
        Sets deleted_at/last_updated to now and enqueues a DELETE entry. No child check is made;
        callers that need the guard use soft_delete_guarded.
        """
        get_entity_config(table)
        try:
            with self.transaction() as conn:
                return self._soft_delete_in_transaction(conn, table, record_uuid)
        except sqlite3.Error as e:
            raise GeoDBError(f"Failed to soft-delete {table} record {record_uuid}: {e}") from e

    def soft_delete_guarded(self, table: str, record_uuid: str) -> bool:
        """Child check and soft delete under one write lock, so no child can be inserted in between."""
        get_entity_config(table)
        try:
            with self.transaction(immediate=True) as conn:
                children = self._count_active_children(conn, table, record_uuid)
                if children:
                    raise ChildRecordsExistError(
                        f"Cannot delete: {children} active child record(s) in "
                        f"{get_entity_config(table)['child_table']}.", entity=table, entity_id=record_uuid)
                return self._soft_delete_in_transaction(conn, table, record_uuid)
        except sqlite3.Error as e:
            raise GeoDBError(f"Failed to soft-delete {table} record {record_uuid}: {e}") from e

    def soft_delete_country(self, country_uuid: str) -> bool:
        return self.soft_delete("countries", country_uuid)

    def soft_delete_state(self, state_uuid: str) -> bool:
        return self.soft_delete("states", state_uuid)

    def soft_delete_city(self, city_uuid: str) -> bool:
        return self.soft_delete("cities", city_uuid)

    # --- Writes arriving from the cloud (never enqueued) ---
    def upsert_from_remote(self, table: str, row: Dict[str, Any]):
        get_entity_config(table)
        with self.transaction() as conn:
            self._upsert_row(conn, table, row)

    def mark_deleted_from_remote(self, table: str, record_uuid: str, deleted_at: str, last_updated: str) -> int:
        """Returns the number of rows touched; 0 when the record does not exist locally."""
        get_entity_config(table)
        cursor = self.execute_query(f"UPDATE {table} SET deleted_at = ?, last_updated = ? WHERE uuid = ?",
                                    (deleted_at, last_updated, record_uuid))
        return cursor.rowcount

    # --- Outbox Queue ---
    def enqueue(self, table: str, record_uuid: str, operation: str, payload: Dict[str, Any]) -> int:
        get_entity_config(table)
        if operation not in (OPERATION_UPSERT, OPERATION_DELETE):
            raise InputError(f"Unsupported outbox operation '{operation}'.")
        try:
            with self.transaction() as conn:
                return self._enqueue(conn, table, record_uuid, operation, payload)
        except sqlite3.Error as e:
            raise GeoDBError(f"Failed to enqueue {operation} for {table} {record_uuid}: {e}") from e

    def get_unacked_outbox_entries(self) -> List[Dict[str, Any]]:
        """Outbox entries without a local-source acknowledgment from this device, oldest first."""
        query = """
            SELECT id, origin_device_code, table_name, record_uuid, operation, json_payload, created_at
            FROM sync_queue
            WHERE id NOT IN (
                SELECT queue_id FROM sync_ack
                WHERE source_type = ? AND synced_by_device_code = ?
            )
            ORDER BY id ASC
        """
        cursor = self.execute_query(query, (SOURCE_LOCAL, self.device_code))
        return [dict(row) for row in cursor.fetchall()]

    def count_outbox_entries(self) -> int:
        row = self.execute_query("SELECT COUNT(*) AS n FROM sync_queue").fetchone()
        return row['n'] if row else 0

    def retire_outbox_entry(self, queue_id: int):
        """Writes the local acknowledgment and removes the entry from the outbox together."""
        with self.transaction() as conn:
            self._ack(conn, queue_id, SOURCE_LOCAL)
            conn.execute("DELETE FROM sync_queue WHERE id = ?", (queue_id,))
        logger.debug(f"Retired outbox entry {queue_id}.")

    # --- Acknowledgment Ledger ---
    def _ack(self, conn: sqlite3.Connection, queue_id: int, source_type: str):
        conn.execute(
            "INSERT OR IGNORE INTO sync_ack(queue_id, synced_by_device_code, source_type) VALUES(?,?,?)",
            (queue_id, self.device_code, source_type)
        )

    def is_acked(self, queue_id: int, source_type: str) -> bool:
        cursor = self.execute_query(
            "SELECT 1 FROM sync_ack WHERE queue_id = ? AND synced_by_device_code = ? AND source_type = ? LIMIT 1",
            (queue_id, self.device_code, source_type)
        )
        return cursor.fetchone() is not None

    def ack(self, queue_id: int, source_type: str):
        if source_type not in (SOURCE_LOCAL, SOURCE_CLOUD):
            raise InputError(f"Unsupported acknowledgment source type '{source_type}'.")
        with self.transaction() as conn:
            self._ack(conn, queue_id, source_type)

    def count_acks(self, source_type: Optional[str] = None) -> int:
        if source_type:
            cursor = self.execute_query("SELECT COUNT(*) AS n FROM sync_ack WHERE source_type = ?", (source_type,))
        else:
            cursor = self.execute_query("SELECT COUNT(*) AS n FROM sync_ack")
        return cursor.fetchone()['n']

    # --- Administrative ---
    def reset_local(self):
        """Erases all entity rows, the outbox and the ledger."""
        with self.transaction() as conn:
            for table in ("cities", "states", "countries", "sync_ack", "sync_queue"):
                conn.execute(f"DELETE FROM {table}")
        try:
            self.execute_query("VACUUM")
        except GeoDBError as e:
            logger.warning(f"VACUUM after local reset failed for {self.db_path_str}: {e}")
        logger.warning(f"Local store {self.db_path_str} reset: all records, queue entries and acknowledgments erased.")


# --- Transaction Context Manager Class (Helper for `with db.transaction():`) ---
class TransactionContextManager:
    def __init__(self, db_instance: GeoDB, immediate: bool = False):
        self.db = db_instance
        self.immediate = immediate
        self.conn: Optional[sqlite3.Connection] = None
        self.is_outermost_transaction = False

    def __enter__(self) -> sqlite3.Connection:
        self.conn = self.db.get_connection()
        if not self.conn.in_transaction:
            self.conn.execute("BEGIN IMMEDIATE" if self.immediate else "BEGIN")
            self.is_outermost_transaction = True
            logger.trace(f"Transaction started (outermost) on thread {threading.get_ident()}.")
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.is_outermost_transaction:
            # Nested block: the outermost block commits or rolls back.
            return False

        if exc_type:
            logger.warning(f"Transaction failed, rolling back on thread {threading.get_ident()}: "
                           f"{exc_type.__name__} - {exc_val}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rb_err:
                logger.critical(f"Rollback FAILED on thread {threading.get_ident()}: {rb_err}")
            return False

        try:
            self.conn.commit()
        except sqlite3.Error as commit_err:
            logger.error(f"Commit FAILED on thread {threading.get_ident()}, attempting rollback: {commit_err}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rb_err:
                logger.critical(f"Rollback after failed commit also FAILED: {rb_err}")
            raise GeoDBError(f"Commit failed: {commit_err}") from commit_err
        return False

#
# End of Geo_DB.py
#######################################################################################################################

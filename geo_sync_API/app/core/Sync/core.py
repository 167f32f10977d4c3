# geo_sync_API/app/core/Sync/core.py
import sqlite3
import threading
from typing import Any, Dict, Optional

from loguru import logger

from geo_sync_API.app.core.DB_Management.Geo_DB import (
    ENTITY_CONFIG,
    OPERATION_DELETE,
    OPERATION_UPSERT,
    SOURCE_CLOUD,
    GeoDBError,
    get_utc_timestamp_iso,
)
from .conflict import APPLY_REMOTE, ConflictResolver, LastWriteWinsStrategy
from .context import SyncContext
from .exceptions import ApplyError, PayloadError, RemoteRejectedError, SyncError, SyncInProgressError, TransportError
from .field_mapping import to_local, to_remote
from .models import CloudQueueEntry, OutboxEntry, SyncReport


class SyncManager:
    """
    Orchestrates the two-phase sync cycle for one SyncContext.

    Phase 1 pulls the cloud change queue and applies every entry this device has not yet
    acknowledged for source 'cloud'. Phase 2 pushes every outbox entry without a 'local'
    acknowledgment, oldest first, and retires it only on confirmed remote success.
    Per-entry failures are logged and skipped; the entry stays eligible for the next cycle.
    """

    def __init__(self, context: SyncContext, resolver: Optional[ConflictResolver] = None):
        if not isinstance(context, SyncContext):
            raise TypeError("context must be a SyncContext object")
        if resolver is not None and not isinstance(resolver, ConflictResolver):
            raise TypeError("resolver must be a ConflictResolver object")
        self.context = context
        self.resolver = resolver or LastWriteWinsStrategy()
        self._sync_lock = threading.Lock()  # Prevents concurrent sync cycles on this context
        logger.info(f"SyncManager initialized for device: {context.device_code}")

    @property
    def db(self):
        if not self.context.is_open:
            raise SyncError("Sync context is not open")
        return self.context.db

    @property
    def is_syncing(self) -> bool:
        return self._sync_lock.locked()

    def is_online(self) -> bool:
        return self.context.is_open and self.context.gate.is_online()

    def _require_transport(self):
        if self.context.transport is None:
            raise SyncError("No remote API configured")
        return self.context.transport

    # --- Phase 1: cloud -> local ---
    def _apply_cloud_entry(self, entry: CloudQueueEntry) -> str:
        """Applies one cloud entry and acknowledges it in the same transaction. Returns the resolver outcome."""
        table = entry.table_name
        if table not in ENTITY_CONFIG:
            raise PayloadError(f"Unknown table '{table}'", queue_id=entry.id, table=table,
                               record_uuid=entry.record_uuid)

        data, operation = entry.decode()
        if operation not in (OPERATION_UPSERT, OPERATION_DELETE):
            raise PayloadError(f"Unsupported operation '{operation}'", queue_id=entry.id, table=table,
                               record_uuid=entry.record_uuid)
        data = to_local(table, data)
        record_uuid = data.get("uuid") or entry.record_uuid
        if not record_uuid:
            raise PayloadError("Cloud entry has no record uuid", queue_id=entry.id, table=table)

        now = get_utc_timestamp_iso()
        row: Dict[str, Any] = {
            "uuid": record_uuid,
            "name": data.get("name") or "",
            "last_updated": data.get("last_updated") or now,
        }
        if operation == OPERATION_DELETE:
            row["deleted_at"] = data.get("deleted_at") or now
        else:
            row["deleted_at"] = data.get("deleted_at")
        parent_col = ENTITY_CONFIG[table]["parent_col"]
        if parent_col:
            row[parent_col] = data.get(parent_col)

        db = self.db
        try:
            local_row = db.get_record(table, record_uuid)
            outcome = self.resolver.resolve(local_row, row, operation)
            with db.transaction():
                if outcome == APPLY_REMOTE:
                    if operation == OPERATION_DELETE:
                        db.mark_deleted_from_remote(table, record_uuid, row["deleted_at"], row["last_updated"])
                    else:
                        db.upsert_from_remote(table, row)
                db.ack(entry.id, SOURCE_CLOUD)
        except (GeoDBError, sqlite3.Error) as e:
            raise ApplyError(f"Failed to apply {operation} on {table}: {e}", queue_id=entry.id,
                             record_uuid=record_uuid) from e
        logger.debug(f"Cloud entry {entry.id} ({operation} {table}/{record_uuid}): {outcome}")
        return outcome

    def pull_cloud_changes(self, report: Optional[SyncReport] = None) -> SyncReport:
        report = report or SyncReport()
        db = self.db
        transport = self._require_transport()
        try:
            entries = transport.fetch_sync_queue()
        except TransportError as e:
            logger.error(f"Phase 1 (cloud -> local) fetch failed, skipping pull: {e}")
            report.fetch_error = str(e)
            return report

        report.fetched = len(entries)
        for entry in entries:
            try:
                if db.is_acked(entry.id, SOURCE_CLOUD):
                    report.already_acked += 1
                    continue
                outcome = self._apply_cloud_entry(entry)
            except PayloadError as e:
                logger.warning(f"Skipping malformed cloud entry [operation={entry.operation}]: {e}")
                report.pull_failed += 1
                continue
            except (ApplyError, GeoDBError) as e:
                logger.error(f"Failed to apply cloud entry {entry.id} [table={entry.table_name}, "
                             f"operation={entry.operation}]: {e}")
                report.pull_failed += 1
                continue

            if outcome == APPLY_REMOTE:
                report.applied += 1
            else:
                report.kept_local += 1

        logger.info(f"Phase 1 complete: fetched={report.fetched} applied={report.applied} "
                    f"kept_local={report.kept_local} already_acked={report.already_acked} "
                    f"failed={report.pull_failed}")
        return report

    # --- Phase 2: local -> cloud ---
    def _prepare_push(self, entry: OutboxEntry) -> Dict[str, Any]:
        if entry.table_name not in ENTITY_CONFIG:
            raise PayloadError(f"Unknown table '{entry.table_name}'", queue_id=entry.id, table=entry.table_name,
                               record_uuid=entry.record_uuid)
        data = to_remote(entry.table_name, entry.decode())
        if not data.get("last_updated"):
            data["last_updated"] = get_utc_timestamp_iso()
        record_uuid = data.get("uuid") or entry.record_uuid
        if not record_uuid:
            raise PayloadError("Outbox entry has an empty uuid", queue_id=entry.id, table=entry.table_name)
        data["uuid"] = record_uuid
        return data

    def push_local_changes(self, report: Optional[SyncReport] = None) -> SyncReport:
        report = report or SyncReport()
        db = self.db
        transport = self._require_transport()
        rows = db.get_unacked_outbox_entries()
        logger.info(f"Phase 2 (local -> cloud): {len(rows)} unacknowledged outbox entries.")
        # (table, uuid) pairs with an earlier entry left queued this cycle; later entries wait behind it.
        held_back = set()

        for row in rows:
            entry = OutboxEntry.from_row(row)
            context = f"[queue_id={entry.id}, table={entry.table_name}, uuid={entry.record_uuid}, op={entry.operation}]"
            key = (entry.table_name, entry.record_uuid or "")
            if key in held_back:
                logger.info(f"Outbox entry waits for an earlier entry of the same record {context}")
                report.deferred += 1
                continue
            try:
                data = self._prepare_push(entry)
            except PayloadError as e:
                logger.warning(f"Outbox entry kept for inspection, payload invalid {context}: {e}")
                report.invalid += 1
                held_back.add(key)
                continue

            try:
                transport.push_record(entry.table_name, entry.operation, data["uuid"], data)
            except RemoteRejectedError as e:
                logger.warning(f"Remote rejected outbox entry, will retry next cycle {context}: {e}")
                report.rejected += 1
                held_back.add(key)
                continue
            except TransportError as e:
                logger.error(f"Push failed, will retry next cycle {context}: {e}")
                report.push_failed += 1
                held_back.add(key)
                continue

            try:
                db.retire_outbox_entry(entry.id)
            except (GeoDBError, sqlite3.Error) as e:
                logger.error(f"Pushed but could not retire outbox entry {context}: {e}")
                report.push_failed += 1
                held_back.add(key)
                continue
            report.pushed += 1

        logger.info(f"Phase 2 complete: pushed={report.pushed} rejected={report.rejected} "
                    f"failed={report.push_failed} invalid={report.invalid} "
                    f"deferred={report.deferred}")
        return report

    # --- Cycle entry points ---
    def sync_now(self) -> SyncReport:
        """Runs both phases strictly in order. Raises SyncInProgressError if a cycle is already running."""
        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError("A sync cycle is already in progress")
        try:
            logger.info(f"Sync cycle started for device {self.context.device_code}")
            report = SyncReport()
            self.pull_cloud_changes(report)
            self.push_local_changes(report)
            logger.info(f"Sync cycle finished: {report.to_dict()}")
            return report
        finally:
            self._sync_lock.release()

    def try_sync(self) -> Optional[SyncReport]:
        """Runs a cycle if online and idle; otherwise returns None without touching anything."""
        if not self.is_online():
            logger.info("Offline or no remote configured; sync skipped.")
            return None
        try:
            return self.sync_now()
        except SyncInProgressError:
            logger.info("Sync already in progress; request ignored.")
            return None

    def reset_all(self, reset_token: Optional[str] = None) -> bool:
        """
        Clears the local store then asks the cloud to truncate. Returns whether the cloud confirmed.
        Does nothing and returns False while offline.
        """
        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError("Cannot reset while a sync cycle is in progress")
        try:
            if not self.is_online():
                logger.warning("Reset requested while offline; nothing changed.")
                return False
            self.db.reset_local()
            ok = self._require_transport().truncate_all(reset_token or self.context.reset_token)
            if ok:
                logger.warning("Cloud data truncated.")
            else:
                logger.error("Cloud truncate_all did not confirm success.")
            return ok
        finally:
            self._sync_lock.release()

# geo_sync_API/app/core/Sync/conflict.py
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

from loguru import logger

from .models import parse_timestamp

APPLY_REMOTE = 'apply_remote'
KEEP_LOCAL = 'keep_local'


class ConflictResolver(ABC):
    """Abstract base class for conflict resolution strategies."""

    @abstractmethod
    def resolve(self, local_row: Optional[Dict[str, Any]], remote_data: Dict[str, Any], operation: str) -> str:
        """
        Determines the outcome when a cloud change meets local data.

        Args:
            local_row: Current state of the local row, or None if it doesn't exist locally.
            remote_data: The decoded cloud record (uuid, name, parent, last_updated, deleted_at).
            operation: 'UPSERT' or 'DELETE'.

        Returns:
            'apply_remote': Apply the cloud change.
            'keep_local': Keep the local version, ignore the cloud change.
        """
        pass


class LastWriteWinsStrategy(ConflictResolver):
    """Resolves conflicts using Last Write Wins on last_updated; ties go to the cloud."""

    def resolve(self, local_row: Optional[Dict[str, Any]], remote_data: Dict[str, Any], operation: str) -> str:
        record_uuid = remote_data.get('uuid')

        if local_row is None:
            if operation == 'DELETE':
                logger.debug(f"Conflict resolution (UUID: {record_uuid}): Local nonexistent, remote DELETE. "
                             f"Outcome: Keep Local (ignore).")
                return KEEP_LOCAL
            logger.debug(f"Conflict resolution (UUID: {record_uuid}): Local nonexistent, remote {operation}. "
                         f"Outcome: Apply Remote.")
            return APPLY_REMOTE

        remote_ts = parse_timestamp(remote_data.get('last_updated'))
        local_ts = parse_timestamp(local_row.get('last_updated'))

        if local_ts is None:
            logger.debug(f"Conflict resolution (UUID: {record_uuid}): Local timestamp unusable. Outcome: Apply Remote.")
            return APPLY_REMOTE
        if remote_ts is None:
            logger.debug(f"Conflict resolution (UUID: {record_uuid}): Remote timestamp unusable. Outcome: Keep Local.")
            return KEEP_LOCAL

        if remote_ts >= local_ts:
            logger.debug(f"Conflict resolution (UUID: {record_uuid}): Remote TS {remote_ts} >= Local TS {local_ts}. "
                         f"Outcome: Apply Remote.")
            return APPLY_REMOTE
        logger.debug(f"Conflict resolution (UUID: {record_uuid}): Remote TS {remote_ts} < Local TS {local_ts}. "
                     f"Outcome: Keep Local.")
        return KEEP_LOCAL

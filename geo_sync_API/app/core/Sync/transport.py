# geo_sync_API/app/core/Sync/transport.py
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests
from loguru import logger
from pydantic import ValidationError

from .exceptions import RemoteRejectedError, TransportError
from .models import CloudQueueEntry

LOG_BODY_LIMIT = 400


def is_success_response(body: str) -> bool:
    """Remote success contract: a case-insensitive 'success' marker in the body, or JSON {"ok": true}."""
    if not body:
        return False
    if "success" in body.lower():
        return True
    try:
        parsed = json.loads(body)
    except ValueError:
        return False
    return isinstance(parsed, dict) and parsed.get("ok") is True


class SyncTransport(ABC):
    """Abstract base class for sync transport layers."""

    @abstractmethod
    def fetch_sync_queue(self) -> List[CloudQueueEntry]:
        """
        Fetches the full remote change queue.

        Returns:
            The valid entries, in the order the remote returned them.

        Raises:
            TransportError: If fetching fails or the body is not a JSON array.
        """
        pass

    @abstractmethod
    def push_record(self, table: str, operation: str, record_uuid: str, data: Dict[str, Any]) -> bool:
        """
        Submits one record to the remote's per-table endpoint.

        Returns:
            True when the remote confirmed success.

        Raises:
            TransportError: Network failure or non-2xx status.
            RemoteRejectedError: Reachable remote that did not confirm success.
        """
        pass

    @abstractmethod
    def truncate_all(self, reset_token: str) -> bool:
        """Asks the remote to wipe its data. True only on an explicit {"ok": true}."""
        pass

    def close(self):
        pass


class HttpApiTransport(SyncTransport):
    """Form-encoded HTTP transport against the cloud API."""

    def __init__(self, base_url: str, timeout: float = 30, session: Optional[requests.Session] = None):
        if not base_url:
            raise ValueError("base_url cannot be empty")
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        logger.info(f"HTTP Transport initialized for URL: {self.base_url}")

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def fetch_sync_queue(self) -> List[CloudQueueEntry]:
        fetch_url = self._url("api/get_sync_queue")
        logger.debug(f"Fetching cloud sync queue from {fetch_url}")
        try:
            response = self.session.get(fetch_url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"HTTP request failed during fetch_sync_queue: {e}")
            raise TransportError(f"Failed to fetch sync queue: {e}") from e

        if not response.ok:
            logger.error(f"fetch_sync_queue got HTTP {response.status_code}: {response.text[:LOG_BODY_LIMIT]}")
            raise TransportError("Failed to fetch sync queue", status_code=response.status_code)

        try:
            raw_entries = response.json()
        except ValueError as e:
            logger.error(f"Failed to decode JSON response during fetch_sync_queue: {response.text[:LOG_BODY_LIMIT]}")
            raise TransportError(f"Invalid JSON response received: {e}") from e
        if not isinstance(raw_entries, list):
            raise TransportError(f"Invalid response format from get_sync_queue: expected list, "
                                 f"got {type(raw_entries).__name__}")

        parsed: List[CloudQueueEntry] = []
        for raw in raw_entries:
            try:
                parsed.append(CloudQueueEntry.model_validate(raw))
            except ValidationError as e:
                logger.error(f"Dropping malformed cloud queue entry {str(raw)[:LOG_BODY_LIMIT]}: {e}")
                continue

        logger.info(f"Fetched {len(parsed)} cloud queue entries ({len(raw_entries) - len(parsed)} malformed).")
        return parsed

    def push_record(self, table: str, operation: str, record_uuid: str, data: Dict[str, Any]) -> bool:
        send_url = self._url(f"api/save_{table}")
        form = {
            "table": table,
            "operation": operation,
            "uuid": record_uuid,
            "data": json.dumps(data),
        }
        logger.debug(f"Pushing {operation} {table}/{record_uuid} to {send_url}")
        try:
            response = self.session.post(send_url, data=form, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"HTTP request failed pushing {operation} {table}/{record_uuid}: {e}")
            raise TransportError(f"Failed to push {table}/{record_uuid}: {e}") from e

        body = response.text or ""
        logger.debug(f"save_{table} response [{response.status_code}]: {body[:LOG_BODY_LIMIT]}")
        if not response.ok:
            raise TransportError(f"save_{table} failed for {record_uuid}", status_code=response.status_code)
        if not is_success_response(body):
            raise RemoteRejectedError(f"save_{table} did not confirm success for {record_uuid}: "
                                      f"{body[:LOG_BODY_LIMIT]}", status_code=response.status_code)
        return True

    def truncate_all(self, reset_token: str) -> bool:
        reset_url = self._url("api/truncate_all")
        try:
            response = self.session.post(reset_url, headers={"X-Reset-Token": reset_token or ""},
                                         timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"HTTP request failed during truncate_all: {e}")
            raise TransportError(f"Failed to reset cloud data: {e}") from e

        logger.info(f"truncate_all response [{response.status_code}]: {(response.text or '')[:LOG_BODY_LIMIT]}")
        if not response.ok:
            return False
        try:
            payload = response.json()
        except ValueError:
            return False
        return isinstance(payload, dict) and payload.get("ok") is True

    def close(self):
        self.session.close()

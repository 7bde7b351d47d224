"""
HTTP Remote Store - RemoteRecordStore over a JSON REST API

Wire format:
    GET    {base}/records/{type}[?since=<iso>]   -> [record, ...]
    GET    {base}/records/{type}/{id}            -> record | 404
    PUT    {base}/records/{type}/{id}            <- record
    DELETE {base}/records/{type}/{id}            -> 2xx | 404
    POST   {base}/records/{type}/bulk            <- [record, ...]
    GET    {base}/sync-metadata                  -> SyncMetadata | 404
    PUT    {base}/sync-metadata                  <- SyncMetadata

Authentication is a bearer token. Every failure is raised as a
RemoteStoreError subclass so the orchestrator never sees a raw
requests exception.
"""

from datetime import datetime
from typing import Any, Iterable, List, Optional
from urllib.parse import quote
import logging

import requests

from ..errors import RemoteAuthError, RemoteConnectionError, RemoteStoreError
from ..models import SyncableRecord, SyncMetadata, format_timestamp
from .base import RemoteRecordStore, require_id

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0


class HTTPRemoteStore(RemoteRecordStore):
    """
    Remote record store talking to a REST endpoint with ``requests``.

    Example:
        remote = HTTPRemoteStore("https://sync.example.com/api", token="...")
        remote.bulk_save("entries", records)
    """

    def __init__(self, base_url: str, token: Optional[str] = None,
                 request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
                 session: Optional[requests.Session] = None):
        """
        Args:
            base_url: API root, without trailing slash
            token: Bearer token sent with every request
            request_timeout: Per-request socket timeout in seconds
            session: Pre-configured session (tests inject a mock)
        """
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token}"})

    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url] + [quote(str(p), safe="") for p in parts])

    def _request(self, method: str, url: str, allow_404: bool = False,
                 **kwargs: Any) -> Optional[requests.Response]:
        try:
            response = self._session.request(
                method, url, timeout=self.request_timeout, **kwargs
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RemoteConnectionError(f"{method} {url} failed: {e}") from e
        except requests.RequestException as e:
            raise RemoteStoreError(f"{method} {url} failed: {e}") from e

        if response.status_code in (401, 403):
            raise RemoteAuthError(f"{method} {url} rejected: HTTP {response.status_code}")
        if response.status_code == 404 and allow_404:
            return None
        if response.status_code >= 400:
            raise RemoteStoreError(
                f"{method} {url} failed: HTTP {response.status_code} {response.text[:200]}"
            )
        logger.debug(f"{method} {url} -> {response.status_code}")
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteStoreError(f"Invalid JSON from {response.url}: {e}") from e

    def _record_list(self, response: requests.Response) -> List[SyncableRecord]:
        payload = self._json(response)
        if isinstance(payload, dict):
            payload = payload.get("records")
        if not isinstance(payload, list):
            raise RemoteStoreError(f"Expected a list of records from {response.url}")
        return payload

    def get_all(self, record_type: str) -> List[SyncableRecord]:
        response = self._request("GET", self._url("records", record_type))
        return self._record_list(response)

    def get_updated_since(self, record_type: str,
                          since: Optional[datetime]) -> List[SyncableRecord]:
        if since is None:
            return self.get_all(record_type)
        response = self._request(
            "GET", self._url("records", record_type),
            params={"since": format_timestamp(since)},
        )
        return self._record_list(response)

    def get_by_id(self, record_type: str, record_id: str) -> Optional[SyncableRecord]:
        response = self._request(
            "GET", self._url("records", record_type, record_id), allow_404=True
        )
        if response is None:
            return None
        return self._json(response)

    def save(self, record_type: str, record: SyncableRecord) -> None:
        record_id = require_id(record)
        self._request(
            "PUT", self._url("records", record_type, record_id),
            json=_jsonable(record),
        )

    def bulk_save(self, record_type: str, records: Iterable[SyncableRecord]) -> int:
        records = list(records)
        if not records:
            return 0
        for record in records:
            require_id(record)
        self._request(
            "POST", self._url("records", record_type, "bulk"),
            json=[_jsonable(r) for r in records],
        )
        return len(records)

    def delete(self, record_type: str, record_id: str) -> bool:
        response = self._request(
            "DELETE", self._url("records", record_type, record_id), allow_404=True
        )
        return response is not None

    def get_metadata(self) -> Optional[SyncMetadata]:
        response = self._request("GET", self._url("sync-metadata"), allow_404=True)
        if response is None:
            return None
        payload = self._json(response)
        if not isinstance(payload, dict):
            raise RemoteStoreError("Expected a sync metadata object")
        return SyncMetadata.from_dict(payload)

    def set_metadata(self, metadata: SyncMetadata) -> None:
        data = metadata.to_dict()
        # The pull cursor is device-local
        data.pop("last_pull_at", None)
        self._request("PUT", self._url("sync-metadata"), json=data)

    def close(self) -> None:
        self._session.close()


def _jsonable(record: SyncableRecord) -> SyncableRecord:
    """Copy of a record with datetime values serialized."""
    return {
        key: format_timestamp(value) if isinstance(value, datetime) else value
        for key, value in record.items()
    }

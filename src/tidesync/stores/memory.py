"""
In-memory record stores.

Used by tests and by hosts that keep their working set in memory and persist
it elsewhere. ``MemoryRemoteStore`` can also simulate an unreliable remote:
ids listed in ``fail_ids`` raise RemoteStoreError, and ``delay`` makes every
call sleep first.
"""

from copy import deepcopy
from datetime import datetime
from threading import Lock
from typing import Dict, Iterable, List, Optional, Set
import time

from ..errors import RemoteStoreError
from ..models import SyncableRecord, SyncMetadata
from .base import RecordStore, RemoteRecordStore, filter_updated_since, require_id


class MemoryRecordStore(RecordStore):
    """Dictionary-backed record store. Thread-safe, returns copies."""

    def __init__(self, records: Optional[Dict[str, Iterable[SyncableRecord]]] = None):
        self._data: Dict[str, Dict[str, SyncableRecord]] = {}
        self._lock = Lock()
        for record_type, items in (records or {}).items():
            for record in items:
                self.save(record_type, record)

    def get_all(self, record_type: str) -> List[SyncableRecord]:
        with self._lock:
            return [deepcopy(r) for r in self._data.get(record_type, {}).values()]

    def get_by_id(self, record_type: str, record_id: str) -> Optional[SyncableRecord]:
        with self._lock:
            record = self._data.get(record_type, {}).get(str(record_id))
            return deepcopy(record) if record is not None else None

    def save(self, record_type: str, record: SyncableRecord) -> None:
        record_id = require_id(record)
        with self._lock:
            self._data.setdefault(record_type, {})[record_id] = deepcopy(record)

    def bulk_save(self, record_type: str, records: Iterable[SyncableRecord]) -> int:
        prepared = [(require_id(r), deepcopy(r)) for r in records]
        with self._lock:
            bucket = self._data.setdefault(record_type, {})
            for record_id, record in prepared:
                bucket[record_id] = record
        return len(prepared)

    def delete(self, record_type: str, record_id: str) -> bool:
        with self._lock:
            return self._data.get(record_type, {}).pop(str(record_id), None) is not None

    def record_types(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


class MemoryRemoteStore(MemoryRecordStore, RemoteRecordStore):
    """
    In-memory stand-in for a remote store.

    Counts every call in ``calls`` so tests can assert that no network
    traffic happened.
    """

    def __init__(self, records: Optional[Dict[str, Iterable[SyncableRecord]]] = None,
                 fail_ids: Optional[Set[str]] = None, delay: float = 0.0):
        super().__init__()
        self._metadata: Optional[SyncMetadata] = None
        self.fail_ids: Set[str] = set(fail_ids or ())
        self.fail_all = False
        self.delay = delay
        self.calls: List[str] = []
        # Seeding is not traffic
        for record_type, items in (records or {}).items():
            MemoryRecordStore.bulk_save(self, record_type, items)

    def _call(self, name: str, record_id: Optional[str] = None) -> None:
        self.calls.append(name)
        if self.delay:
            time.sleep(self.delay)
        if self.fail_all:
            raise RemoteStoreError(f"Simulated remote failure in {name}")
        if record_id is not None and record_id in self.fail_ids:
            raise RemoteStoreError(f"Simulated remote failure for {record_id}")

    def get_all(self, record_type: str) -> List[SyncableRecord]:
        self._call("get_all")
        return super().get_all(record_type)

    def get_updated_since(self, record_type: str,
                          since: Optional[datetime]) -> List[SyncableRecord]:
        self._call("get_updated_since")
        return filter_updated_since(MemoryRecordStore.get_all(self, record_type), since)

    def get_by_id(self, record_type: str, record_id: str) -> Optional[SyncableRecord]:
        self._call("get_by_id", str(record_id))
        return super().get_by_id(record_type, record_id)

    def save(self, record_type: str, record: SyncableRecord) -> None:
        self._call("save", str(record.get("id")))
        super().save(record_type, record)

    def bulk_save(self, record_type: str, records: Iterable[SyncableRecord]) -> int:
        records = list(records)
        self._call("bulk_save")
        for record in records:
            if str(record.get("id")) in self.fail_ids:
                raise RemoteStoreError(f"Simulated remote failure for {record.get('id')}")
        return super().bulk_save(record_type, records)

    def delete(self, record_type: str, record_id: str) -> bool:
        self._call("delete", str(record_id))
        return super().delete(record_type, record_id)

    def count(self, record_type: str) -> int:
        return len(self.get_all(record_type))

    def get_metadata(self) -> Optional[SyncMetadata]:
        self._call("get_metadata")
        return deepcopy(self._metadata)

    def set_metadata(self, metadata: SyncMetadata) -> None:
        self._call("set_metadata")
        self._metadata = deepcopy(metadata)

"""
Record Stores - abstract interface for local and remote record storage

The sync engine talks to both sides through the same narrow interface:
get-all, get-by-id, get-updated-since, save, bulk-save and delete over
opaque record dictionaries grouped by record type. The remote side adds
sync metadata so several devices can observe the last successful sync.

Implementations:
    MemoryRecordStore / MemoryRemoteStore  (tidesync.stores.memory)
    SQLiteRecordStore                      (tidesync.stores.sqlite)
    HTTPRemoteStore                        (tidesync.stores.http)
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from ..models import SyncableRecord, SyncMetadata
from ..resolver import record_timestamp


class RecordStore(ABC):
    """
    Abstract base class for record stores.

    Records are dictionaries with a mandatory ``id``. ``save`` and
    ``bulk_save`` upsert by id within a record type.
    """

    @abstractmethod
    def get_all(self, record_type: str) -> List[SyncableRecord]:
        """
        Return every record of a type.

        Args:
            record_type: Collection name (e.g. "entries")

        Returns:
            List of record dictionaries (copies; safe to mutate)
        """
        pass

    @abstractmethod
    def get_by_id(self, record_type: str, record_id: str) -> Optional[SyncableRecord]:
        """Return one record, or None if it does not exist."""
        pass

    @abstractmethod
    def save(self, record_type: str, record: SyncableRecord) -> None:
        """
        Insert or replace a record.

        Raises:
            ValueError: If the record has no ``id``
        """
        pass

    @abstractmethod
    def delete(self, record_type: str, record_id: str) -> bool:
        """
        Delete a record.

        Returns:
            True if it existed, False otherwise
        """
        pass

    def bulk_save(self, record_type: str, records: Iterable[SyncableRecord]) -> int:
        """
        Insert or replace many records.

        Returns:
            Number of records written
        """
        count = 0
        for record in records:
            self.save(record_type, record)
            count += 1
        return count

    def get_updated_since(self, record_type: str,
                          since: Optional[datetime]) -> List[SyncableRecord]:
        """
        Return records updated at or after ``since`` (all records if None).

        Records without a usable timestamp are always included.
        """
        return filter_updated_since(self.get_all(record_type), since)

    def count(self, record_type: str) -> int:
        return len(self.get_all(record_type))

    def close(self) -> None:
        """Release resources. Default: nothing to release."""
        pass


class RemoteRecordStore(RecordStore):
    """
    Remote (authoritative, shared) record store.

    Every call may fail with RemoteStoreError.
    """

    @abstractmethod
    def get_metadata(self) -> Optional[SyncMetadata]:
        """Return the endpoint's SyncMetadata, or None if never synced."""
        pass

    @abstractmethod
    def set_metadata(self, metadata: SyncMetadata) -> None:
        """Persist the endpoint's SyncMetadata."""
        pass


def filter_updated_since(records: List[SyncableRecord],
                         since: Optional[datetime]) -> List[SyncableRecord]:
    """Keep records updated at or after ``since``; untimestamped records are kept."""
    if since is None:
        return records
    result = []
    for record in records:
        ts = record_timestamp(record)
        if ts is None or ts >= since:
            result.append(record)
    return result


def require_id(record: SyncableRecord) -> str:
    """Return the record id as a string, raising ValueError if missing."""
    record_id = record.get("id") if isinstance(record, dict) else None
    if record_id is None or record_id == "":
        raise ValueError("Record is missing required 'id' field")
    return str(record_id)

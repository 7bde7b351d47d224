"""
Data model for the sync engine.

Records themselves are opaque dictionaries; the engine only relies on an ``id``
and an update timestamp. Everything the engine owns (pending changes, sync
metadata, the broadcast state and operation results) is defined here as
dataclasses with ``to_dict``/``from_dict`` helpers for persistence.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

# A synchronizable record: {"id": ..., "updated_at": ..., **payload}
SyncableRecord = Dict[str, Any]

# Record type used to persist local SyncMetadata through the local store
SYNC_METADATA_TYPE = "_sync_metadata"

# Timestamp fields consulted in order of preference
TIMESTAMP_FIELDS = ("updated_at", "updatedAt", "timestamp", "created_at")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[datetime, str, int, float, None]) -> Optional[datetime]:
    """
    Normalize a timestamp value to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings
    (a trailing ``Z`` is allowed) and epoch seconds.

    Returns:
        Aware datetime, or None if the value is missing or unparseable
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO-8601 UTC, or None."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class ChangeAction(str, Enum):
    """Kind of local mutation recorded in the pending queue."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncStatus(str, Enum):
    """
    Observable status of the sync engine.

    IDLE: Nothing attempted yet
    SYNCING: An operation is in flight
    SYNCED: Last operation succeeded
    ERROR: Last operation failed (see SyncState.error)
    OFFLINE: Sync preconditions not met; not a failure
    """
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"
    OFFLINE = "offline"


class MetadataStatus(str, Enum):
    """Status persisted in SyncMetadata for other devices to observe."""
    NEVER = "never"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


@dataclass(frozen=True)
class PendingChange:
    """
    An outstanding local mutation awaiting transmission.

    Attributes:
        record_type: Collection the record belongs to (e.g. "entries")
        action: create | update | delete
        id: Record id
        timestamp: ISO-8601 UTC enqueue time
    """
    record_type: str
    action: ChangeAction
    id: str
    timestamp: str

    @property
    def key(self) -> tuple:
        """Dedup key: one pending change per (record_type, id)."""
        return (self.record_type, self.id)

    @property
    def enqueued_at(self) -> Optional[datetime]:
        return parse_timestamp(self.timestamp)

    @classmethod
    def create(cls, record_type: str, action: Union[ChangeAction, str], record_id: str,
               at: Optional[datetime] = None) -> "PendingChange":
        """Build a change stamped with ``at`` (default: now)."""
        return cls(
            record_type=record_type,
            action=ChangeAction(action),
            id=record_id,
            timestamp=format_timestamp(at or utc_now()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_type": self.record_type,
            "action": self.action.value,
            "id": self.id,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingChange":
        return cls(
            record_type=data["record_type"],
            action=ChangeAction(data["action"]),
            id=data["id"],
            timestamp=data["timestamp"],
        )


@dataclass
class SyncMetadata:
    """
    Per-endpoint record of the last successful sync.

    The remote copy lets multiple devices observe the last sync. The local
    copy additionally carries ``last_pull_at``, the incremental pull cursor.
    """
    last_sync_at: Optional[datetime] = None
    records_synced: int = 0
    status: MetadataStatus = MetadataStatus.NEVER
    last_pull_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_sync_at": format_timestamp(self.last_sync_at),
            "records_synced": self.records_synced,
            "status": self.status.value,
            "last_pull_at": format_timestamp(self.last_pull_at),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SyncMetadata":
        if not data:
            return cls()
        try:
            status = MetadataStatus(data.get("status") or MetadataStatus.NEVER.value)
        except ValueError:
            status = MetadataStatus.ERROR
        return cls(
            last_sync_at=parse_timestamp(data.get("last_sync_at")),
            records_synced=int(data.get("records_synced") or 0),
            status=status,
            last_pull_at=parse_timestamp(data.get("last_pull_at")),
        )


@dataclass(frozen=True)
class SyncState:
    """Immutable snapshot broadcast to subscribers on every change."""
    status: SyncStatus = SyncStatus.IDLE
    last_sync_at: Optional[datetime] = None
    pending_changes: int = 0
    error: Optional[str] = None

    def evolve(self, **changes: Any) -> "SyncState":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "last_sync_at": format_timestamp(self.last_sync_at),
            "pending_changes": self.pending_changes,
            "error": self.error,
        }


@dataclass
class SyncResult:
    """
    Outcome of one orchestrator operation.

    Attributes:
        operation: push | pull | full_sync | process_pending
        success: True if the operation completed without error
        pushed: Records sent to the remote by a push
        pulled: Records changed locally by a pull
        processed: Pending changes applied and removed from the queue
        failed: Pending changes that failed and stay queued
        skipped: Another operation was in flight; nothing was done
        offline: Sync preconditions were not met; nothing was attempted
        error: Human-readable error message
    """
    operation: str
    success: bool = False
    pushed: int = 0
    pulled: int = 0
    processed: int = 0
    failed: int = 0
    skipped: bool = False
    offline: bool = False
    error: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def count(self) -> int:
        """Headline count for the operation."""
        if self.operation == "push":
            return self.pushed
        if self.operation == "pull":
            return self.pulled
        if self.operation == "process_pending":
            return self.processed
        return self.pushed + self.pulled

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "success": self.success,
            "pushed": self.pushed,
            "pulled": self.pulled,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "offline": self.offline,
            "error": self.error,
        }

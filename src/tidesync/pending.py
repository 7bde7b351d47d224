"""
Pending Change Queue - bounded, persisted, deduplicated outbox

Every local mutation is recorded here until it has been applied to the remote
store. The queue holds at most one entry per (record_type, id): a newer change
supersedes the older one and moves to the back. When the queue is full a new
key evicts the oldest entry instead of rejecting the caller, because the local
write that produced it has already succeeded.

The whole queue is persisted as a single JSON document, written wholesale, so
a crash can never leave a half-written entry behind.

Usage:
    storage = FileQueueStorage(Path("~/.tidesync"))
    queue = PendingChangeQueue(storage)

    queue.enqueue(PendingChange.create("entries", "update", "abc123"))
    for change in queue.dequeue_all():
        ...
        queue.remove(change.record_type, change.id)
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple
import json
import logging
import os
import tempfile

from .models import PendingChange, utc_now

logger = logging.getLogger(__name__)

QUEUE_NAMESPACE = "tidesync.pending_changes"
QUEUE_SCHEMA_VERSION = 1

DEFAULT_MAX_SIZE = 100
DEFAULT_STALE_AFTER = timedelta(days=7)


class QueueStorage(ABC):
    """Persistence for the serialized queue document."""

    @abstractmethod
    def read(self) -> Optional[str]:
        """Return the stored document, or None if nothing was stored yet."""
        pass

    @abstractmethod
    def write(self, document: str) -> None:
        """Replace the stored document atomically."""
        pass


class MemoryQueueStorage(QueueStorage):
    """Keeps the document in memory. Survives queue re-creation, not restarts."""

    def __init__(self, document: Optional[str] = None):
        self.document = document

    def read(self) -> Optional[str]:
        return self.document

    def write(self, document: str) -> None:
        self.document = document


class FileQueueStorage(QueueStorage):
    """
    Stores the document in a file named after the queue namespace.

    Writes go to a temp file in the same directory, are fsync'd, and then
    replace the target with ``os.replace`` so readers only ever see a complete
    document.
    """

    def __init__(self, directory: Path, namespace: str = QUEUE_NAMESPACE):
        self.directory = Path(directory).expanduser()
        self.path = self.directory / f"{namespace}.json"

    def read(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def write(self, document: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.directory), prefix=f".{self.path.stem}_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(document)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


class PendingChangeQueue:
    """
    Bounded FIFO of pending changes keyed by (record_type, id).

    Thread-safe: enqueue may be called from the host thread while the sync
    worker removes entries. The lock is never held across network I/O.
    """

    def __init__(
        self,
        storage: QueueStorage,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], datetime] = utc_now,
        namespace: str = QUEUE_NAMESPACE,
        version: int = QUEUE_SCHEMA_VERSION,
    ):
        """
        Args:
            storage: Where the serialized document lives
            max_size: Maximum number of distinct keys held (default: 100)
            clock: Returns the current aware datetime (injectable for tests)
            namespace: Document namespace; a mismatch discards stored data
            version: Document schema version; a mismatch discards stored data
        """
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.storage = storage
        self.max_size = max_size
        self.clock = clock
        self.namespace = namespace
        self.version = version
        self._lock = Lock()
        # Insertion-ordered: first key is the oldest entry
        self._entries: Dict[Tuple[str, str], PendingChange] = {}
        self._load()

    # ==================== Persistence ====================

    def _load(self) -> None:
        """Load the persisted document, discarding anything unrecognized."""
        try:
            raw = self.storage.read()
        except OSError as e:
            logger.warning(f"Could not read pending change queue, starting empty: {e}")
            return
        if not raw:
            return

        try:
            document = json.loads(raw)
            if not isinstance(document, dict):
                raise TypeError(f"expected an object, got {type(document).__name__}")
            if (document.get("namespace") != self.namespace
                    or document.get("version") != self.version):
                logger.warning(
                    f"Discarding pending change queue with unexpected schema "
                    f"(namespace={document.get('namespace')}, version={document.get('version')})"
                )
                return
            changes = [PendingChange.from_dict(item) for item in document.get("changes", [])]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable pending change queue: {e}")
            return

        changes.sort(key=lambda c: c.timestamp)
        for change in changes:
            self._entries.pop(change.key, None)
            self._entries[change.key] = change
        while len(self._entries) > self.max_size:
            self._entries.pop(next(iter(self._entries)))

        logger.debug(f"Loaded {len(self._entries)} pending changes")

    def _persist(self) -> None:
        """
        Write the whole queue. Caller holds the lock.

        A failed write keeps the in-memory queue intact; the next successful
        write persists the full state again.
        """
        document = {
            "namespace": self.namespace,
            "version": self.version,
            "changes": [change.to_dict() for change in self._entries.values()],
        }
        try:
            self.storage.write(json.dumps(document, sort_keys=True))
        except OSError as e:
            logger.error(f"Failed to persist pending change queue: {e}", exc_info=True)

    # ==================== Queue Operations ====================

    def enqueue(self, change: PendingChange) -> Optional[PendingChange]:
        """
        Insert a change, superseding any existing entry for the same key.

        If the queue is full and the key is new, the oldest entry is evicted
        first. Never rejects the change.

        Returns:
            The evicted entry, if one had to make room; otherwise None
        """
        evicted = None
        with self._lock:
            if change.key in self._entries:
                # Supersede: drop the old one so the new one goes to the back
                del self._entries[change.key]
            elif len(self._entries) >= self.max_size:
                oldest_key = next(iter(self._entries))
                evicted = self._entries.pop(oldest_key)

            self._entries[change.key] = change
            self._persist()

        if evicted:
            logger.warning(
                f"Pending change queue full ({self.max_size}), evicted oldest "
                f"{evicted.record_type}:{evicted.id} queued at {evicted.timestamp}"
            )
        return evicted

    def dequeue_all(self) -> List[PendingChange]:
        """Snapshot of all pending changes in FIFO order. Does not mutate."""
        with self._lock:
            return list(self._entries.values())

    def get(self, record_type: str, record_id: str) -> Optional[PendingChange]:
        with self._lock:
            return self._entries.get((record_type, record_id))

    def remove(self, record_type: str, record_id: str,
               expected: Optional[PendingChange] = None) -> bool:
        """
        Remove the entry for a key after it was applied remotely.

        Args:
            record_type: Record type of the entry
            record_id: Record id of the entry
            expected: If given, only remove when the stored entry is still this
                      same object from dequeue_all (a newer superseding
                      change is kept, even one with an equal timestamp)

        Returns:
            True if an entry was removed
        """
        with self._lock:
            key = (record_type, record_id)
            current = self._entries.get(key)
            if current is None:
                return False
            if expected is not None and current is not expected:
                logger.debug(
                    f"Keeping {record_type}:{record_id}, superseded while in flight"
                )
                return False
            del self._entries[key]
            self._persist()
            return True

    def evict_stale(self, max_age: timedelta = DEFAULT_STALE_AFTER,
                    now: Optional[datetime] = None) -> int:
        """
        Drop every entry enqueued more than ``max_age`` ago.

        Entries with an unparseable timestamp are treated as stale.

        Returns:
            Number of entries evicted
        """
        cutoff = (now or self.clock()) - max_age
        with self._lock:
            stale = [
                key for key, change in self._entries.items()
                if change.enqueued_at is None or change.enqueued_at < cutoff
            ]
            for key in stale:
                del self._entries[key]
            if stale:
                self._persist()

        if stale:
            logger.warning(
                f"Evicted {len(stale)} stale pending changes older than {max_age}"
            )
        return len(stale)

    def clear(self) -> int:
        """Remove everything. Returns the number of entries dropped."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._persist()
        return count

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

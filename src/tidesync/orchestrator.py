"""
Sync Orchestrator - push, pull, full sync and pending-change processing

Owns the SyncState for one local/remote pair and is the only writer of it.
Every public operation follows the same shape:

    1. Try the in-flight guard; if another operation holds it, return a
       skipped result without touching SyncState
    2. Evict stale pending changes
    3. Check availability; if sync is unavailable, go ``offline`` with zero
       remote calls
    4. Go ``syncing``, run the body against one deadline, then go ``synced``
       or ``error`` and release the guard

Remote calls run on a small worker pool so the orchestrator can stop waiting
when the deadline passes or the operation is cancelled. Timed-out work is not
rolled back; every operation is idempotent and safe to retry.

Usage:
    orchestrator = SyncOrchestrator(
        local=SQLiteRecordStore(path),
        remote=HTTPRemoteStore(url, token=token),
        queue=PendingChangeQueue(FileQueueStorage(base_path)),
        record_types=["entries"],
        singleton_types=["settings"],
    )
    orchestrator.record_change("entries", "update", "abc123")
    result = orchestrator.process_pending_changes()
"""

from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from threading import Event, Lock
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging
import time

from .availability import as_availability
from .errors import (
    LocalStoreError,
    RemoteStoreError,
    SyncCancelledError,
    SyncError,
    SyncTimeoutError,
    SyncUnavailableError,
)
from .models import (
    ChangeAction,
    MetadataStatus,
    PendingChange,
    SYNC_METADATA_TYPE,
    SyncableRecord,
    SyncMetadata,
    SyncResult,
    SyncState,
    SyncStatus,
    format_timestamp,
    utc_now,
)
from .pending import DEFAULT_STALE_AFTER, MemoryQueueStorage, PendingChangeQueue
from .resolver import DEFAULT_SKEW_TOLERANCE_MS, remote_wins
from .state import SyncStateMachine
from .stores.base import RecordStore, RemoteRecordStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
POLL_INTERVAL = 0.05


class CancellationToken:
    """Cooperative cancellation flag shared by one operation."""

    def __init__(self):
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str) -> None:
        if self._event.is_set():
            raise SyncCancelledError(f"{operation} cancelled")


class OperationContext:
    """
    Deadline and cancellation scope for a single orchestrator operation.

    ``remote`` runs a call on the worker pool and waits for it in short
    slices, checking the deadline and the cancellation token in between.
    ``local`` runs inline and normalizes unexpected errors.
    """

    def __init__(self, operation: str, timeout: float, token: CancellationToken,
                 executor: ThreadPoolExecutor):
        self.operation = operation
        self.timeout = timeout
        self.token = token
        self.deadline = time.monotonic() + timeout
        self._executor = executor
        self.pull_started: Optional[datetime] = None

    def check(self) -> None:
        """Raise if the operation was cancelled or ran out of time."""
        self.token.raise_if_cancelled(self.operation)
        if time.monotonic() >= self.deadline:
            raise SyncTimeoutError(self.operation, self.timeout)

    def remote(self, fn: Callable[..., Any], *args: Any) -> Any:
        self.check()
        future = self._executor.submit(fn, *args)
        while True:
            remaining = self.deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise SyncTimeoutError(self.operation, self.timeout)
            done, _ = wait([future], timeout=min(POLL_INTERVAL, remaining))
            if done:
                break
            if self.token.cancelled:
                future.cancel()
                raise SyncCancelledError(f"{self.operation} cancelled")

        try:
            return future.result()
        except SyncError:
            raise
        except Exception as e:
            raise RemoteStoreError(f"{_call_name(fn)} failed: {e}") from e

    def local(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except SyncError:
            raise
        except Exception as e:
            raise LocalStoreError(f"{_call_name(fn)} failed: {e}") from e


def _call_name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or getattr(fn, "__name__", "call")


class SyncOrchestrator:
    """
    Drives synchronization between a local and a remote record store.

    Thread-safe: any thread may call any operation; at most one runs at a
    time and the others return immediately with ``skipped=True``.
    """

    def __init__(
        self,
        local: RecordStore,
        remote: RemoteRecordStore,
        availability=None,
        queue: Optional[PendingChangeQueue] = None,
        record_types: Iterable[str] = (),
        singleton_types: Iterable[str] = (),
        endpoint: str = "default",
        timeout: float = DEFAULT_TIMEOUT,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        skew_tolerance_ms: int = DEFAULT_SKEW_TOLERANCE_MS,
        clock: Callable[[], datetime] = utc_now,
        max_workers: int = 4,
    ):
        """
        Args:
            local: Local record store (always writable)
            remote: Remote record store (authoritative shared copy)
            availability: Callable or object with is_sync_available();
                          None means always available
            queue: Pending change queue (default: in-memory)
            record_types: Record types reconciled with Last-Write-Wins
            singleton_types: Record types where remote fields overwrite local
            endpoint: Name under which local sync metadata is stored
            timeout: Per-operation deadline in seconds
            stale_after: Pending changes older than this are evicted
            skew_tolerance_ms: Clock drift absorbed by conflict resolution
            clock: Returns the current aware datetime
            max_workers: Size of the remote call pool
        """
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.local = local
        self.remote = remote
        self._available = as_availability(availability)
        if queue is None:
            queue = PendingChangeQueue(MemoryQueueStorage(), clock=clock)
        self.queue = queue
        self.singleton_types: List[str] = list(dict.fromkeys(singleton_types))
        self.record_types: List[str] = [
            t for t in dict.fromkeys(record_types) if t not in self.singleton_types
        ]
        self.endpoint = endpoint
        self.timeout = timeout
        self.stale_after = stale_after
        self.skew_tolerance_ms = skew_tolerance_ms
        self.clock = clock

        self._guard = Lock()
        self._token: Optional[CancellationToken] = None
        # Held while the guard and the token change together
        self._token_lock = Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="tidesync-remote"
        )

        metadata = self._load_local_metadata()
        self.state_machine = SyncStateMachine(SyncState(
            last_sync_at=metadata.last_sync_at,
            pending_changes=self.queue.size(),
        ))

    @property
    def all_types(self) -> List[str]:
        return self.record_types + self.singleton_types

    # ==================== State ====================

    @property
    def state(self) -> SyncState:
        return self.state_machine.state

    def subscribe(self, callback: Callable[[SyncState], None]) -> Callable[[], bool]:
        """Subscribe to state changes. Returns an unsubscribe function."""
        return self.state_machine.subscribe(callback)

    def is_sync_available(self) -> bool:
        try:
            return bool(self._available())
        except SyncUnavailableError as e:
            logger.debug(f"Sync unavailable: {e}")
            return False
        except Exception as e:
            logger.warning(f"Availability check failed, treating sync as unavailable: {e}")
            return False

    def is_local_only(self) -> bool:
        """True when remote sync is not configured or not signed in."""
        return not self.is_sync_available()

    def is_syncing(self) -> bool:
        return self._guard.locked()

    def _publish_pending(self) -> None:
        self.state_machine.update(pending_changes=self.queue.size())

    # ==================== Local Metadata ====================

    def _load_local_metadata(self) -> SyncMetadata:
        record = self.local.get_by_id(SYNC_METADATA_TYPE, self.endpoint)
        return SyncMetadata.from_dict(record)

    def _save_local_metadata(self, metadata: SyncMetadata) -> None:
        record = metadata.to_dict()
        record["id"] = self.endpoint
        self.local.save(SYNC_METADATA_TYPE, record)

    def get_local_metadata(self) -> SyncMetadata:
        return self._load_local_metadata()

    # ==================== Host Entry Points ====================

    def record_change(self, record_type: str, action, record_id: str,
                      at: Optional[datetime] = None) -> PendingChange:
        """
        Record a local mutation for later transmission.

        Never blocks on network I/O and never fails because of the queue
        bound (the oldest entry is evicted instead).
        """
        change = PendingChange.create(record_type, action, str(record_id), at=at or self.clock())
        self.queue.enqueue(change)
        self._publish_pending()
        logger.debug(f"Recorded {change.action.value} for {record_type}:{record_id}")
        return change

    def initialize(self) -> Optional[SyncResult]:
        """
        Publish the persisted pending count and drain it if sync is possible.

        Returns:
            The process_pending_changes result, or None if nothing was run
        """
        self._publish_pending()
        if self.queue.size() == 0:
            logger.debug("No pending changes at startup")
            return None
        if not self.is_sync_available():
            logger.info(f"Local-only mode, {self.queue.size()} changes stay pending")
            return None
        logger.info(f"Processing {self.queue.size()} pending changes from a previous session")
        return self.process_pending_changes()

    def cancel(self) -> bool:
        """
        Request cooperative cancellation of the in-flight operation.

        Returns:
            True if an operation was in flight
        """
        with self._token_lock:
            token = self._token
        if token is None:
            return False
        token.cancel()
        logger.info("Cancellation requested for in-flight sync operation")
        return True

    # ==================== Operations ====================

    def push(self) -> SyncResult:
        """Upload every local record, then write remote metadata and clear the queue."""
        return self._run("push", self._push)

    def pull(self) -> SyncResult:
        """Download remote changes since the last pull and reconcile them locally."""
        return self._run("pull", self._pull)

    def full_sync(self) -> SyncResult:
        """Pull then push, as one operation under one deadline."""
        return self._run("full_sync", self._full_sync)

    def process_pending_changes(self) -> SyncResult:
        """Apply pending changes to the remote one by one, in FIFO order."""
        return self._run("process_pending", self._process_pending)

    def _run(self, operation: str,
             body: Callable[[OperationContext, SyncResult], None]) -> SyncResult:
        token = CancellationToken()
        with self._token_lock:
            if not self._guard.acquire(blocking=False):
                logger.debug(f"{operation} skipped: another sync operation is in flight")
                return SyncResult(operation, skipped=True, error="Sync already in progress")
            self._token = token

        try:
            evicted = self.queue.evict_stale(self.stale_after, now=self.clock())
            if evicted:
                self._publish_pending()

            if not self.is_sync_available():
                self.state_machine.transition(SyncStatus.OFFLINE)
                logger.info(f"{operation}: sync unavailable, working offline")
                return SyncResult(operation, offline=True)

            ctx = OperationContext(operation, self.timeout, token, self._executor)
            result = SyncResult(operation)
            self.state_machine.transition(SyncStatus.SYNCING)

            try:
                body(ctx, result)
                if result.error is None:
                    self._record_success(ctx, result)
            except LocalStoreError as e:
                self._fail(result, e)
                raise
            except SyncError as e:
                self._fail(result, e)
                return result
            except Exception as e:
                self._fail(result, e)
                raise

            if result.error is not None:
                self.state_machine.transition(
                    SyncStatus.ERROR, error=result.error, pending_changes=self.queue.size()
                )
                logger.warning(f"{operation} finished with errors: {result.error}")
            return result
        finally:
            with self._token_lock:
                self._token = None
                self._guard.release()

    def _record_success(self, ctx: OperationContext, result: SyncResult) -> None:
        finished = self.clock()
        metadata = ctx.local(self._load_local_metadata)
        metadata.last_sync_at = finished
        metadata.records_synced = result.count
        metadata.status = MetadataStatus.SYNCED
        if ctx.pull_started is not None:
            metadata.last_pull_at = ctx.pull_started
        ctx.local(self._save_local_metadata, metadata)

        result.success = True
        self.state_machine.transition(
            SyncStatus.SYNCED,
            last_sync_at=finished,
            pending_changes=self.queue.size(),
            error=None,
        )
        logger.info(
            f"{result.operation} complete: pushed={result.pushed} pulled={result.pulled} "
            f"processed={result.processed}"
        )

    def _fail(self, result: SyncResult, error: Exception) -> None:
        result.success = False
        result.error = str(error) or type(error).__name__
        self.state_machine.transition(
            SyncStatus.ERROR, error=result.error, pending_changes=self.queue.size()
        )
        if isinstance(error, (SyncTimeoutError, SyncCancelledError)):
            logger.error(f"{result.operation} aborted: {result.error}")
        else:
            logger.error(f"{result.operation} failed: {result.error}", exc_info=True)

    # ==================== Bodies ====================

    def _push(self, ctx: OperationContext, result: SyncResult) -> None:
        pending = self.queue.dequeue_all()

        for record_type in self.all_types:
            records = ctx.local(self.local.get_all, record_type)
            if not records:
                continue
            ctx.remote(self.remote.bulk_save, record_type, records)
            result.pushed += len(records)
            logger.debug(f"Pushed {len(records)} {record_type}")

        # bulk_save cannot express deletions
        deleted = 0
        for change in pending:
            if change.action == ChangeAction.DELETE:
                ctx.remote(self.remote.delete, change.record_type, change.id)
                deleted += 1
        result.extra["deleted"] = deleted

        ctx.remote(self.remote.set_metadata, SyncMetadata(
            last_sync_at=self.clock(),
            records_synced=result.pushed,
            status=MetadataStatus.SYNCED,
        ))

        # Changes recorded while the push ran are kept
        for change in pending:
            self.queue.remove(change.record_type, change.id, expected=change)
        self._publish_pending()

    def _pull(self, ctx: OperationContext, result: SyncResult) -> None:
        started = self.clock()
        metadata = ctx.local(self._load_local_metadata)
        since = None
        if metadata.last_pull_at is not None:
            since = metadata.last_pull_at - timedelta(milliseconds=self.skew_tolerance_ms)
        logger.debug(f"Pulling changes since {format_timestamp(since) or 'the beginning'}")

        for record_type in self.all_types:
            remote_records = ctx.remote(self.remote.get_updated_since, record_type, since)
            singleton = record_type in self.singleton_types
            for remote_record in remote_records:
                ctx.check()
                if not isinstance(remote_record, dict) or remote_record.get("id") in (None, ""):
                    logger.warning(f"Ignoring remote {record_type} record without an id")
                    continue
                if singleton:
                    changed = self._merge_singleton(ctx, record_type, remote_record)
                else:
                    changed = self._apply_remote(ctx, record_type, remote_record)
                if changed:
                    result.pulled += 1

        ctx.pull_started = started

    def _deleted_locally(self, record_type: str, record_id: str) -> bool:
        change = self.queue.get(record_type, record_id)
        return change is not None and change.action == ChangeAction.DELETE

    def _apply_remote(self, ctx: OperationContext, record_type: str,
                      remote_record: SyncableRecord) -> bool:
        if self._deleted_locally(record_type, str(remote_record["id"])):
            logger.debug(f"Skipping remote {record_type}:{remote_record['id']}, deleted locally")
            return False
        local_record = ctx.local(self.local.get_by_id, record_type, str(remote_record["id"]))
        if local_record is not None and not remote_wins(
            local_record, remote_record, self.skew_tolerance_ms
        ):
            return False
        ctx.local(self.local.save, record_type, remote_record)
        return True

    def _merge_singleton(self, ctx: OperationContext, record_type: str,
                         remote_record: SyncableRecord) -> bool:
        if self._deleted_locally(record_type, str(remote_record["id"])):
            return False
        local_record = ctx.local(self.local.get_by_id, record_type, str(remote_record["id"]))
        merged: Dict[str, Any] = dict(local_record or {})
        merged.update(remote_record)
        if merged == local_record:
            return False
        ctx.local(self.local.save, record_type, merged)
        return True

    def _full_sync(self, ctx: OperationContext, result: SyncResult) -> None:
        self._pull(ctx, result)
        self._push(ctx, result)

    def _process_pending(self, ctx: OperationContext, result: SyncResult) -> None:
        changes = self.queue.dequeue_all()
        dropped = 0

        for change in changes:
            ctx.token.raise_if_cancelled(ctx.operation)
            try:
                if change.action == ChangeAction.DELETE:
                    ctx.remote(self.remote.delete, change.record_type, change.id)
                else:
                    record = ctx.local(self.local.get_by_id, change.record_type, change.id)
                    if record is None:
                        logger.debug(
                            f"{change.record_type}:{change.id} no longer exists locally, dropping"
                        )
                        if self.queue.remove(change.record_type, change.id, expected=change):
                            dropped += 1
                        continue
                    ctx.remote(self.remote.save, change.record_type, record)
            except RemoteStoreError as e:
                result.failed += 1
                logger.warning(
                    f"Pending {change.action.value} for {change.record_type}:{change.id} "
                    f"failed, keeping it queued: {e}"
                )
                continue

            if self.queue.remove(change.record_type, change.id, expected=change):
                result.processed += 1
            self._publish_pending()

        result.extra["dropped"] = dropped
        self._publish_pending()
        if result.failed:
            result.error = f"{result.failed} of {len(changes)} pending changes failed"

    # ==================== Stats ====================

    def get_sync_stats(self) -> Dict[str, Any]:
        """
        Summarize local and remote record counts and sync status.

        Remote counts are only fetched when sync is available; a remote
        failure leaves them as None.
        """
        local_count = sum(self.local.count(t) for t in self.all_types)
        available = self.is_sync_available()
        remote_count = None
        if available:
            ctx = OperationContext("stats", self.timeout, CancellationToken(), self._executor)
            try:
                remote_count = sum(ctx.remote(self.remote.count, t) for t in self.all_types)
            except SyncError as e:
                logger.warning(f"Could not count remote records: {e}")

        state = self.state
        metadata = self._load_local_metadata()
        if not available:
            status = "local-only"
        elif state.status == SyncStatus.ERROR:
            status = "error"
        elif metadata.last_sync_at is not None:
            status = "synced"
        else:
            status = "never"

        return {
            "local_count": local_count,
            "remote_count": remote_count,
            "pending_changes": self.queue.size(),
            "last_sync_at": format_timestamp(metadata.last_sync_at or state.last_sync_at),
            "status": status,
        }

    def close(self) -> None:
        """Cancel any in-flight operation and release the worker pool."""
        self.cancel()
        self._executor.shutdown(wait=False)

"""
tidesync - offline-first synchronization engine

Keeps records in a local store that is always writable and reconciles them
with a shared remote store: a bounded pending-change queue, push/pull/full
sync, Last-Write-Wins conflict resolution and an observable sync state.
"""

__version__ = "0.1.0"

from .errors import (
    SyncError,
    SyncUnavailableError,
    SyncTimeoutError,
    SyncCancelledError,
    InvalidTransitionError,
    ConfigError,
    StoreError,
    RemoteStoreError,
    RemoteAuthError,
    RemoteConnectionError,
    LocalStoreError,
)
from .models import (
    ChangeAction,
    MetadataStatus,
    PendingChange,
    SyncMetadata,
    SyncResult,
    SyncState,
    SyncStatus,
)
from .pending import PendingChangeQueue, FileQueueStorage, MemoryQueueStorage
from .resolver import resolve, remote_wins, record_timestamp
from .state import SyncStateMachine
from .availability import ConfigAvailability
from .orchestrator import SyncOrchestrator
from .scheduler import SyncScheduler
from .config import SyncConfig, load_config
from .factory import build_orchestrator, build_scheduler

__all__ = [
    "__version__",
    # Errors
    "SyncError",
    "SyncUnavailableError",
    "SyncTimeoutError",
    "SyncCancelledError",
    "InvalidTransitionError",
    "ConfigError",
    "StoreError",
    "RemoteStoreError",
    "RemoteAuthError",
    "RemoteConnectionError",
    "LocalStoreError",
    # Models
    "ChangeAction",
    "MetadataStatus",
    "PendingChange",
    "SyncMetadata",
    "SyncResult",
    "SyncState",
    "SyncStatus",
    # Engine
    "PendingChangeQueue",
    "FileQueueStorage",
    "MemoryQueueStorage",
    "resolve",
    "remote_wins",
    "record_timestamp",
    "SyncStateMachine",
    "ConfigAvailability",
    "SyncOrchestrator",
    "SyncScheduler",
    "SyncConfig",
    "load_config",
    "build_orchestrator",
    "build_scheduler",
]

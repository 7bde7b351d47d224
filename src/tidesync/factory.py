"""Wire a SyncConfig into a ready-to-use orchestrator."""

from datetime import timedelta
from typing import Optional
import logging

from .availability import ConfigAvailability
from .config import SyncConfig
from .orchestrator import SyncOrchestrator
from .pending import FileQueueStorage, PendingChangeQueue
from .scheduler import SyncScheduler
from .stores.base import RecordStore, RemoteRecordStore
from .stores.http import HTTPRemoteStore
from .stores.sqlite import SQLiteRecordStore

logger = logging.getLogger(__name__)


def build_orchestrator(config: SyncConfig,
                       local: Optional[RecordStore] = None,
                       remote: Optional[RemoteRecordStore] = None,
                       availability=None) -> SyncOrchestrator:
    """
    Build an orchestrator from configuration.

    Args:
        config: Loaded SyncConfig
        local: Override the SQLite store under the base path
        remote: Override the HTTP store at ``remote.url``
        availability: Override the "url and token configured" check

    Returns:
        SyncOrchestrator with a file-backed pending queue
    """
    if local is None:
        local = SQLiteRecordStore(config.database_path)
    if remote is None:
        remote = HTTPRemoteStore(
            config.remote_url or "",
            token=config.remote_token,
            request_timeout=config.request_timeout,
        )
    if availability is None:
        availability = ConfigAvailability(config.remote_url, config.remote_token)

    queue = PendingChangeQueue(
        FileQueueStorage(config.base_path),
        max_size=config.queue_max_size,
    )

    logger.debug(
        f"Building orchestrator for endpoint '{config.endpoint}' "
        f"(types={config.record_types}, singletons={config.singleton_types})"
    )
    return SyncOrchestrator(
        local=local,
        remote=remote,
        availability=availability,
        queue=queue,
        record_types=config.record_types,
        singleton_types=config.singleton_types,
        endpoint=config.endpoint,
        timeout=config.timeout_seconds,
        stale_after=timedelta(days=config.stale_after_days),
        skew_tolerance_ms=config.skew_tolerance_ms,
    )


def build_scheduler(config: SyncConfig, orchestrator: SyncOrchestrator) -> SyncScheduler:
    return SyncScheduler(
        orchestrator,
        interval=timedelta(minutes=config.interval_minutes),
        min_interval=timedelta(minutes=config.min_interval_minutes),
    )

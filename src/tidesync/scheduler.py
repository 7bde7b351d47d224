"""
Background sync scheduling.

The engine never retries on its own; this scheduler is the optional trigger
a host can run next to it. It performs a full sync every ``interval`` on a
daemon thread and lets the host forward events (app resumed, connectivity
restored, signed in). Full syncs closer together than ``min_interval`` are
throttled so a burst of events does not hammer the remote.
"""

from datetime import timedelta
from threading import Event, Lock, Thread
from typing import Any, Callable, Dict, Optional
import logging
import time

from .models import SyncResult
from .orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = timedelta(minutes=15)
DEFAULT_MIN_INTERVAL = timedelta(minutes=5)


class SyncScheduler:
    """
    Periodic and event-driven full sync for one orchestrator.

    Example:
        scheduler = SyncScheduler(orchestrator)
        scheduler.start()
        ...
        scheduler.notify_connectivity_restored()
        scheduler.stop()
    """

    def __init__(self, orchestrator: SyncOrchestrator,
                 interval: timedelta = DEFAULT_INTERVAL,
                 min_interval: timedelta = DEFAULT_MIN_INTERVAL,
                 monotonic: Callable[[], float] = time.monotonic):
        if interval.total_seconds() <= 0:
            raise ValueError("interval must be positive")
        self.orchestrator = orchestrator
        self.interval = interval
        self.min_interval = min_interval
        self._monotonic = monotonic
        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self._lock = Lock()
        self._last_run: Optional[float] = None
        self.last_result: Optional[SyncResult] = None

    def start(self) -> None:
        """Start the periodic loop. No-op if already running."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="tidesync-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Background sync started, every {self.interval}")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the loop, cancelling any in-flight operation."""
        self._stop_event.set()
        self.orchestrator.cancel()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Background sync stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _throttled(self) -> bool:
        with self._lock:
            if self._last_run is None:
                return False
            elapsed = self._monotonic() - self._last_run
            return elapsed < self.min_interval.total_seconds()

    def trigger(self, source: str = "manual", force: bool = False) -> Optional[SyncResult]:
        """
        Run a full sync unless one ran less than ``min_interval`` ago.

        Args:
            source: What caused the trigger (logged only)
            force: Ignore the throttle

        Returns:
            The full sync result, or None if throttled
        """
        if not force and self._throttled():
            logger.debug(f"Sync trigger from {source} throttled")
            return None

        logger.debug(f"Sync triggered by {source}")
        result = self.orchestrator.full_sync()
        if not result.skipped:
            with self._lock:
                self._last_run = self._monotonic()
        self.last_result = result
        return result

    def notify_resumed(self) -> Optional[SyncResult]:
        """The host app returned to the foreground."""
        return self.trigger("resume")

    def notify_connectivity_restored(self) -> Optional[SyncResult]:
        """Network came back: drain pending changes if there are any."""
        if self.orchestrator.queue.size() == 0:
            return None
        logger.info("Connectivity restored, processing pending changes")
        return self.orchestrator.process_pending_changes()

    def notify_auth_changed(self, signed_in: bool = True) -> Optional[SyncResult]:
        """
        Session changed. Signing in drains pending changes; signing out
        cancels the in-flight operation.
        """
        if not signed_in:
            self.orchestrator.cancel()
            return None
        if self.orchestrator.queue.size() == 0:
            return None
        logger.info("Signed in, processing pending changes")
        return self.orchestrator.process_pending_changes()

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running(),
            "interval_seconds": self.interval.total_seconds(),
            "min_interval_seconds": self.min_interval.total_seconds(),
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval.total_seconds()):
            try:
                self.trigger("interval")
            except Exception as e:
                # Local store failures must not kill the loop
                logger.error(f"Periodic sync failed: {e}", exc_info=True)

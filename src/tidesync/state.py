"""
Sync State Machine - observable sync status with subscriber broadcast

Holds the single SyncState snapshot for one orchestrator and notifies every
subscriber with the full snapshot on each change. Subscribers never receive
partial updates.

Transitions:
    idle    -> syncing | offline
    syncing -> synced | error | offline
    synced  -> syncing | offline
    error   -> syncing | offline
    offline -> syncing | offline

Usage:
    machine = SyncStateMachine()
    unsubscribe = machine.subscribe(lambda state: print(state.status))
    machine.transition(SyncStatus.SYNCING)
    unsubscribe()
"""

from threading import Lock
from typing import Any, Callable, Dict, FrozenSet, List
import logging

from .errors import InvalidTransitionError
from .models import SyncState, SyncStatus

logger = logging.getLogger(__name__)

Subscriber = Callable[[SyncState], None]

ALLOWED_TRANSITIONS: Dict[SyncStatus, FrozenSet[SyncStatus]] = {
    SyncStatus.IDLE: frozenset({SyncStatus.SYNCING, SyncStatus.OFFLINE}),
    SyncStatus.SYNCING: frozenset({SyncStatus.SYNCED, SyncStatus.ERROR, SyncStatus.OFFLINE}),
    SyncStatus.SYNCED: frozenset({SyncStatus.SYNCING, SyncStatus.OFFLINE}),
    SyncStatus.ERROR: frozenset({SyncStatus.SYNCING, SyncStatus.OFFLINE}),
    SyncStatus.OFFLINE: frozenset({SyncStatus.SYNCING, SyncStatus.OFFLINE}),
}


class SyncStateMachine:
    """
    Thread-safe holder of SyncState with an observer list.

    Callbacks run outside the lock, on the thread that caused the change.
    A failing callback is logged and does not affect other subscribers.
    """

    def __init__(self, initial: SyncState = None):
        self._state = initial or SyncState()
        self._subscribers: List[Subscriber] = []
        self._lock = Lock()

    @property
    def state(self) -> SyncState:
        with self._lock:
            return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], bool]:
        """
        Register a callback for state changes.

        Args:
            callback: Called with the full SyncState on every change

        Returns:
            Unsubscribe function; returns True if the callback was removed
        """
        with self._lock:
            self._subscribers.append(callback)
        logger.debug(f"Subscribed to sync state: {getattr(callback, '__name__', 'callback')}")

        def unsubscribe() -> bool:
            with self._lock:
                try:
                    self._subscribers.remove(callback)
                    return True
                except ValueError:
                    return False

        return unsubscribe

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def transition(self, status: SyncStatus, **fields: Any) -> SyncState:
        """
        Move to a new status, updating any other fields at the same time.

        Entering ``syncing`` clears the previous error.

        Raises:
            InvalidTransitionError: If the move is not in ALLOWED_TRANSITIONS
        """
        with self._lock:
            current = self._state.status
            if status not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransitionError(
                    f"Cannot transition sync state from {current.value} to {status.value}"
                )
            if status == SyncStatus.SYNCING:
                fields.setdefault("error", None)
            self._state = self._state.evolve(status=status, **fields)
            snapshot = self._state
            subscribers = self._subscribers.copy()

        logger.debug(f"Sync state {current.value} -> {status.value}")
        self._notify(snapshot, subscribers)
        return snapshot

    def update(self, **fields: Any) -> SyncState:
        """Change non-status fields (e.g. pending_changes) and broadcast."""
        if "status" in fields:
            raise ValueError("Use transition() to change status")
        with self._lock:
            updated = self._state.evolve(**fields)
            if updated == self._state:
                return updated
            self._state = updated
            subscribers = self._subscribers.copy()

        self._notify(updated, subscribers)
        return updated

    def _notify(self, snapshot: SyncState, subscribers: List[Subscriber]) -> None:
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Error in sync state subscriber: {e}", exc_info=True)

"""
Exception hierarchy for the sync engine.

Unavailable   - preconditions not met; surfaces as the ``offline`` status
Timeout       - operation exceeded its deadline; safe to retry
Cancelled     - caller asked the in-flight operation to stop
RemoteFailure - network/HTTP/validation error from the remote store
LocalFailure  - local store I/O error; fatal to the current operation
"""


class SyncError(Exception):
    """Base exception for sync engine errors"""
    pass


class SyncUnavailableError(SyncError):
    """Remote sync preconditions (session, endpoint) are not met

    Raised by availability checks; the orchestrator reports it as offline.
    """
    pass


class SyncTimeoutError(SyncError):
    """An operation did not complete within its deadline"""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:g}s")
        self.operation = operation
        self.timeout = timeout


class SyncCancelledError(SyncError):
    """The in-flight operation was cancelled cooperatively"""
    pass


class InvalidTransitionError(SyncError):
    """A state machine transition that is not allowed"""
    pass


class ConfigError(SyncError):
    """Invalid or missing configuration"""
    pass


class StoreError(SyncError):
    """Base exception for record store failures"""
    pass


class RemoteStoreError(StoreError):
    """Remote store call failed (network, HTTP status, bad payload)"""
    pass


class RemoteAuthError(RemoteStoreError):
    """Remote store rejected the credentials"""
    pass


class RemoteConnectionError(RemoteStoreError):
    """Remote store could not be reached"""
    pass


class LocalStoreError(StoreError):
    """Local store read/write failed"""
    pass

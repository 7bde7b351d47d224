"""
Sync availability checks.

The engine only needs a yes/no answer to "is remote sync possible right now".
Hosts pass either a zero-argument callable or an object with an
``is_sync_available()`` method; both are normalized by ``as_availability``.
A callable may raise SyncUnavailableError instead of returning False to say
why sync is unavailable.
"""

from typing import Callable, Optional, Union
import logging

from .errors import SyncUnavailableError

logger = logging.getLogger(__name__)

AvailabilityCheck = Callable[[], bool]


class ConfigAvailability:
    """
    Available when an endpoint URL is configured and an auth token is present.

    The token source is re-read on every check so a host can forward
    sign-in/sign-out without rebuilding the orchestrator.
    """

    def __init__(self, url: Optional[str], token: Union[str, Callable[[], Optional[str]], None]):
        self.url = url
        self._token = token

    @property
    def token(self) -> Optional[str]:
        return self._token() if callable(self._token) else self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def check(self) -> None:
        """
        Raises:
            SyncUnavailableError: If the endpoint or the token is missing
        """
        if not self.url:
            raise SyncUnavailableError("no remote URL configured")
        if not self.token:
            raise SyncUnavailableError("not signed in, no auth token")

    def is_sync_available(self) -> bool:
        try:
            self.check()
        except SyncUnavailableError:
            return False
        return True

    def __call__(self) -> bool:
        self.check()
        return True


def always_available() -> bool:
    return True


def never_available() -> bool:
    return False


def as_availability(source) -> AvailabilityCheck:
    """
    Normalize an availability source to a callable.

    Args:
        source: None (always available), a bool, a callable, or an object
                with ``is_sync_available()``; a callable is preferred when
                the source is both

    Raises:
        TypeError: If the source is none of the above
    """
    if source is None:
        return always_available
    if isinstance(source, bool):
        return always_available if source else never_available
    if callable(source):
        return source
    if hasattr(source, "is_sync_available"):
        return source.is_sync_available
    raise TypeError(f"Unsupported availability source: {type(source).__name__}")

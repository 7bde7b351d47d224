"""Pytest fixtures for tidesync tests"""
import pytest
from datetime import datetime, timedelta, timezone


class FakeClock:
    """Deterministic clock; call it to read, advance() to move forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def queue(clock):
    """In-memory pending change queue on the fake clock."""
    from tidesync.pending import MemoryQueueStorage, PendingChangeQueue

    return PendingChangeQueue(MemoryQueueStorage(), clock=clock)


@pytest.fixture
def local_store():
    from tidesync.stores.memory import MemoryRecordStore

    return MemoryRecordStore()


@pytest.fixture
def remote_store():
    from tidesync.stores.memory import MemoryRemoteStore

    return MemoryRemoteStore()


@pytest.fixture
def make_orchestrator(local_store, remote_store, queue, clock):
    """Factory for orchestrators over in-memory stores.

    Keyword arguments override the SyncOrchestrator defaults.
    """
    from tidesync.orchestrator import SyncOrchestrator

    created = []

    def _make(**kwargs):
        options = dict(
            local=local_store,
            remote=remote_store,
            queue=queue,
            record_types=["entries"],
            singleton_types=["settings"],
            clock=clock,
        )
        options.update(kwargs)
        orchestrator = SyncOrchestrator(**options)
        created.append(orchestrator)
        return orchestrator

    yield _make

    for orchestrator in created:
        orchestrator.close()


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()

"""Unit Tests for SyncStateMachine

Tests: allowed transitions, subscriber broadcast, unsubscribe, error isolation
"""
import pytest
from unittest.mock import Mock


class TestTransitions:

    def test_initial_state_idle(self):
        from tidesync.models import SyncStatus
        from tidesync.state import SyncStateMachine

        assert SyncStateMachine().state.status is SyncStatus.IDLE

    def test_happy_path(self):
        from tidesync.models import SyncStatus
        from tidesync.state import SyncStateMachine

        machine = SyncStateMachine()
        machine.transition(SyncStatus.SYNCING)
        state = machine.transition(SyncStatus.SYNCED)

        assert state.status is SyncStatus.SYNCED

    def test_syncing_to_syncing_rejected(self):
        from tidesync.errors import InvalidTransitionError
        from tidesync.models import SyncStatus
        from tidesync.state import SyncStateMachine

        machine = SyncStateMachine()
        machine.transition(SyncStatus.SYNCING)

        with pytest.raises(InvalidTransitionError):
            machine.transition(SyncStatus.SYNCING)

    @pytest.mark.parametrize("start", ["idle", "synced", "error", "offline"])
    def test_offline_reachable_from_non_syncing(self, start):
        from tidesync.models import SyncState, SyncStatus
        from tidesync.state import SyncStateMachine

        machine = SyncStateMachine(SyncState(status=SyncStatus(start)))

        assert machine.transition(SyncStatus.OFFLINE).status is SyncStatus.OFFLINE

    def test_idle_cannot_jump_to_synced(self):
        from tidesync.errors import InvalidTransitionError
        from tidesync.models import SyncStatus
        from tidesync.state import SyncStateMachine

        with pytest.raises(InvalidTransitionError):
            SyncStateMachine().transition(SyncStatus.SYNCED)

    def test_entering_syncing_clears_error(self):
        from tidesync.models import SyncStatus
        from tidesync.state import SyncStateMachine

        machine = SyncStateMachine()
        machine.transition(SyncStatus.SYNCING)
        machine.transition(SyncStatus.ERROR, error="boom")

        assert machine.transition(SyncStatus.SYNCING).error is None


class TestSubscribers:

    def test_subscriber_receives_full_snapshot(self):
        from tidesync.models import SyncState, SyncStatus
        from tidesync.state import SyncStateMachine

        machine = SyncStateMachine()
        callback = Mock()
        machine.subscribe(callback)

        machine.transition(SyncStatus.SYNCING)

        snapshot = callback.call_args[0][0]
        assert isinstance(snapshot, SyncState)
        assert snapshot.status is SyncStatus.SYNCING

    def test_update_broadcasts_pending_count(self):
        from tidesync.state import SyncStateMachine

        machine = SyncStateMachine()
        callback = Mock()
        machine.subscribe(callback)

        machine.update(pending_changes=3)
        machine.update(pending_changes=3)

        callback.assert_called_once()
        assert callback.call_args[0][0].pending_changes == 3

    def test_update_rejects_status(self):
        from tidesync.models import SyncStatus
        from tidesync.state import SyncStateMachine

        with pytest.raises(ValueError):
            SyncStateMachine().update(status=SyncStatus.SYNCED)

    def test_unsubscribe(self):
        from tidesync.models import SyncStatus
        from tidesync.state import SyncStateMachine

        machine = SyncStateMachine()
        callback = Mock()
        unsubscribe = machine.subscribe(callback)

        assert unsubscribe() is True
        assert unsubscribe() is False
        machine.transition(SyncStatus.SYNCING)

        callback.assert_not_called()
        assert machine.subscriber_count() == 0

    def test_failing_subscriber_isolated(self, caplog):
        from tidesync.models import SyncStatus
        from tidesync.state import SyncStateMachine

        machine = SyncStateMachine()
        bad = Mock(side_effect=RuntimeError("subscriber bug"))
        good = Mock()
        machine.subscribe(bad)
        machine.subscribe(good)

        with caplog.at_level("ERROR", logger="tidesync.state"):
            machine.transition(SyncStatus.SYNCING)

        good.assert_called_once()
        assert "subscriber bug" in caplog.text

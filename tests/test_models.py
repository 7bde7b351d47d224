"""Tests for sync data model helpers"""
import pytest
from datetime import datetime, timezone


class TestPendingChange:

    def test_create_normalizes_action_and_stamps_time(self):
        from tidesync.models import ChangeAction, PendingChange

        at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        change = PendingChange.create("entries", "delete", "a", at=at)

        assert change.action is ChangeAction.DELETE
        assert change.key == ("entries", "a")
        assert change.enqueued_at == at

    def test_unknown_action_rejected(self):
        from tidesync.models import PendingChange

        with pytest.raises(ValueError):
            PendingChange.create("entries", "upsert", "a")

    def test_dict_round_trip(self):
        from tidesync.models import PendingChange

        change = PendingChange.create("entries", "update", "a")

        assert PendingChange.from_dict(change.to_dict()) == change


class TestSyncMetadata:

    def test_defaults_when_missing(self):
        from tidesync.models import MetadataStatus, SyncMetadata

        metadata = SyncMetadata.from_dict(None)

        assert metadata.status is MetadataStatus.NEVER
        assert metadata.last_sync_at is None
        assert metadata.records_synced == 0

    def test_unknown_status_becomes_error(self):
        from tidesync.models import MetadataStatus, SyncMetadata

        metadata = SyncMetadata.from_dict({"status": "exploded"})

        assert metadata.status is MetadataStatus.ERROR

    def test_timestamps_serialized_as_iso(self):
        from tidesync.models import MetadataStatus, SyncMetadata

        at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        data = SyncMetadata(last_sync_at=at, records_synced=3, status=MetadataStatus.SYNCED).to_dict()

        assert data["last_sync_at"] == "2024-05-01T12:00:00+00:00"
        assert SyncMetadata.from_dict(data).last_sync_at == at


class TestSyncResult:

    @pytest.mark.parametrize("operation, expected", [
        ("push", 2),
        ("pull", 3),
        ("process_pending", 4),
        ("full_sync", 5),
    ])
    def test_count_per_operation(self, operation, expected):
        from tidesync.models import SyncResult

        result = SyncResult(operation, pushed=2, pulled=3, processed=4)

        assert result.count == expected


class TestParseTimestamp:

    @pytest.mark.parametrize("value", [None, "", "yesterday", True, object()])
    def test_unusable_values(self, value):
        from tidesync.models import parse_timestamp

        assert parse_timestamp(value) is None

    def test_offset_converted_to_aware(self):
        from tidesync.models import parse_timestamp

        parsed = parse_timestamp("2024-05-01T14:00:00+02:00")

        assert parsed == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

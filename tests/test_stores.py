"""Tests for record store implementations (memory and SQLite)"""
import pytest
from datetime import datetime, timedelta, timezone


T = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Each local store implementation behind the same interface."""
    if request.param == "memory":
        from tidesync.stores.memory import MemoryRecordStore
        yield MemoryRecordStore()
    else:
        from tidesync.stores.sqlite import SQLiteRecordStore
        s = SQLiteRecordStore(tmp_path / "local.sqlite")
        yield s
        s.close()


class TestRecordStoreContract:

    def test_save_and_get(self, store):
        store.save("entries", {"id": "a", "text": "hi"})

        assert store.get_by_id("entries", "a") == {"id": "a", "text": "hi"}
        assert store.get_by_id("entries", "missing") is None
        assert store.get_by_id("other", "a") is None

    def test_save_upserts(self, store):
        store.save("entries", {"id": "a", "v": 1})
        store.save("entries", {"id": "a", "v": 2})

        assert store.count("entries") == 1
        assert store.get_by_id("entries", "a")["v"] == 2

    def test_save_requires_id(self, store):
        with pytest.raises(ValueError, match="id"):
            store.save("entries", {"text": "no id"})

    def test_bulk_save(self, store):
        written = store.bulk_save("entries", [{"id": str(i)} for i in range(5)])

        assert written == 5
        assert store.count("entries") == 5
        assert store.bulk_save("entries", []) == 0

    def test_delete(self, store):
        store.save("entries", {"id": "a"})

        assert store.delete("entries", "a") is True
        assert store.delete("entries", "a") is False
        assert store.get_all("entries") == []

    def test_returned_records_are_copies(self, store):
        store.save("entries", {"id": "a", "tags": ["x"]})

        record = store.get_by_id("entries", "a")
        record["tags"].append("y")

        assert store.get_by_id("entries", "a")["tags"] == ["x"]

    def test_get_updated_since(self, store):
        store.bulk_save("entries", [
            {"id": "old", "updated_at": (T - timedelta(days=1)).isoformat()},
            {"id": "edge", "updated_at": T.isoformat()},
            {"id": "new", "updatedAt": (T + timedelta(seconds=1)).isoformat()},
            {"id": "untimed"},
        ])

        ids = {r["id"] for r in store.get_updated_since("entries", T)}

        assert ids == {"edge", "new", "untimed"}
        assert len(store.get_updated_since("entries", None)) == 4

    def test_record_types(self, store):
        store.save("entries", {"id": "a"})
        store.save("settings", {"id": "user"})

        assert store.record_types() == ["entries", "settings"]


class TestSQLiteRecordStore:

    def test_persists_across_connections(self, tmp_path):
        from tidesync.stores.sqlite import SQLiteRecordStore

        path = tmp_path / "nested" / "local.sqlite"
        with SQLiteRecordStore(path) as store:
            store.save("entries", {"id": "a", "text": "kept"})

        with SQLiteRecordStore(path) as reopened:
            assert reopened.get_by_id("entries", "a")["text"] == "kept"

    def test_datetime_values_serialized(self, tmp_path):
        from tidesync.stores.sqlite import SQLiteRecordStore

        with SQLiteRecordStore(tmp_path / "local.sqlite") as store:
            store.save("entries", {"id": "a", "updated_at": T})

            assert store.get_by_id("entries", "a")["updated_at"] == str(T)
            assert [r["id"] for r in store.get_updated_since("entries", T)] == ["a"]

    def test_sqlite_errors_become_local_store_errors(self, tmp_path):
        from tidesync.errors import LocalStoreError
        from tidesync.stores.sqlite import SQLiteRecordStore

        store = SQLiteRecordStore(tmp_path / "local.sqlite")
        store.close()

        with pytest.raises(LocalStoreError):
            store.get_all("entries")


class TestMemoryRemoteStore:

    def test_seeding_is_not_traffic(self):
        from tidesync.stores.memory import MemoryRemoteStore

        remote = MemoryRemoteStore({"entries": [{"id": "a"}]}, fail_ids={"a"})

        assert remote.calls == []

    def test_fail_ids(self):
        from tidesync.errors import RemoteStoreError
        from tidesync.stores.memory import MemoryRemoteStore

        remote = MemoryRemoteStore(fail_ids={"bad"})

        remote.save("entries", {"id": "good"})
        with pytest.raises(RemoteStoreError):
            remote.save("entries", {"id": "bad"})
        with pytest.raises(RemoteStoreError):
            remote.bulk_save("entries", [{"id": "good"}, {"id": "bad"}])

    def test_metadata_round_trip(self):
        from tidesync.models import MetadataStatus, SyncMetadata
        from tidesync.stores.memory import MemoryRemoteStore

        remote = MemoryRemoteStore()
        assert remote.get_metadata() is None

        remote.set_metadata(SyncMetadata(last_sync_at=T, records_synced=2, status=MetadataStatus.SYNCED))

        assert remote.get_metadata().records_synced == 2
        assert remote.calls == ["get_metadata", "set_metadata", "get_metadata"]

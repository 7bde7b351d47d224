"""Tests for HTTPRemoteStore with a mocked requests session"""
import pytest
import requests
from datetime import datetime, timezone
from unittest.mock import MagicMock


def _response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = text
    response.url = "https://sync.example.com/api"
    return response


@pytest.fixture
def session():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def store(session):
    from tidesync.stores.http import HTTPRemoteStore

    return HTTPRemoteStore("https://sync.example.com/api/", token="secret",
                           request_timeout=5, session=session)


class TestRequests:

    def test_bearer_token_header(self, store, session):
        assert session.headers["Authorization"] == "Bearer secret"
        assert store.base_url == "https://sync.example.com/api"

    def test_get_all(self, store, session):
        session.request.return_value = _response(payload=[{"id": "a"}])

        assert store.get_all("entries") == [{"id": "a"}]
        session.request.assert_called_once_with(
            "GET", "https://sync.example.com/api/records/entries", timeout=5
        )

    def test_get_updated_since_sends_iso_cursor(self, store, session):
        session.request.return_value = _response(payload={"records": [{"id": "a"}]})
        since = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        assert store.get_updated_since("entries", since) == [{"id": "a"}]
        _, kwargs = session.request.call_args
        assert kwargs["params"] == {"since": "2024-05-01T12:00:00+00:00"}

    def test_get_by_id_404_is_none(self, store, session):
        session.request.return_value = _response(status_code=404)

        assert store.get_by_id("entries", "missing") is None

    def test_ids_are_url_quoted(self, store, session):
        session.request.return_value = _response(payload={"id": "a/b"})

        store.get_by_id("entries", "a/b")

        args, _ = session.request.call_args
        assert args[1] == "https://sync.example.com/api/records/entries/a%2Fb"

    def test_save_puts_record(self, store, session):
        session.request.return_value = _response()
        at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        store.save("entries", {"id": "a", "updated_at": at})

        args, kwargs = session.request.call_args
        assert args == ("PUT", "https://sync.example.com/api/records/entries/a")
        assert kwargs["json"] == {"id": "a", "updated_at": "2024-05-01T12:00:00+00:00"}

    def test_bulk_save_posts_list(self, store, session):
        session.request.return_value = _response()

        assert store.bulk_save("entries", [{"id": "a"}, {"id": "b"}]) == 2
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://sync.example.com/api/records/entries/bulk")
        assert len(kwargs["json"]) == 2

    def test_bulk_save_empty_makes_no_request(self, store, session):
        assert store.bulk_save("entries", []) == 0
        session.request.assert_not_called()

    def test_delete(self, store, session):
        session.request.return_value = _response(status_code=204)
        assert store.delete("entries", "a") is True

        session.request.return_value = _response(status_code=404)
        assert store.delete("entries", "a") is False

    def test_metadata(self, store, session):
        from tidesync.models import MetadataStatus, SyncMetadata

        session.request.return_value = _response(payload={
            "last_sync_at": "2024-05-01T12:00:00Z", "records_synced": 4, "status": "synced",
        })
        metadata = store.get_metadata()
        assert metadata.status is MetadataStatus.SYNCED
        assert metadata.records_synced == 4

        session.request.return_value = _response()
        store.set_metadata(SyncMetadata(records_synced=1, status=MetadataStatus.SYNCED))
        _, kwargs = session.request.call_args
        assert "last_pull_at" not in kwargs["json"]


class TestErrors:

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors(self, store, session, status):
        from tidesync.errors import RemoteAuthError

        session.request.return_value = _response(status_code=status)

        with pytest.raises(RemoteAuthError):
            store.get_all("entries")

    def test_server_error(self, store, session):
        from tidesync.errors import RemoteAuthError, RemoteStoreError

        session.request.return_value = _response(status_code=500, text="boom")

        with pytest.raises(RemoteStoreError, match="HTTP 500") as exc_info:
            store.get_all("entries")
        assert not isinstance(exc_info.value, RemoteAuthError)

    def test_connection_error(self, store, session):
        from tidesync.errors import RemoteConnectionError

        session.request.side_effect = requests.ConnectionError("no route to host")

        with pytest.raises(RemoteConnectionError, match="no route"):
            store.get_all("entries")

    def test_invalid_json(self, store, session):
        from tidesync.errors import RemoteStoreError

        response = _response()
        response.json.side_effect = ValueError("Expecting value")
        session.request.return_value = response

        with pytest.raises(RemoteStoreError, match="Invalid JSON"):
            store.get_all("entries")

    def test_non_list_payload(self, store, session):
        from tidesync.errors import RemoteStoreError

        session.request.return_value = _response(payload="nope")

        with pytest.raises(RemoteStoreError, match="list of records"):
            store.get_all("entries")


class TestWithOrchestrator:

    def test_auth_failure_surfaces_as_sync_error(self, session, clock):
        from tidesync.models import SyncStatus
        from tidesync.orchestrator import SyncOrchestrator
        from tidesync.stores.http import HTTPRemoteStore
        from tidesync.stores.memory import MemoryRecordStore

        session.request.return_value = _response(status_code=401)
        orchestrator = SyncOrchestrator(
            local=MemoryRecordStore(),
            remote=HTTPRemoteStore("https://sync.example.com/api", token="expired", session=session),
            record_types=["entries"],
            clock=clock,
        )

        result = orchestrator.pull()
        orchestrator.close()

        assert result.success is False
        assert "401" in result.error
        assert orchestrator.state.status is SyncStatus.ERROR

"""Tests for config loading, base path resolution and the factory"""
import os
import pytest
import yaml
from pathlib import Path
from unittest.mock import patch


class TestBasePath:

    def test_explicit_wins(self, tmp_path):
        from tidesync.config import get_base_path

        with patch.dict(os.environ, {"TIDESYNC_BASE_PATH": "/from/env"}):
            assert get_base_path(tmp_path) == tmp_path

    def test_env_var(self):
        from tidesync.config import get_base_path

        with patch.dict(os.environ, {"TIDESYNC_BASE_PATH": "/from/env"}):
            assert get_base_path() == Path("/from/env")

    def test_default(self):
        from tidesync.config import DEFAULT_BASE_PATH, get_base_path

        with patch.dict(os.environ, {}, clear=True):
            assert get_base_path() == DEFAULT_BASE_PATH


class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path):
        from tidesync.config import load_config

        with patch.dict(os.environ, {}, clear=True):
            config = load_config(tmp_path)

        assert config.base_path == tmp_path
        assert config.timeout_seconds == 60
        assert config.queue_max_size == 100
        assert config.stale_after_days == 7
        assert config.skew_tolerance_ms == 1000
        assert config.interval_minutes == 15
        assert config.min_interval_minutes == 5
        assert config.record_types == ["entries"]
        assert config.singleton_types == ["settings"]
        assert config.remote_url is None

    def test_reads_yaml(self, tmp_path):
        from tidesync.config import load_config

        (tmp_path / "config.yaml").write_text(yaml.dump({
            "endpoint": "work",
            "remote": {"url": "https://sync.example.com/api", "token": "abc", "request_timeout": "10"},
            "record_types": "entries, journals",
            "sync": {"timeout_seconds": 30, "queue_max_size": 50},
        }))

        with patch.dict(os.environ, {}, clear=True):
            config = load_config(tmp_path)

        assert config.endpoint == "work"
        assert config.remote_url == "https://sync.example.com/api"
        assert config.remote_token == "abc"
        assert config.request_timeout == 10.0
        assert config.record_types == ["entries", "journals"]
        assert config.timeout_seconds == 30
        assert config.queue_max_size == 50
        assert config.stale_after_days == 7

    def test_token_env_override(self, tmp_path):
        from tidesync.config import load_config

        (tmp_path / "config.yaml").write_text(yaml.dump({"remote": {"token": "from-file"}}))

        with patch.dict(os.environ, {"TIDESYNC_REMOTE_TOKEN": "from-env"}):
            assert load_config(tmp_path).remote_token == "from-env"

    def test_zero_skew_tolerance_allowed(self, tmp_path):
        from tidesync.config import load_config

        (tmp_path / "config.yaml").write_text("sync:\n  skew_tolerance_ms: 0\n")

        with patch.dict(os.environ, {}, clear=True):
            assert load_config(tmp_path).skew_tolerance_ms == 0

    @pytest.mark.parametrize("content", [
        "sync: [not, a, mapping]",
        "sync:\n  timeout_seconds: soon",
        "sync:\n  queue_max_size: 0",
        "sync:\n  skew_tolerance_ms: -1",
        "remote: {url: [unclosed",
        "- just\n- a list",
    ])
    def test_invalid_config(self, tmp_path, content):
        from tidesync.config import load_config
        from tidesync.errors import ConfigError

        (tmp_path / "config.yaml").write_text(content)

        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_parse_value(self):
        from tidesync.config import parse_value

        assert parse_value("30") == 30
        assert parse_value("true") is True
        assert parse_value("[a, b]") == ["a", "b"]
        assert parse_value("https://x.example/api") == "https://x.example/api"


class TestFactory:

    def test_build_orchestrator_from_config(self, tmp_path):
        from tidesync.config import SyncConfig
        from tidesync.factory import build_orchestrator
        from tidesync.stores.http import HTTPRemoteStore
        from tidesync.stores.sqlite import SQLiteRecordStore

        config = SyncConfig(base_path=tmp_path, remote_url="https://sync.example.com/api",
                            remote_token="t", timeout_seconds=12, queue_max_size=7)

        orchestrator = build_orchestrator(config)
        try:
            assert isinstance(orchestrator.local, SQLiteRecordStore)
            assert isinstance(orchestrator.remote, HTTPRemoteStore)
            assert orchestrator.timeout == 12
            assert orchestrator.queue.max_size == 7
            assert orchestrator.is_sync_available() is True
            assert (tmp_path / "local.sqlite").exists()
        finally:
            orchestrator.close()
            orchestrator.local.close()

    def test_missing_token_is_local_only(self, tmp_path):
        from tidesync.config import SyncConfig
        from tidesync.factory import build_orchestrator

        config = SyncConfig(base_path=tmp_path, remote_url="https://sync.example.com/api")

        orchestrator = build_orchestrator(config)
        try:
            assert orchestrator.is_local_only() is True
            assert orchestrator.push().offline is True
        finally:
            orchestrator.close()
            orchestrator.local.close()

    def test_build_scheduler(self, tmp_path):
        from datetime import timedelta
        from tidesync.config import SyncConfig
        from tidesync.factory import build_scheduler
        from unittest.mock import MagicMock

        config = SyncConfig(base_path=tmp_path, interval_minutes=30, min_interval_minutes=2)

        scheduler = build_scheduler(config, MagicMock())

        assert scheduler.interval == timedelta(minutes=30)
        assert scheduler.min_interval == timedelta(minutes=2)

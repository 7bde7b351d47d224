"""
Configuration for tidesync

Settings live in ``config.yaml`` inside the base directory:

    endpoint: default
    remote:
      url: https://sync.example.com/api
      token: null                 # or TIDESYNC_REMOTE_TOKEN
      request_timeout: 30
    record_types: [entries]
    singleton_types: [settings]
    sync:
      timeout_seconds: 60
      queue_max_size: 100
      stale_after_days: 7
      skew_tolerance_ms: 1000
    schedule:
      interval_minutes: 15
      min_interval_minutes: 5

Base directory priority: explicit path > TIDESYNC_BASE_PATH > ~/.tidesync
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import copy
import logging
import os

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_BASE_PATH = Path.home() / ".tidesync"
CONFIG_FILENAME = "config.yaml"
BASE_PATH_ENV = "TIDESYNC_BASE_PATH"
TOKEN_ENV = "TIDESYNC_REMOTE_TOKEN"

DEFAULT_CONFIG: Dict[str, Any] = {
    "endpoint": "default",
    "remote": {
        "url": None,
        "token": None,
        "request_timeout": 30,
    },
    "record_types": ["entries"],
    "singleton_types": ["settings"],
    "sync": {
        "timeout_seconds": 60,
        "queue_max_size": 100,
        "stale_after_days": 7,
        "skew_tolerance_ms": 1000,
    },
    "schedule": {
        "interval_minutes": 15,
        "min_interval_minutes": 5,
    },
}


def get_base_path(explicit: Optional[Path] = None) -> Path:
    """Get the base path for tidesync data.

    Priority: explicit path > TIDESYNC_BASE_PATH env var > default path.
    """
    if explicit:
        return Path(explicit)
    env_path = os.getenv(BASE_PATH_ENV)
    if env_path:
        return Path(env_path)
    return DEFAULT_BASE_PATH


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item) for item in value]


def _number(section: Dict[str, Any], key: str, default: float, kind=int,
            allow_zero: bool = False) -> Any:
    value = section.get(key, default)
    if value is None:
        return kind(default)
    try:
        number = kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {key}: {value!r}")
    if number < 0 or (number == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise ConfigError(f"{key} must be {qualifier}, got {value!r}")
    return number


@dataclass
class SyncConfig:
    """Typed view of config.yaml."""
    base_path: Path = DEFAULT_BASE_PATH
    endpoint: str = "default"
    remote_url: Optional[str] = None
    remote_token: Optional[str] = None
    request_timeout: float = 30.0
    record_types: List[str] = field(default_factory=lambda: ["entries"])
    singleton_types: List[str] = field(default_factory=lambda: ["settings"])
    timeout_seconds: float = 60.0
    queue_max_size: int = 100
    stale_after_days: float = 7.0
    skew_tolerance_ms: int = 1000
    interval_minutes: float = 15.0
    min_interval_minutes: float = 5.0

    @property
    def config_path(self) -> Path:
        return self.base_path / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        return self.base_path / "local.sqlite"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], base_path: Path) -> "SyncConfig":
        """
        Build a config from parsed YAML, applying defaults.

        Raises:
            ConfigError: If a section has the wrong shape or a number is invalid
        """
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("config.yaml must contain a mapping")

        sections = {}
        for name in ("remote", "sync", "schedule"):
            section = data.get(name) or {}
            if not isinstance(section, dict):
                raise ConfigError(f"'{name}' must be a mapping")
            sections[name] = section
        remote, sync, schedule = sections["remote"], sections["sync"], sections["schedule"]

        return cls(
            base_path=Path(base_path),
            endpoint=str(data.get("endpoint") or "default"),
            remote_url=remote.get("url") or None,
            remote_token=os.getenv(TOKEN_ENV) or remote.get("token") or None,
            request_timeout=_number(remote, "request_timeout", 30, float),
            record_types=_as_list(data.get("record_types", ["entries"])),
            singleton_types=_as_list(data.get("singleton_types", ["settings"])),
            timeout_seconds=_number(sync, "timeout_seconds", 60, float),
            queue_max_size=_number(sync, "queue_max_size", 100, int),
            stale_after_days=_number(sync, "stale_after_days", 7, float),
            skew_tolerance_ms=_number(sync, "skew_tolerance_ms", 1000, int, allow_zero=True),
            interval_minutes=_number(schedule, "interval_minutes", 15, float),
            min_interval_minutes=_number(schedule, "min_interval_minutes", 5, float),
        )


def load_config(base_path: Optional[Path] = None) -> SyncConfig:
    """
    Load config.yaml from the base directory.

    A missing file yields the defaults.

    Raises:
        ConfigError: If the file exists but cannot be parsed
    """
    base = get_base_path(base_path)
    config_path = base / CONFIG_FILENAME
    if not config_path.exists():
        logger.debug(f"No config at {config_path}, using defaults")
        return SyncConfig.from_dict(None, base)

    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    return SyncConfig.from_dict(data, base)


def default_config_data() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_CONFIG)


def write_config_data(base_path: Path, data: Dict[str, Any]) -> Path:
    """Write raw config data as YAML. Returns the file path."""
    base_path = Path(base_path)
    base_path.mkdir(parents=True, exist_ok=True)
    config_path = base_path / CONFIG_FILENAME
    config_path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return config_path


def parse_value(raw: str) -> Any:
    """Interpret a CLI string the way YAML would (numbers, booleans, lists)."""
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw

"""
Record store implementations

Local:  MemoryRecordStore, SQLiteRecordStore
Remote: MemoryRemoteStore, HTTPRemoteStore
"""

from .base import RecordStore, RemoteRecordStore, filter_updated_since
from .memory import MemoryRecordStore, MemoryRemoteStore
from .sqlite import SQLiteRecordStore
from .http import HTTPRemoteStore

__all__ = [
    "RecordStore",
    "RemoteRecordStore",
    "filter_updated_since",
    "MemoryRecordStore",
    "MemoryRemoteStore",
    "SQLiteRecordStore",
    "HTTPRemoteStore",
]

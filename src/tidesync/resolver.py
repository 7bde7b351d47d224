"""
Last-Write-Wins conflict resolution.

When a record exists both locally and remotely, exactly one full version is
kept; fields are never merged. The remote version wins only when it is newer
than the local one by more than the clock-skew tolerance (1000 ms by default).
Ties and near-ties go to the local copy so a device's own recent edit is not
discarded by an ambiguously ordered remote write.

Usage:
    from tidesync.resolver import resolve

    winner = resolve(local_record, remote_record)
"""

from datetime import datetime, timedelta
from typing import Optional
import logging

from .models import SyncableRecord, TIMESTAMP_FIELDS, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_SKEW_TOLERANCE_MS = 1000


def record_timestamp(record: Optional[SyncableRecord]) -> Optional[datetime]:
    """
    Extract a record's last-update time.

    Looks at ``updated_at``/``updatedAt`` first and falls back to
    ``timestamp`` then ``created_at``. The first field that parses wins.

    Args:
        record: Record dictionary (may be None)

    Returns:
        Aware UTC datetime, or None if no usable timestamp is present
    """
    if not record:
        return None
    for field_name in TIMESTAMP_FIELDS:
        if record.get(field_name) is None:
            continue
        parsed = parse_timestamp(record[field_name])
        if parsed is not None:
            return parsed
    return None


def remote_wins(local: SyncableRecord, remote: SyncableRecord,
                skew_tolerance_ms: int = DEFAULT_SKEW_TOLERANCE_MS) -> bool:
    """
    Decide whether the remote version should replace the local one.

    Returns:
        True iff remote is newer than local by more than ``skew_tolerance_ms``.
        A missing timestamp on either side keeps local.
    """
    local_ts = record_timestamp(local)
    remote_ts = record_timestamp(remote)

    if local_ts is None or remote_ts is None:
        logger.debug(
            f"LWW for {remote.get('id')}: missing timestamp "
            f"(local={local_ts}, remote={remote_ts}), keeping local"
        )
        return False

    return remote_ts - local_ts > timedelta(milliseconds=skew_tolerance_ms)


def resolve(local: SyncableRecord, remote: SyncableRecord,
            skew_tolerance_ms: int = DEFAULT_SKEW_TOLERANCE_MS) -> SyncableRecord:
    """
    Resolve a conflict between two versions of the same record.

    Args:
        local: Local version
        remote: Remote version
        skew_tolerance_ms: Clock drift absorbed before remote can win

    Returns:
        Either ``local`` or ``remote`` (never a composite)

    Raises:
        ValueError: If the records have different ids
    """
    if local.get("id") != remote.get("id"):
        raise ValueError(
            f"Cannot resolve conflict: record ids don't match "
            f"({local.get('id')} != {remote.get('id')})"
        )

    if remote_wins(local, remote, skew_tolerance_ms):
        logger.debug(f"LWW: remote version of {remote.get('id')} wins")
        return remote
    return local

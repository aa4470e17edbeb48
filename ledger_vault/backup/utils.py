"""Utility functions for backup/restore operations."""

import threading
from datetime import datetime, timedelta
from typing import Optional

from .._utils import ensure_aware, file_safe_timestamp, utc_now
from .models import BackupKind

_last_stamp: Optional[datetime] = None
_stamp_lock = threading.Lock()


def _next_moment(moment: Optional[datetime] = None) -> datetime:
    """Strictly increasing timestamps within this process."""
    global _last_stamp
    moment = ensure_aware(moment or utc_now())
    with _stamp_lock:
        if _last_stamp is not None and moment <= _last_stamp:
            moment = _last_stamp + timedelta(microseconds=1)
        _last_stamp = moment
    return moment


def generate_backup_file_name(prefix: str, kind: BackupKind = BackupKind.MANUAL, moment: Optional[datetime] = None) -> str:
    """Generate a unique backup file name.

    Returns:
        ``<prefix><timestamp>.json`` for manual backups,
        ``<prefix>AUTO_<timestamp>.json`` for automatic ones, e.g.
        ``ledger_backup_AUTO_2026-01-05T07-30-00-123456Z.json``
    """
    stamp = file_safe_timestamp(_next_moment(moment))
    if BackupKind(kind) == BackupKind.AUTO:
        return f"{prefix}AUTO_{stamp}.json"
    return f"{prefix}{stamp}.json"


def is_auto_backup(file_name: str, prefix: str) -> bool:
    return file_name.startswith(f"{prefix}AUTO_")

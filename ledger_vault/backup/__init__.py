"""Snapshot export, upload, scheduling and restore."""

from .codec import SnapshotCodec
from .history import BackupHistory
from .models import (
    ALL_COLLECTIONS,
    CHILD_COLLECTIONS,
    PARENT_COLLECTIONS,
    AutoBackupOutcome,
    BackupFile,
    BackupHistoryEntry,
    BackupKind,
    BackupRunStatus,
    BackupStatus,
    CollectionName,
    RestorePreview,
    RestoreResult,
    RestoreStatus,
    Snapshot,
    SnapshotMeta,
)
from .restore import RestoreOrchestrator
from .scheduler import BackupScheduler
from .utils import generate_backup_file_name

__all__ = [
    "SnapshotCodec",
    "RestoreOrchestrator",
    "BackupHistory",
    "BackupScheduler",
    "generate_backup_file_name",
    "ALL_COLLECTIONS",
    "CHILD_COLLECTIONS",
    "PARENT_COLLECTIONS",
    "AutoBackupOutcome",
    "BackupFile",
    "BackupHistoryEntry",
    "BackupKind",
    "BackupRunStatus",
    "BackupStatus",
    "CollectionName",
    "RestorePreview",
    "RestoreResult",
    "RestoreStatus",
    "Snapshot",
    "SnapshotMeta",
]

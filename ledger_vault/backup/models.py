"""Data models for backup/restore operations."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import PruneWarning, RestoreFailed

SNAPSHOT_VERSION = "1.0"

Record = Dict[str, Any]


class CollectionName(str, Enum):
    """Business collections covered by a snapshot."""
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    SUPPLIERS = "suppliers"
    EXPENSE_PRESETS = "expense_presets"
    TRANSACTIONS = "transactions"
    EXPENSES = "expenses"
    PAYMENT_REMINDERS = "payment_reminders"
    ACCOUNTS_PAYABLE = "accounts_payable"


# Referenced by foreign keys from the child collections
PARENT_COLLECTIONS: Tuple[CollectionName, ...] = (
    CollectionName.CUSTOMERS,
    CollectionName.PRODUCTS,
    CollectionName.SUPPLIERS,
    CollectionName.EXPENSE_PRESETS,
)

CHILD_COLLECTIONS: Tuple[CollectionName, ...] = (
    CollectionName.TRANSACTIONS,
    CollectionName.EXPENSES,
    CollectionName.PAYMENT_REMINDERS,
    CollectionName.ACCOUNTS_PAYABLE,
)

ALL_COLLECTIONS: Tuple[CollectionName, ...] = PARENT_COLLECTIONS + CHILD_COLLECTIONS


class SnapshotMeta(BaseModel):
    """Snapshot header, serialized as ``{"version", "date", "app"}``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: str = SNAPSHOT_VERSION
    created_at: Optional[datetime] = Field(default=None, alias="date")
    app_id: Optional[str] = Field(default=None, alias="app")


class Snapshot(BaseModel):
    """Immutable point-in-time copy of every business collection."""

    model_config = ConfigDict(frozen=True)

    meta: SnapshotMeta
    collections: Dict[CollectionName, Tuple[Record, ...]] = Field(default_factory=dict)

    def records(self, name: CollectionName) -> Tuple[Record, ...]:
        """Records of a collection; collections absent from the file are empty."""
        return self.collections.get(CollectionName(name), ())


class CollectionStats(BaseModel):
    name: CollectionName
    record_count: int


class CollectionComparison(BaseModel):
    """Before/after counts for one collection."""
    name: CollectionName
    current_count: int
    snapshot_count: int

    @property
    def delta(self) -> int:
        return self.snapshot_count - self.current_count


class RestorePreview(BaseModel):
    """Comparison shown to the operator before a destructive restore."""
    meta: SnapshotMeta
    collections: List[CollectionComparison]


class BackupFile(BaseModel):
    """Handle to a snapshot stored at the remote provider."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    created_at: Optional[datetime] = Field(default=None, alias="createdTime")
    size_bytes: Optional[int] = Field(default=None, alias="size")


class BackupKind(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


class RestoreStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


@dataclass
class RestoreResult:
    """Outcome of a restore run."""

    status: RestoreStatus
    upserted: Dict[str, int] = field(default_factory=dict)
    pruned: Dict[str, int] = field(default_factory=dict)
    warnings: List[PruneWarning] = field(default_factory=list)
    error: Optional[RestoreFailed] = None

    @property
    def ok(self) -> bool:
        return self.status != RestoreStatus.FAILED

    def raise_for_status(self) -> "RestoreResult":
        """Raise the ``RestoreFailed`` of a failed restore, else return self."""
        if self.error is not None:
            raise self.error
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "upserted": dict(self.upserted),
            "pruned": dict(self.pruned),
            "warnings": [str(w) for w in self.warnings],
            "error": str(self.error) if self.error else None,
            "failed_collection": self.error.collection if self.error else None,
        }


class AutoBackupOutcome(str, Enum):
    COMPLETED = "completed"
    SKIPPED_DISABLED = "skipped_disabled"
    SKIPPED_TOO_EARLY = "skipped_too_early"
    SKIPPED_ALREADY_DONE = "skipped_already_done"
    SKIPPED_AUTH_REQUIRED = "skipped_auth_required"
    FAILED = "failed"


class BackupStatus(BaseModel):
    """Connection and scheduling status for the operator."""
    connected: bool
    token_state: str
    persistent: bool
    expiring_soon: bool
    access_expiry: Optional[datetime] = None
    auto_backup_enabled: bool
    last_auto_backup: Optional[str] = None
    last_successful_backup: Optional[datetime] = None
    next_auto_backup: Optional[datetime] = None


class BackupRunStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class BackupHistoryEntry(BaseModel):
    """One backup run, successful or not."""
    id: int
    file_name: Optional[str] = None
    file_id: Optional[str] = None
    file_size: Optional[int] = None
    status: BackupRunStatus
    error_message: Optional[str] = None
    backup_type: BackupKind
    created_at: datetime

"""Pydantic models for API requests and responses."""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from ledger_vault._utils import utc_now
from ledger_vault.backup.models import BackupFile, CollectionName, RestorePreview


class ConnectCodeRequest(BaseModel):
    code: str = Field(..., min_length=1)
    redirect_uri: Optional[str] = None


class ConnectImplicitRequest(BaseModel):
    access_token: str = Field(..., min_length=1)
    expires_in: int = Field(default=3600, gt=0)


class AutoBackupToggle(BaseModel):
    enabled: bool


class RestoreRequest(BaseModel):
    exclude: List[CollectionName] = Field(default_factory=list)


class BackupFileResponse(BaseModel):
    id: str
    name: str
    created_at: Optional[datetime] = None
    size_bytes: Optional[int] = None

    @classmethod
    def from_file(cls, backup_file: BackupFile) -> "BackupFileResponse":
        return cls(
            id=backup_file.id,
            name=backup_file.name,
            created_at=backup_file.created_at,
            size_bytes=backup_file.size_bytes,
        )


class CollectionDiff(BaseModel):
    name: CollectionName
    current_count: int
    snapshot_count: int
    delta: int


class PreviewResponse(BaseModel):
    """Before/after record counts of a restore."""
    version: str
    created_at: Optional[datetime] = None
    app_id: Optional[str] = None
    collections: List[CollectionDiff]

    @classmethod
    def from_preview(cls, preview: RestorePreview) -> "PreviewResponse":
        return cls(
            version=preview.meta.version,
            created_at=preview.meta.created_at,
            app_id=preview.meta.app_id,
            collections=[
                CollectionDiff(
                    name=c.name,
                    current_count=c.current_count,
                    snapshot_count=c.snapshot_count,
                    delta=c.delta,
                )
                for c in preview.collections
            ],
        )


class RestoreResponse(BaseModel):
    status: str
    upserted: dict
    pruned: dict
    warnings: List[str] = Field(default_factory=list)


class AutoBackupRunResponse(BaseModel):
    outcome: str


class HealthStatus(BaseModel):
    status: str  # "healthy", "degraded", "unhealthy"
    state_store: bool
    dataset: bool
    provider_connected: bool
    timestamp: datetime = Field(default_factory=utc_now)

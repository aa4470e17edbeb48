"""Backup and restore API endpoints."""

from fastapi import APIRouter, Depends
from typing import List

from ..dependencies import get_backup_manager
from ..exceptions import http_error
from ..models import (
    AutoBackupRunResponse,
    AutoBackupToggle,
    BackupFileResponse,
    PreviewResponse,
    RestoreRequest,
    RestoreResponse,
)
from ledger_vault import BackupManager
from ledger_vault.backup.models import BackupHistoryEntry, BackupKind, BackupStatus
from ledger_vault.exceptions import LedgerVaultError
from ledger_vault._utils import logger

router = APIRouter(prefix="/backup", tags=["backup"])


@router.post("", response_model=BackupFileResponse)
async def create_backup(manager: BackupManager = Depends(get_backup_manager)) -> BackupFileResponse:
    """Export the dataset and upload it as a new backup file."""
    try:
        backup_file = await manager.create_backup(BackupKind.MANUAL)
    except LedgerVaultError as e:
        logger.error(f"Manual backup failed: {e}")
        raise http_error(e) from e
    return BackupFileResponse.from_file(backup_file)


@router.get("", response_model=List[BackupFileResponse])
async def list_backups(manager: BackupManager = Depends(get_backup_manager)) -> List[BackupFileResponse]:
    """List the most recent backups, newest first."""
    try:
        files = await manager.list_backups()
    except LedgerVaultError as e:
        raise http_error(e) from e
    return [BackupFileResponse.from_file(f) for f in files]


@router.get("/history", response_model=List[BackupHistoryEntry])
async def backup_history(
    limit: int = 10,
    manager: BackupManager = Depends(get_backup_manager)
) -> List[BackupHistoryEntry]:
    """Recent backup runs, successful or failed, newest first."""
    return await manager.backup_history(limit)


@router.get("/{file_id}/preview", response_model=PreviewResponse)
async def preview_restore(
    file_id: str,
    manager: BackupManager = Depends(get_backup_manager)
) -> PreviewResponse:
    """Compare current record counts with those in a backup."""
    try:
        preview = await manager.preview_restore(file_id)
    except LedgerVaultError as e:
        raise http_error(e) from e
    return PreviewResponse.from_preview(preview)


@router.post("/{file_id}/restore", response_model=RestoreResponse)
async def restore_backup(
    file_id: str,
    request: RestoreRequest,
    manager: BackupManager = Depends(get_backup_manager)
) -> RestoreResponse:
    """Replace live data with a backup, except excluded collections.

    Prune failures are reported as warnings with status ``partial_success``.
    """
    try:
        result = await manager.restore_backup(file_id, exclude=request.exclude)
        result.raise_for_status()
    except LedgerVaultError as e:
        logger.error(f"Restore of {file_id} failed: {e}")
        raise http_error(e) from e

    data = result.to_dict()
    return RestoreResponse(
        status=data["status"],
        upserted=data["upserted"],
        pruned=data["pruned"],
        warnings=data["warnings"],
    )


@router.put("/auto", response_model=BackupStatus)
async def set_auto_backup(
    toggle: AutoBackupToggle,
    manager: BackupManager = Depends(get_backup_manager)
) -> BackupStatus:
    return await manager.set_auto_backup(toggle.enabled)


@router.post("/auto/run", response_model=AutoBackupRunResponse)
async def run_auto_backup(manager: BackupManager = Depends(get_backup_manager)) -> AutoBackupRunResponse:
    """Run the automatic backup check now; a no-op unless a backup is due."""
    outcome = await manager.scheduler.run_if_due()
    return AutoBackupRunResponse(outcome=outcome.value)

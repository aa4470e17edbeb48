"""Storage provider connection endpoints."""

from fastapi import APIRouter, Depends

from ..dependencies import get_backup_manager
from ..exceptions import http_error
from ..models import ConnectCodeRequest, ConnectImplicitRequest
from ledger_vault import BackupManager
from ledger_vault.backup.models import BackupStatus
from ledger_vault.exceptions import LedgerVaultError
from ledger_vault._utils import logger

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/connect/code", response_model=BackupStatus)
async def connect_with_code(
    request: ConnectCodeRequest,
    manager: BackupManager = Depends(get_backup_manager)
) -> BackupStatus:
    """Exchange an authorization code for a renewable credential."""
    try:
        return await manager.connect_with_code(request.code, request.redirect_uri)
    except LedgerVaultError as e:
        logger.warning(f"Authorization code exchange failed: {e}")
        raise http_error(e) from e


@router.post("/connect/implicit", response_model=BackupStatus)
async def connect_implicit(
    request: ConnectImplicitRequest,
    manager: BackupManager = Depends(get_backup_manager)
) -> BackupStatus:
    """Store a short-lived access token granted directly to the client."""
    return await manager.connect_implicit(request.access_token, request.expires_in)


@router.post("/disconnect", response_model=BackupStatus)
async def disconnect(manager: BackupManager = Depends(get_backup_manager)) -> BackupStatus:
    """Revoke the grant at the provider and forget the local credential."""
    return await manager.disconnect()


@router.get("/status", response_model=BackupStatus)
async def status(manager: BackupManager = Depends(get_backup_manager)) -> BackupStatus:
    return await manager.status()

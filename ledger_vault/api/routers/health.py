"""Health check endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from typing import Dict
import asyncio

from ..models import HealthStatus
from ..dependencies import get_backup_manager
from ledger_vault import BackupManager
from ledger_vault.auth.models import TokenState
from ledger_vault.backup.models import CollectionName


async def check_state_store(manager: BackupManager) -> bool:
    """Check the key-value state backend."""
    try:
        await manager.state.all_keys()
        return True
    except Exception:
        return False


async def check_dataset(manager: BackupManager) -> bool:
    """Check the relational backend with one cheap read."""
    try:
        await manager.dataset.select_all_ids(CollectionName.CUSTOMERS.value)
        return True
    except Exception:
        return False


router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthStatus)
async def health_check(manager: BackupManager = Depends(get_backup_manager)) -> HealthStatus:
    """Health of the state store and the dataset, plus provider connection."""
    state_health, dataset_health, token_state = await asyncio.gather(
        check_state_store(manager),
        check_dataset(manager),
        manager.token_manager.state(),
        return_exceptions=True
    )

    state_ok = state_health is True
    dataset_ok = dataset_health is True
    connected = token_state not in (TokenState.UNAUTHENTICATED, TokenState.EPHEMERAL_EXPIRED) \
        and not isinstance(token_state, BaseException)

    if state_ok and dataset_ok:
        status = "healthy"
    elif not state_ok and not dataset_ok:
        status = "unhealthy"
    else:
        status = "degraded"

    return HealthStatus(
        status=status,
        state_store=state_ok,
        dataset=dataset_ok,
        provider_connected=connected
    )


@router.get("/ready")
async def readiness_probe(manager: BackupManager = Depends(get_backup_manager)) -> Dict[str, str]:
    """Kubernetes readiness probe."""
    health = await health_check(manager)
    if health.status == "unhealthy":
        raise HTTPException(status_code=503, detail="Service not ready")
    return {"status": "ready"}


@router.get("/live")
async def liveness_probe() -> Dict[str, str]:
    """Kubernetes liveness probe."""
    return {"status": "alive"}

"""Bounded log of backup runs kept in the state store."""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional

from ..base import BaseStateStorage
from .._utils import logger, truncate, utc_now
from .models import BackupHistoryEntry, BackupKind, BackupRunStatus

BACKUP_HISTORY_KEY = "backup_history"


class BackupHistory:
    """Newest-first list of backup runs, capped at ``max_entries``."""

    def __init__(
        self,
        state: BaseStateStorage,
        max_entries: int = 50,
        clock: Callable[[], datetime] = utc_now,
    ):
        if max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.state = state
        self.max_entries = max_entries
        self._clock = clock
        self._lock = asyncio.Lock()

    async def _load(self) -> List[BackupHistoryEntry]:
        raw = await self.state.get(BACKUP_HISTORY_KEY) or []
        entries = []
        for item in raw:
            try:
                entries.append(BackupHistoryEntry.model_validate(item))
            except ValueError as e:
                logger.warning(f"Skipping unreadable backup history entry: {e}")
        return entries

    async def record(
        self,
        kind: BackupKind,
        status: BackupRunStatus,
        file_name: Optional[str] = None,
        file_id: Optional[str] = None,
        file_size: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> BackupHistoryEntry:
        async with self._lock:
            entries = await self._load()
            entry = BackupHistoryEntry(
                id=max((e.id for e in entries), default=0) + 1,
                file_name=file_name,
                file_id=file_id,
                file_size=file_size,
                status=status,
                error_message=truncate(error_message) if error_message else None,
                backup_type=kind,
                created_at=self._clock(),
            )
            entries.insert(0, entry)
            del entries[self.max_entries:]
            await self.state.set(BACKUP_HISTORY_KEY, [e.model_dump(mode="json") for e in entries])
        return entry

    async def list(self, limit: int = 10) -> List[BackupHistoryEntry]:
        if limit < 1:
            return []
        entries = await self._load()
        return entries[:limit]

    async def last_success(self) -> Optional[datetime]:
        """Time of the most recent successful run of any kind."""
        for entry in await self._load():
            if entry.status == BackupRunStatus.SUCCESS:
                return entry.created_at
        return None

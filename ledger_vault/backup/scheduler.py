"""Automatic daily backup scheduling."""

import asyncio
from datetime import datetime, timedelta, tzinfo
from typing import Any, Awaitable, Callable, Optional

from ..base import BaseStateStorage
from ..config import SchedulerConfig
from .._utils import logger, utc_now
from ..exceptions import AuthRequired, LedgerVaultError
from .models import AutoBackupOutcome, BackupFile

AUTO_BACKUP_ENABLED_KEY = "auto_backup_enabled"
LAST_AUTO_BACKUP_KEY = "last_auto_backup"


class BackupScheduler:
    """Runs at most one successful automatic backup per local day.

    A check is a silent no-op unless automatic backups are enabled, the
    local hour has reached ``earliest_hour`` and no automatic backup was
    recorded for today. Missing authorization never prompts the operator;
    the check just ends. Other failures are logged and handed to
    ``on_failure`` and wait for the next check.
    """

    def __init__(
        self,
        state: BaseStateStorage,
        backup_fn: Callable[[], Awaitable[BackupFile]],
        config: Optional[SchedulerConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        tz: Optional[tzinfo] = None,
        on_complete: Optional[Callable[[BackupFile], Any]] = None,
        on_failure: Optional[Callable[[Exception], Any]] = None,
    ):
        self.state = state
        self.backup_fn = backup_fn
        self.config = config or SchedulerConfig()
        self._clock = clock
        # None means the host's local timezone
        self._tz = tz
        self.on_complete = on_complete
        self.on_failure = on_failure
        self._run_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    def _local(self, now: Optional[datetime] = None) -> datetime:
        return (now or self._clock()).astimezone(self._tz)

    async def is_enabled(self) -> bool:
        return bool(await self.state.get(AUTO_BACKUP_ENABLED_KEY))

    async def set_enabled(self, enabled: bool) -> None:
        await self.state.set(AUTO_BACKUP_ENABLED_KEY, bool(enabled))
        logger.info(f"Automatic backups {'enabled' if enabled else 'disabled'}")

    async def last_backup_date(self) -> Optional[str]:
        return await self.state.get(LAST_AUTO_BACKUP_KEY)

    async def next_due_at(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Earliest moment the next automatic backup may run, None when disabled."""
        if not await self.is_enabled():
            return None
        local = self._local(now)
        earliest_today = local.replace(hour=self.config.earliest_hour, minute=0, second=0, microsecond=0)
        if await self.last_backup_date() == local.date().isoformat():
            return earliest_today + timedelta(days=1)
        return max(local, earliest_today)

    async def run_if_due(self, now: Optional[datetime] = None) -> AutoBackupOutcome:
        if not await self.is_enabled():
            return AutoBackupOutcome.SKIPPED_DISABLED

        local = self._local(now)
        if local.hour < self.config.earliest_hour:
            return AutoBackupOutcome.SKIPPED_TOO_EARLY

        today = local.date().isoformat()
        async with self._run_lock:
            if await self.last_backup_date() == today:
                return AutoBackupOutcome.SKIPPED_ALREADY_DONE

            try:
                backup_file = await self.backup_fn()
            except AuthRequired as e:
                logger.info(f"Skipping automatic backup: {e}")
                return AutoBackupOutcome.SKIPPED_AUTH_REQUIRED
            except LedgerVaultError as e:
                logger.error(f"Automatic backup failed: {e}")
                self._notify(self.on_failure, e)
                return AutoBackupOutcome.FAILED

            await self.state.set(LAST_AUTO_BACKUP_KEY, today)

        logger.info(f"Automatic backup completed: {backup_file.name}")
        self._notify(self.on_complete, backup_file)
        return AutoBackupOutcome.COMPLETED

    @staticmethod
    def _notify(callback: Optional[Callable[[Any], Any]], payload: Any) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception as e:
            logger.warning(f"Backup notification failed: {e}")

    async def _loop(self) -> None:
        if not self.config.run_on_start:
            await asyncio.sleep(self.config.interval)
        while True:
            try:
                outcome = await self.run_if_due()
                logger.debug(f"Automatic backup check: {outcome.value}")
            except Exception as e:
                logger.error(f"Automatic backup check failed: {e}")
            await asyncio.sleep(self.config.interval)

    def start(self) -> None:
        """Check now (unless ``run_on_start`` is off) and every ``interval`` seconds."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

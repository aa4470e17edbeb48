"""Backup and restore orchestration against the remote storage provider."""

from typing import Callable, Iterable, List, Optional

import httpx

from ..auth import CredentialStore, OAuthClient, TokenManager, with_auth_retry
from ..auth.models import TokenState
from ..base import BaseDataset, BaseStateStorage
from ..config import LedgerVaultConfig
from .._storage import StorageFactory
from .._utils import logger, utc_now
from ..exceptions import AuthRequired, LedgerVaultError
from ..transport import DriveTransport
from .codec import SnapshotCodec
from .history import BackupHistory
from .models import (
    BackupFile,
    BackupHistoryEntry,
    BackupKind,
    BackupRunStatus,
    BackupStatus,
    CollectionName,
    RestorePreview,
    RestoreResult,
    Snapshot,
)
from .restore import RestoreOrchestrator
from .scheduler import BackupScheduler
from .utils import generate_backup_file_name


class BackupManager:
    """Single entry point for connect, backup, list, preview and restore.

    Every call to the storage provider goes through ``with_auth_retry``, so
    an expired access token costs one refresh and one retry at most.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        transport: DriveTransport,
        dataset: BaseDataset,
        state: BaseStateStorage,
        config: Optional[LedgerVaultConfig] = None,
        **scheduler_kwargs,
    ):
        """Initialize backup manager.

        Args:
            token_manager: Credential lifecycle for the storage provider
            transport: Storage provider client
            dataset: Live business dataset
            state: Key-value state shared with the credential store
            config: Package configuration
            **scheduler_kwargs: Passed to ``BackupScheduler`` (clock, tz, notifiers)
        """
        self.config = config or LedgerVaultConfig()
        self.token_manager = token_manager
        self.transport = transport
        self.dataset = dataset
        self.state = state
        self.codec = SnapshotCodec(dataset, app_name=self.config.app_name)
        self.orchestrator = RestoreOrchestrator(dataset)
        self.history = BackupHistory(state, clock=scheduler_kwargs.get("clock", utc_now))
        self.scheduler = BackupScheduler(
            state,
            backup_fn=lambda: self.create_backup(BackupKind.AUTO),
            config=self.config.scheduler,
            **scheduler_kwargs,
        )

    @classmethod
    def from_config(
        cls,
        config: LedgerVaultConfig,
        dataset: Optional[BaseDataset] = None,
        state: Optional[BaseStateStorage] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        **scheduler_kwargs,
    ) -> "BackupManager":
        """Build the full component graph from configuration."""
        if state is None:
            state = StorageFactory.create_state_storage(
                backend=config.state.backend,
                namespace=config.state.namespace,
                global_config=config.to_dict(),
            )
        if dataset is None:
            from .._dataset import PostgrestDataset
            dataset = PostgrestDataset(config.dataset, http_transport=http_transport)

        token_manager = TokenManager(
            CredentialStore(state),
            OAuthClient(config.oauth, http_transport=http_transport),
            config=config.oauth,
        )
        transport = DriveTransport(config.drive, http_transport=http_transport)
        return cls(token_manager, transport, dataset, state, config=config, **scheduler_kwargs)

    # Lifecycle

    def start(self) -> None:
        """Start token upkeep and automatic backup checks."""
        self.token_manager.start_upkeep()
        self.scheduler.start()

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.token_manager.stop_upkeep()
        await self.dataset.close()
        await self.state.close()

    # Connection

    async def connect_with_code(self, code: str, redirect_uri: Optional[str] = None) -> BackupStatus:
        await self.token_manager.exchange_code(code, redirect_uri)
        return await self.status()

    async def connect_implicit(self, access_token: str, expires_in: int) -> BackupStatus:
        await self.token_manager.exchange_implicit(access_token, expires_in)
        return await self.status()

    async def disconnect(self) -> BackupStatus:
        await self.token_manager.revoke()
        return await self.status()

    async def status(self) -> BackupStatus:
        token_state = await self.token_manager.state()
        credential = await self.token_manager.store.get()
        return BackupStatus(
            connected=token_state not in (TokenState.UNAUTHENTICATED, TokenState.EPHEMERAL_EXPIRED),
            token_state=token_state.value,
            persistent=bool(credential and credential.persistent),
            expiring_soon=await self.token_manager.is_expiring_soon(),
            access_expiry=credential.access_expiry if credential else None,
            auto_backup_enabled=await self.scheduler.is_enabled(),
            last_auto_backup=await self.scheduler.last_backup_date(),
            last_successful_backup=await self.history.last_success(),
            next_auto_backup=await self.scheduler.next_due_at(),
        )

    async def set_auto_backup(self, enabled: bool) -> BackupStatus:
        await self.scheduler.set_enabled(enabled)
        return await self.status()

    # Backup

    async def export_snapshot(self, progress_cb: Optional[Callable[[int], None]] = None) -> Snapshot:
        return await self.codec.export(progress_cb)

    async def create_backup(
        self,
        kind: BackupKind = BackupKind.MANUAL,
        progress_cb: Optional[Callable[[int], None]] = None,
    ) -> BackupFile:
        """Export the dataset and upload it as a new backup file.

        The dataset is read only after a valid token was obtained, and only
        once: an auth retry uploads the same content again.

        Raises:
            AuthRequired: storage provider not connected.
            UploadFailed: upload failed, after at most one auth retry.
            DatasetError: the dataset could not be read.
        """
        kind = BackupKind(kind)
        file_name = generate_backup_file_name(self.config.drive.file_prefix, kind)
        payload: Optional[bytes] = None

        async def upload(token: str) -> BackupFile:
            nonlocal payload
            if payload is None:
                payload = self.codec.encode(await self.codec.export(progress_cb))
            return await self.transport.upload(token, file_name, payload)

        logger.info(f"Starting {kind.value} backup: {file_name}")
        try:
            backup_file = await with_auth_retry(self.token_manager, upload)
        except LedgerVaultError as e:
            # Missing authorization before any data was read is not a backup run
            if payload is not None or not isinstance(e, AuthRequired):
                await self.history.record(kind, BackupRunStatus.FAILED, file_name=file_name, error_message=str(e))
            raise

        await self.history.record(
            kind,
            BackupRunStatus.SUCCESS,
            file_name=backup_file.name,
            file_id=backup_file.id,
            file_size=backup_file.size_bytes if backup_file.size_bytes is not None else len(payload),
        )
        return backup_file

    async def backup_history(self, limit: int = 10) -> List[BackupHistoryEntry]:
        """Recent backup runs, newest first."""
        return await self.history.list(limit)

    async def list_backups(self) -> List[BackupFile]:
        return await with_auth_retry(self.token_manager, self.transport.list_backups)

    # Restore

    async def fetch_snapshot(self, file_id: str) -> Snapshot:
        """Download and parse a backup file.

        Raises:
            InvalidSnapshot: the file is not a readable backup.
        """
        raw = await with_auth_retry(self.token_manager, lambda token: self.transport.download(token, file_id))
        return self.codec.parse(raw)

    async def preview_restore(self, file_id: str) -> RestorePreview:
        snapshot = await self.fetch_snapshot(file_id)
        return await self.codec.preview(snapshot)

    async def restore_backup(
        self,
        file_id: str,
        exclude: Iterable[CollectionName] = (),
        progress_cb: Optional[Callable[[int], None]] = None,
    ) -> RestoreResult:
        """Replace live data with the content of a backup file.

        Upsert failures do not raise; they come back as a ``failed`` result.
        Call ``raise_for_status()`` on the result to turn them into
        ``RestoreFailed``.
        """
        snapshot = await self.fetch_snapshot(file_id)
        logger.info(f"Restoring backup {file_id} taken {snapshot.meta.created_at}")
        return await self.orchestrator.restore(snapshot, exclude=frozenset(exclude), progress_cb=progress_cb)

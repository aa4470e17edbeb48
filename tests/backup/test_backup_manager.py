"""Tests for BackupManager."""

import json
from datetime import timedelta, timezone

import pytest

from ledger_vault.auth.models import TokenState
from ledger_vault.backup.manager import BackupManager
from ledger_vault.backup.models import AutoBackupOutcome, BackupKind, BackupRunStatus, CollectionName, RestoreStatus
from ledger_vault.config import StateConfig
from ledger_vault.exceptions import AuthRequired, InvalidSnapshot, UploadFailed
from ledger_vault.transport import DriveTransport
from tests.utils import (
    START,
    FakeDrive,
    InMemoryDataset,
    ServiceTransport,
    create_test_config,
    parse_multipart,
    persistent_credential,
    sample_tables,
)


@pytest.fixture
def dataset():
    return InMemoryDataset(sample_tables())


@pytest.fixture
def manager(token_manager, drive, dataset, state, clock):
    config = create_test_config()
    transport = DriveTransport(config.drive, http_transport=drive.transport())
    return BackupManager(token_manager, transport, dataset, state, config=config, clock=clock, tz=timezone.utc)


async def connect(manager, expires_in=timedelta(hours=1)):
    await manager.token_manager.store.put(persistent_credential(expires_in))


@pytest.mark.asyncio
async def test_manual_backup_uploads_snapshot(manager, drive, dataset):
    await connect(manager)

    backup_file = await manager.create_backup()

    assert backup_file.name.startswith("ledger_backup_")
    assert "AUTO_" not in backup_file.name
    metadata, content = parse_multipart(drive.uploads()[0].content)
    assert metadata["name"] == backup_file.name
    document = json.loads(content)
    assert [r["id"] for r in document["data"]["customers"]] == ["c1", "c2", "c3"]
    assert len(document["data"]["transactions"]) == 5


@pytest.mark.asyncio
async def test_backup_without_connection_reads_nothing(manager, drive, dataset):
    with pytest.raises(AuthRequired):
        await manager.create_backup()

    assert dataset.calls == []
    assert drive.requests == []


@pytest.mark.asyncio
async def test_rejected_token_refreshes_and_uploads_once_more(manager, drive, dataset, oauth_provider):
    await connect(manager)
    drive.valid_tokens = {"access-1"}

    backup_file = await manager.create_backup()

    assert oauth_provider.refresh_calls == 1
    assert len(drive.uploads()) == 2
    assert backup_file.id in drive.files
    # The dataset is exported once even when the upload is retried
    assert len([op for op, _ in dataset.calls if op == "select_all"]) == 8


@pytest.mark.asyncio
async def test_second_rejection_is_reported(manager, drive, oauth_provider):
    await connect(manager)
    drive.valid_tokens = set()

    with pytest.raises(UploadFailed) as exc_info:
        await manager.create_backup()

    assert exc_info.value.is_auth_error
    assert len(drive.uploads()) == 2
    assert oauth_provider.refresh_calls == 1


@pytest.mark.asyncio
async def test_token_expiring_in_two_minutes_is_refreshed_before_upload(manager, drive, oauth_provider):
    await connect(manager, expires_in=timedelta(minutes=2))
    drive.valid_tokens = {"access-1"}

    await manager.create_backup()

    assert oauth_provider.refresh_calls == 1
    assert len(drive.uploads()) == 1
    assert drive.uploads()[0].headers["Authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_list_backups(manager, drive):
    await connect(manager)
    drive.add_file("ledger_backup_a.json", b"{}", START - timedelta(days=1))
    drive.add_file("ledger_backup_b.json", b"{}", START)

    files = await manager.list_backups()

    assert [f.name for f in files] == ["ledger_backup_b.json", "ledger_backup_a.json"]


@pytest.mark.asyncio
async def test_backup_then_restore_reverts_changes(manager, dataset):
    await connect(manager)
    backup_file = await manager.create_backup()

    await dataset.upsert("customers", [{"id": "c4", "name": "Later"}])
    await dataset.upsert("transactions", [{"id": "t6", "customer_id": "c4"}])
    await dataset.delete_by_ids("transactions", ["t1"])

    preview = await manager.preview_restore(backup_file.id)
    counts = {c.name: (c.current_count, c.snapshot_count) for c in preview.collections}
    assert counts[CollectionName.CUSTOMERS] == (4, 3)
    assert counts[CollectionName.TRANSACTIONS] == (5, 5)

    result = await manager.restore_backup(backup_file.id)

    assert result.status == RestoreStatus.SUCCESS
    assert dataset.ids("customers") == {"c1", "c2", "c3"}
    assert dataset.ids("transactions") == {"t1", "t2", "t3", "t4", "t5"}


@pytest.mark.asyncio
async def test_restore_with_exclusion(manager, dataset):
    await connect(manager)
    backup_file = await manager.create_backup()
    await dataset.upsert("customers", [{"id": "c4"}])

    result = await manager.restore_backup(backup_file.id, exclude=[CollectionName.CUSTOMERS])

    assert result.ok
    assert "c4" in dataset.ids("customers")


@pytest.mark.asyncio
async def test_restore_of_invalid_file(manager, drive, dataset):
    await connect(manager)
    file_id = drive.add_file("ledger_backup_broken.json", b"{not json", START)

    with pytest.raises(InvalidSnapshot):
        await manager.restore_backup(file_id)
    assert not any(op == "upsert" for op, _ in dataset.calls)


@pytest.mark.asyncio
async def test_status_reflects_connection(manager):
    status = await manager.status()
    assert not status.connected
    assert status.token_state == TokenState.UNAUTHENTICATED.value
    assert not status.auto_backup_enabled

    await connect(manager)
    status = await manager.set_auto_backup(True)

    assert status.connected
    assert status.persistent
    assert status.token_state == TokenState.PERSISTENT_VALID.value
    assert status.auto_backup_enabled
    assert status.next_auto_backup is not None


@pytest.mark.asyncio
async def test_connect_and_disconnect(manager, oauth_provider):
    status = await manager.connect_with_code("good-code")
    assert status.connected and status.persistent

    status = await manager.disconnect()
    assert not status.connected
    assert oauth_provider.revoked == ["refresh-1", "access-1"]


@pytest.mark.asyncio
async def test_connect_implicit_is_ephemeral(manager):
    status = await manager.connect_implicit("implicit-token", 3600)

    assert status.connected
    assert not status.persistent
    assert status.token_state == TokenState.EPHEMERAL_VALID.value


@pytest.mark.asyncio
async def test_automatic_backup_names_file_auto(manager, drive):
    await connect(manager)
    await manager.set_auto_backup(True)

    outcome = await manager.scheduler.run_if_due()

    assert outcome == AutoBackupOutcome.COMPLETED
    names = [f["name"] for f in drive.files.values()]
    assert len(names) == 1 and names[0].startswith("ledger_backup_AUTO_")


@pytest.mark.asyncio
async def test_automatic_backup_without_connection_is_skipped(manager, drive):
    await manager.set_auto_backup(True)

    assert await manager.scheduler.run_if_due() == AutoBackupOutcome.SKIPPED_AUTH_REQUIRED
    assert drive.requests == []


@pytest.mark.asyncio
async def test_explicit_kind(manager):
    await connect(manager)

    backup_file = await manager.create_backup(BackupKind.AUTO)

    assert "AUTO_" in backup_file.name


@pytest.mark.asyncio
async def test_from_config_builds_components(oauth_provider, clock):
    drive = FakeDrive()
    config = create_test_config(state=StateConfig(backend="memory"))
    manager = BackupManager.from_config(
        config,
        dataset=InMemoryDataset(sample_tables()),
        http_transport=ServiceTransport(oauth_provider, drive),
        clock=clock,
        tz=timezone.utc,
    )

    await manager.connect_with_code("good-code")
    drive.valid_tokens = {"access-1"}
    backup_file = await manager.create_backup()

    assert backup_file.id in drive.files
    await manager.close()


@pytest.mark.asyncio
async def test_successful_backup_is_recorded(manager):
    await connect(manager)

    backup_file = await manager.create_backup()

    entries = await manager.backup_history()
    assert len(entries) == 1
    assert entries[0].status == BackupRunStatus.SUCCESS
    assert entries[0].file_name == backup_file.name
    assert entries[0].file_id == backup_file.id
    assert entries[0].file_size > 0
    assert entries[0].backup_type == BackupKind.MANUAL
    status = await manager.status()
    assert status.last_successful_backup == entries[0].created_at


@pytest.mark.asyncio
async def test_failed_backup_is_recorded(manager, drive):
    await connect(manager)
    drive.fail_status = 500

    with pytest.raises(UploadFailed):
        await manager.create_backup()

    entries = await manager.backup_history()
    assert entries[0].status == BackupRunStatus.FAILED
    assert "Backend Error" in entries[0].error_message
    assert (await manager.status()).last_successful_backup is None


@pytest.mark.asyncio
async def test_failed_automatic_backup_is_recorded(manager, drive, dataset):
    await connect(manager)
    await manager.set_auto_backup(True)
    dataset.fail("select_all", "customers")

    assert await manager.scheduler.run_if_due() == AutoBackupOutcome.FAILED

    entries = await manager.backup_history()
    assert entries[0].status == BackupRunStatus.FAILED
    assert entries[0].backup_type == BackupKind.AUTO
    assert "customers" in entries[0].error_message


@pytest.mark.asyncio
async def test_missing_connection_is_not_a_backup_run(manager):
    with pytest.raises(AuthRequired):
        await manager.create_backup()

    assert await manager.backup_history() == []

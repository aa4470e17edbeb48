"""Tests for the two-phase restore."""

import pytest

from ledger_vault.backup.codec import SnapshotCodec
from ledger_vault.backup.models import (
    CHILD_COLLECTIONS,
    PARENT_COLLECTIONS,
    CollectionName,
    RestoreStatus,
    Snapshot,
    SnapshotMeta,
)
from ledger_vault.backup.restore import RestoreOrchestrator
from ledger_vault.exceptions import RestoreFailed
from tests.utils import InMemoryDataset, sample_tables


def make_snapshot(tables) -> Snapshot:
    return Snapshot(
        meta=SnapshotMeta(app_id="test"),
        collections={CollectionName(name): tuple(records) for name, records in tables.items()},
    )


def full_tables():
    tables = sample_tables()
    tables.update({
        "products": [{"id": "p1", "name": "Coffee"}],
        "suppliers": [{"id": "s1", "name": "Beans Inc"}],
        "expense_presets": [{"id": "e1", "label": "Rent"}],
        "expenses": [{"id": "x1", "supplier_id": "s1", "expense_preset_id": "e1"}],
        "payment_reminders": [{"id": "r1", "customer_id": "c1"}],
        "accounts_payable": [{"id": "a1", "supplier_id": "s1"}],
    })
    return tables


@pytest.mark.asyncio
async def test_restore_into_empty_target():
    dataset = InMemoryDataset()
    snapshot = make_snapshot(sample_tables())

    result = await RestoreOrchestrator(dataset).restore(snapshot)

    assert result.status == RestoreStatus.SUCCESS
    assert dataset.ids("customers") == {"c1", "c2", "c3"}
    assert dataset.ids("transactions") == {"t1", "t2", "t3", "t4", "t5"}
    assert result.upserted["customers"] == 3
    assert result.upserted["transactions"] == 5
    assert sum(result.pruned.values()) == 0
    assert result.raise_for_status() is result


@pytest.mark.asyncio
async def test_extra_customer_pruned_after_its_transactions():
    live = sample_tables()
    live["customers"].append({"id": "c4", "name": "Extra"})
    live["transactions"].append({"id": "t6", "customer_id": "c4", "amount": 1})
    dataset = InMemoryDataset(live)

    result = await RestoreOrchestrator(dataset).restore(make_snapshot(sample_tables()))

    assert result.status == RestoreStatus.SUCCESS
    assert dataset.ids("customers") == {"c1", "c2", "c3"}
    assert dataset.ids("transactions") == {"t1", "t2", "t3", "t4", "t5"}
    assert result.pruned["transactions"] == 1
    assert result.pruned["customers"] == 1
    deletes = [c for op, c in dataset.calls if op == "delete_by_ids"]
    assert deletes == ["transactions", "customers"]


@pytest.mark.asyncio
async def test_upserts_finish_before_any_prune():
    dataset = InMemoryDataset()
    dataset.delay = 0.01

    result = await RestoreOrchestrator(dataset).restore(make_snapshot(full_tables()))

    assert result.status == RestoreStatus.SUCCESS
    ops = dataset.calls
    upserts = [i for i, (op, _) in enumerate(ops) if op == "upsert"]
    prunes = [i for i, (op, _) in enumerate(ops) if op in ("select_all_ids", "delete_by_ids")]
    assert max(upserts) < min(prunes)

    parent_upserts = [i for i, (op, c) in enumerate(ops) if op == "upsert" and CollectionName(c) in PARENT_COLLECTIONS]
    child_upserts = [i for i, (op, c) in enumerate(ops) if op == "upsert" and CollectionName(c) in CHILD_COLLECTIONS]
    assert len(parent_upserts) == 4 and len(child_upserts) == 4
    assert max(parent_upserts) < min(child_upserts)

    child_prunes = [i for i, (op, c) in enumerate(ops) if op == "select_all_ids" and CollectionName(c) in CHILD_COLLECTIONS]
    parent_prunes = [i for i, (op, c) in enumerate(ops) if op == "select_all_ids" and CollectionName(c) in PARENT_COLLECTIONS]
    assert max(child_prunes) < min(parent_prunes)


@pytest.mark.asyncio
async def test_excluded_collections_are_untouched():
    live = sample_tables()
    live["customers"].append({"id": "c-live"})
    live["expenses"] = [{"id": "x-live"}]
    dataset = InMemoryDataset(live)

    result = await RestoreOrchestrator(dataset).restore(
        make_snapshot(full_tables()),
        exclude={CollectionName.EXPENSES, "customers"},
    )

    assert result.status == RestoreStatus.SUCCESS
    touched = {c for _, c in dataset.calls}
    assert "expenses" not in touched
    assert "customers" not in touched
    assert dataset.ids("expenses") == {"x-live"}
    assert "c-live" in dataset.ids("customers")
    assert "customers" not in result.upserted
    assert "customers" not in result.pruned


@pytest.mark.asyncio
async def test_empty_snapshot_collection_is_still_pruned():
    dataset = InMemoryDataset({"products": [{"id": "p-old"}]})

    result = await RestoreOrchestrator(dataset).restore(make_snapshot(sample_tables()))

    assert ("upsert", "products") not in dataset.calls
    assert dataset.ids("products") == set()
    assert result.pruned["products"] == 1


@pytest.mark.asyncio
async def test_upsert_failure_stops_restore():
    dataset = InMemoryDataset()
    dataset.fail("upsert", "suppliers")

    result = await RestoreOrchestrator(dataset).restore(make_snapshot(full_tables()))

    assert result.status == RestoreStatus.FAILED
    assert result.error.collection == "suppliers"
    assert "Failed to restore suppliers" in str(result.error)
    assert not any(op == "upsert" and CollectionName(c) in CHILD_COLLECTIONS for op, c in dataset.calls)
    assert not any(op in ("select_all_ids", "delete_by_ids") for op, _ in dataset.calls)
    # Sibling parents already written stay written
    assert dataset.ids("customers") == {"c1", "c2", "c3"}
    with pytest.raises(RestoreFailed):
        result.raise_for_status()
    assert result.to_dict()["failed_collection"] == "suppliers"


@pytest.mark.asyncio
async def test_prune_failure_is_a_warning():
    dataset = InMemoryDataset({"customers": [{"id": "c-extra"}]})
    dataset.fail("delete_by_ids", "customers")

    result = await RestoreOrchestrator(dataset).restore(make_snapshot(sample_tables()))

    assert result.status == RestoreStatus.PARTIAL_SUCCESS
    assert result.ok
    assert [w.collection for w in result.warnings] == ["customers"]
    assert "Failed to prune extra records from customers" in str(result.warnings[0])
    assert dataset.ids("transactions") == {"t1", "t2", "t3", "t4", "t5"}
    result.raise_for_status()


@pytest.mark.asyncio
async def test_restore_reports_progress():
    progress = []

    await RestoreOrchestrator(InMemoryDataset()).restore(make_snapshot(sample_tables()), progress_cb=progress.append)

    assert progress[0] == 0
    assert progress[-1] == 100
    assert progress == sorted(progress)


@pytest.mark.asyncio
async def test_restored_snapshot_matches_export():
    source = InMemoryDataset(full_tables())
    snapshot = await SnapshotCodec(source).export()
    target = InMemoryDataset({"customers": [{"id": "zz"}]})

    await RestoreOrchestrator(target).restore(snapshot)

    for name in CHILD_COLLECTIONS + PARENT_COLLECTIONS:
        assert target.ids(name.value) == source.ids(name.value)

"""Snapshot export, encoding and parsing."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from ..base import BaseDataset
from .._utils import logger, utc_now
from ..exceptions import InvalidSnapshot
from .models import (
    ALL_COLLECTIONS,
    SNAPSHOT_VERSION,
    CollectionComparison,
    CollectionName,
    CollectionStats,
    RestorePreview,
    Snapshot,
    SnapshotMeta,
)

ProgressCallback = Callable[[int], None]


class SnapshotCodec:
    """Turns the live dataset into a snapshot and snapshots into bytes."""

    def __init__(self, dataset: BaseDataset, app_name: str = "Ledger Vault"):
        self.dataset = dataset
        self.app_name = app_name

    async def export(self, progress_cb: Optional[ProgressCallback] = None) -> Snapshot:
        """Read every collection concurrently into an immutable snapshot.

        Progress goes from 0 to 100 and never decreases.

        Raises:
            DatasetError: a collection could not be read.
        """
        total = len(ALL_COLLECTIONS)
        done = 0

        def report(value: int) -> None:
            if progress_cb is not None:
                progress_cb(value)

        async def fetch(name: CollectionName):
            nonlocal done
            records = await self.dataset.select_all(name.value)
            done += 1
            # Leave the last step for snapshot assembly
            report(int(done * 95 / total))
            return records

        report(0)
        results = await asyncio.gather(*(fetch(name) for name in ALL_COLLECTIONS))

        snapshot = Snapshot(
            meta=SnapshotMeta(version=SNAPSHOT_VERSION, created_at=utc_now(), app_id=self.app_name),
            collections={name: tuple(records) for name, records in zip(ALL_COLLECTIONS, results)},
        )
        report(100)

        total_records = sum(len(records) for records in results)
        logger.info(f"Exported snapshot with {total_records:,} records across {total} collections")
        return snapshot

    @staticmethod
    def encode(snapshot: Snapshot) -> bytes:
        document = {
            "meta": snapshot.meta.model_dump(mode="json", by_alias=True),
            "data": {name.value: list(snapshot.records(name)) for name in ALL_COLLECTIONS},
        }
        return json.dumps(document, indent=2, ensure_ascii=False, default=str).encode("utf-8")

    @staticmethod
    def parse(raw: Union[bytes, str]) -> Snapshot:
        """Decode a backup file.

        Collections absent from the file are empty; unknown keys are ignored.

        Raises:
            InvalidSnapshot: not JSON, not an object, no ``data`` object, or a
                collection that is not a list of objects. A malformed ``meta``
                section is logged and read as far as possible.
        """
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise InvalidSnapshot(f"Backup file is not UTF-8 text: {e}")
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidSnapshot(f"Backup file is not valid JSON: {e}")

        if not isinstance(document, dict):
            raise InvalidSnapshot("Backup file must contain a JSON object")
        data = document.get("data")
        if not isinstance(data, dict):
            raise InvalidSnapshot("Backup file has no data section")

        meta = _read_meta(document.get("meta"))
        if meta.version != SNAPSHOT_VERSION:
            logger.warning(f"Backup format version {meta.version} differs from {SNAPSHOT_VERSION}")

        collections: Dict[CollectionName, Any] = {}
        for name in ALL_COLLECTIONS:
            records = data.get(name.value)
            if records is None:
                records = []
            if not isinstance(records, list):
                raise InvalidSnapshot(f"Collection {name.value} must be a list")
            if not all(isinstance(record, dict) for record in records):
                raise InvalidSnapshot(f"Collection {name.value} must contain only objects")
            collections[name] = tuple(records)

        return Snapshot(meta=meta, collections=collections)

    @staticmethod
    def summarize(snapshot: Snapshot) -> List[CollectionStats]:
        return [
            CollectionStats(name=name, record_count=len(snapshot.records(name)))
            for name in ALL_COLLECTIONS
        ]

    async def live_stats(self) -> List[CollectionStats]:
        """Record counts of the live dataset."""
        results = await asyncio.gather(*(self.dataset.select_all(name.value) for name in ALL_COLLECTIONS))
        return [
            CollectionStats(name=name, record_count=len(records))
            for name, records in zip(ALL_COLLECTIONS, results)
        ]

    async def preview(self, snapshot: Snapshot) -> RestorePreview:
        """Compare live counts with what restoring ``snapshot`` would leave."""
        current = {stats.name: stats.record_count for stats in await self.live_stats()}
        return RestorePreview(
            meta=snapshot.meta,
            collections=[
                CollectionComparison(
                    name=stats.name,
                    current_count=current.get(stats.name, 0),
                    snapshot_count=stats.record_count,
                )
                for stats in self.summarize(snapshot)
            ],
        )


def _read_meta(meta_raw: Any) -> SnapshotMeta:
    if meta_raw is None:
        return SnapshotMeta()
    if not isinstance(meta_raw, dict):
        logger.warning("Backup meta section is not an object, ignoring it")
        return SnapshotMeta(version="unknown")

    version = meta_raw.get("version")
    app_id = meta_raw.get("app")
    if app_id is not None and not isinstance(app_id, str):
        logger.warning(f"Ignoring backup app id {app_id!r}")
        app_id = None

    created_at = None
    if meta_raw.get("date") is not None:
        try:
            created_at = SnapshotMeta.model_validate({"date": meta_raw["date"]}).created_at
        except ValidationError:
            logger.warning(f"Ignoring unreadable backup date {meta_raw['date']!r}")

    return SnapshotMeta(
        version=SNAPSHOT_VERSION if version is None else str(version),
        created_at=created_at,
        app_id=app_id,
    )

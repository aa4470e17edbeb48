"""Two-phase restore of a snapshot into the live dataset."""

import asyncio
from typing import Callable, Iterable, List, Optional, Sequence

from ..base import BaseDataset
from .._utils import logger
from ..exceptions import PruneWarning, RestoreFailed
from .models import (
    CHILD_COLLECTIONS,
    PARENT_COLLECTIONS,
    CollectionName,
    RestoreResult,
    RestoreStatus,
    Snapshot,
)


class RestoreOrchestrator:
    """Applies a snapshot with replace semantics while keeping foreign keys intact.

    Phase 1 upserts parents, then children. Phase 2 prunes records missing
    from the snapshot, children first, then parents. Collections inside one
    tier run concurrently; every tier finishes before the next one starts.

    Restore is not transactional across collections: upserts applied before
    a failure stay applied.
    """

    def __init__(self, dataset: BaseDataset):
        self.dataset = dataset

    async def restore(
        self,
        snapshot: Snapshot,
        exclude: Iterable[CollectionName] = frozenset(),
        progress_cb: Optional[Callable[[int], None]] = None,
    ) -> RestoreResult:
        excluded = {CollectionName(name) for name in exclude}
        parents = [name for name in PARENT_COLLECTIONS if name not in excluded]
        children = [name for name in CHILD_COLLECTIONS if name not in excluded]
        if excluded:
            logger.info(f"Restore excludes: {', '.join(sorted(name.value for name in excluded))}")

        result = RestoreResult(status=RestoreStatus.SUCCESS)
        total = max(2 * (len(parents) + len(children)), 1)
        done = 0

        def step() -> None:
            nonlocal done
            done += 1
            if progress_cb is not None:
                progress_cb(int(done * 100 / total))

        if progress_cb is not None:
            progress_cb(0)

        try:
            for tier in (parents, children):
                await self._upsert_tier(snapshot, tier, result, step)
        except RestoreFailed as e:
            logger.error(f"Restore aborted: {e}")
            result.status = RestoreStatus.FAILED
            result.error = e
            return result

        for tier in (children, parents):
            await self._prune_tier(snapshot, tier, result, step)

        if result.warnings:
            result.status = RestoreStatus.PARTIAL_SUCCESS
        if progress_cb is not None:
            progress_cb(100)
        logger.info(
            f"Restore finished ({result.status.value}): "
            f"{sum(result.upserted.values()):,} upserted, {sum(result.pruned.values()):,} pruned"
        )
        return result

    async def _upsert_tier(self, snapshot: Snapshot, tier: Sequence[CollectionName], result: RestoreResult, step) -> None:
        async def upsert(name: CollectionName) -> None:
            records = [dict(record) for record in snapshot.records(name)]
            if records:
                await self.dataset.upsert(name.value, records)
            result.upserted[name.value] = len(records)
            step()

        outcomes = await asyncio.gather(*(upsert(name) for name in tier), return_exceptions=True)
        for name, outcome in zip(tier, outcomes):
            if isinstance(outcome, Exception):
                raise RestoreFailed(name.value, outcome) from outcome
            if isinstance(outcome, BaseException):
                raise outcome

    async def _prune_tier(self, snapshot: Snapshot, tier: Sequence[CollectionName], result: RestoreResult, step) -> None:
        async def prune(name: CollectionName) -> None:
            try:
                result.pruned[name.value] = await self._prune(snapshot, name)
            except Exception as e:
                warning = PruneWarning(name.value, str(e))
                logger.warning(str(warning))
                result.warnings.append(warning)
            step()

        await asyncio.gather(*(prune(name) for name in tier))

    async def _prune(self, snapshot: Snapshot, name: CollectionName) -> int:
        key = self.dataset.primary_key
        keep = {str(record[key]) for record in snapshot.records(name) if record.get(key) is not None}
        current: List = await self.dataset.select_all_ids(name.value)
        extra = [record_id for record_id in current if str(record_id) not in keep]
        if extra:
            await self.dataset.delete_by_ids(name.value, extra)
            logger.debug(f"Pruned {len(extra)} records from {name.value}")
        return len(extra)

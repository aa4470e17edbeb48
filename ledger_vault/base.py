"""Storage and dataset contracts shared across ledger-vault."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

Record = Dict[str, Any]


@dataclass
class StorageNameSpace:
    namespace: str
    global_config: dict = field(default_factory=dict)

    async def close(self):
        pass


@dataclass
class BaseStateStorage(StorageNameSpace):
    """Small key-value store for credentials and scheduler markers.

    Values are JSON-compatible. A single ``set`` replaces the whole value,
    so readers never observe a partially written entry.
    """

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    async def delete(self, *keys: str) -> None:
        raise NotImplementedError

    async def all_keys(self) -> List[str]:
        raise NotImplementedError

    async def drop(self) -> None:
        """Remove every key in this namespace."""
        keys = await self.all_keys()
        if keys:
            await self.delete(*keys)


class BaseDataset(ABC):
    """Live business dataset, addressed by collection name.

    Implementations talk to the relational backend. All methods are
    suspension points; errors are raised as ``DatasetError``.
    """

    primary_key: str = "id"

    @abstractmethod
    async def select_all(self, collection: str) -> List[Record]:
        """Return every live (not soft-deleted) record of a collection."""
        pass

    @abstractmethod
    async def upsert(self, collection: str, records: List[Record]) -> None:
        """Insert or update records by primary key."""
        pass

    @abstractmethod
    async def select_all_ids(self, collection: str) -> List[Any]:
        """Return the primary keys of every record currently stored."""
        pass

    @abstractmethod
    async def delete_by_ids(self, collection: str, ids: Iterable[Any]) -> None:
        """Delete records by primary key."""
        pass

    async def close(self) -> None:
        pass

"""In-process key-value state storage, used for tests and ephemeral runs."""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..base import BaseStateStorage


@dataclass
class MemoryStateStorage(BaseStateStorage):
    _data: Dict[str, Any] = field(init=False, default_factory=dict)

    async def get(self, key: str) -> Optional[Any]:
        # Copies keep callers from mutating stored state in place
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def all_keys(self) -> List[str]:
        return list(self._data.keys())

"""JSON file key-value state storage."""

import asyncio
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..base import BaseStateStorage
from .._utils import logger


@dataclass
class JsonStateStorage(BaseStateStorage):
    """Key-value state persisted to ``<working_dir>/state_<namespace>.json``.

    The file is loaded once at construction and rewritten atomically on
    every change, so the file on disk is always the store of record.
    """

    _data: Dict[str, Any] = field(init=False, default_factory=dict)
    _lock: asyncio.Lock = field(init=False, default_factory=asyncio.Lock)

    def __post_init__(self):
        working_dir = self.global_config.get("working_dir", "./ledger_vault_state")
        Path(working_dir).mkdir(parents=True, exist_ok=True)
        self._file_name = os.path.join(working_dir, f"state_{self.namespace}.json")
        self._data = self._load()
        logger.info(f"Load state {self.namespace} with {len(self._data)} keys")

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self._file_name):
            return {}
        try:
            with open(self._file_name, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable state file {self._file_name}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring state file {self._file_name}: not a JSON object")
            return {}
        return data

    def _write(self) -> None:
        tmp_name = f"{self._file_name}.tmp"
        with open(tmp_name, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False, default=str)
        os.replace(tmp_name, self._file_name)

    async def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            self._data[key] = value
            self._write()

    async def delete(self, *keys: str) -> None:
        async with self._lock:
            removed = [k for k in keys if k in self._data]
            for key in removed:
                del self._data[key]
            if removed:
                self._write()

    async def all_keys(self) -> List[str]:
        return list(self._data.keys())

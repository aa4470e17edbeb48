"""Dataset backed by a PostgREST (Supabase REST) endpoint."""

from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..base import BaseDataset, Record
from ..config import DatasetConfig
from .._utils import logger, truncate
from ..exceptions import DatasetError


class PostgrestDataset(BaseDataset):
    """Reads and writes business collections through PostgREST.

    Tables are addressed as ``<url>/rest/v1/<collection>``. Reads are paged
    so server-side row limits never truncate a snapshot.
    """

    PAGE_SIZE = 1000
    UPSERT_BATCH = 500
    DELETE_BATCH = 100

    def __init__(self, config: DatasetConfig, http_transport: Optional[httpx.AsyncBaseTransport] = None):
        if not config.url:
            raise ValueError("Dataset url is required")
        self.config = config
        self.primary_key = config.primary_key
        self._http_transport = http_transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["apikey"] = self.config.api_key
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._client = httpx.AsyncClient(
                base_url=f"{self.config.url.rstrip('/')}/rest/v1",
                headers=headers,
                timeout=httpx.Timeout(self.config.request_timeout),
                transport=self._http_transport,
            )
        return self._client

    def _soft_deletes(self, collection: str) -> bool:
        return bool(self.config.soft_delete_column) and collection not in self.config.hard_delete_collections

    async def select_all(self, collection: str) -> List[Record]:
        params = {"select": "*"}
        if self._soft_deletes(collection):
            params[self.config.soft_delete_column] = "is.null"
        return await self._select_paged(collection, params)

    async def select_all_ids(self, collection: str) -> List[Any]:
        rows = await self._select_paged(collection, {"select": self.primary_key})
        return [row[self.primary_key] for row in rows]

    async def upsert(self, collection: str, records: List[Record]) -> None:
        for start in range(0, len(records), self.UPSERT_BATCH):
            batch = records[start:start + self.UPSERT_BATCH]
            await self._request(
                collection,
                "POST",
                params={"on_conflict": self.primary_key},
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
                json=batch,
            )
        logger.debug(f"Upserted {len(records)} records into {collection}")

    async def delete_by_ids(self, collection: str, ids: Iterable[Any]) -> None:
        ids = list(ids)
        for start in range(0, len(ids), self.DELETE_BATCH):
            batch = ids[start:start + self.DELETE_BATCH]
            await self._request(
                collection,
                "DELETE",
                params={self.primary_key: f"in.({','.join(_quote(v) for v in batch)})"},
            )
        logger.debug(f"Deleted {len(ids)} records from {collection}")

    async def _select_paged(self, collection: str, params: Dict[str, str]) -> List[Record]:
        rows: List[Record] = []
        offset = 0
        while True:
            page_params = dict(params, order=f"{self.primary_key}.asc", limit=str(self.PAGE_SIZE), offset=str(offset))
            response = await self._request(collection, "GET", params=page_params)
            page = response.json()
            if not isinstance(page, list):
                raise DatasetError(collection, "Unexpected response body")
            rows.extend(page)
            if len(page) < self.PAGE_SIZE:
                return rows
            offset += self.PAGE_SIZE

    async def _request(self, collection: str, method: str, **kwargs) -> httpx.Response:
        try:
            response = await self._get_client().request(method, f"/{collection}", **kwargs)
        except httpx.TimeoutException:
            raise DatasetError(collection, "Request timed out")
        except httpx.HTTPError as e:
            raise DatasetError(collection, f"Connection error: {e}")

        if response.is_error:
            logger.error(f"Dataset {method} {collection} failed ({response.status_code}): {truncate(response.text, 500)}")
            raise DatasetError(collection, _error_message(response))
        return response

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _quote(value: Any) -> str:
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(payload, dict) and payload.get("message"):
        return truncate(f"{payload['message']} (HTTP {response.status_code})")
    return f"HTTP {response.status_code}"

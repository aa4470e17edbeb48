"""Redis-based key-value state storage for multi-process deployments."""

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional

import redis.asyncio as aioredis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError

from ..base import BaseStateStorage
from .._utils import logger


@dataclass
class RedisStateStorage(BaseStateStorage):
    """Redis-backed state with one JSON value per key."""

    _redis_client: Optional[Any] = field(init=False, default=None)
    _connection_pool: Optional[Any] = field(init=False, default=None)
    _initialized: bool = field(init=False, default=False)

    def __post_init__(self):
        """Read connection settings; the connection itself is opened lazily."""
        self._prefix = f"ledger_vault:{self.namespace}:"

        self.redis_url = self.global_config.get("redis_url", "redis://localhost:6379")
        self.redis_password = self.global_config.get("redis_password", None)
        self.max_connections = self.global_config.get("redis_max_connections", 10)
        self.socket_timeout = self.global_config.get("redis_socket_timeout", 5.0)
        self.connection_timeout = self.global_config.get("redis_connection_timeout", 5.0)

    async def _ensure_initialized(self):
        """Ensure Redis connection is initialized."""
        if self._initialized:
            return

        retry = Retry(
            ExponentialBackoff(cap=10, base=1),
            retries=3,
            supported_errors=(RedisConnectionError, TimeoutError, ConnectionError)
        )

        self._connection_pool = aioredis.ConnectionPool.from_url(
            self.redis_url,
            password=self.redis_password,
            max_connections=self.max_connections,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.connection_timeout,
            decode_responses=False,
            retry=retry,
        )
        self._redis_client = aioredis.Redis(connection_pool=self._connection_pool)

        try:
            await self._redis_client.ping()
            logger.info(f"Connected to Redis for state namespace: {self.namespace}")
        except RedisError as e:
            logger.error(f"Redis connection failed: {e}")
            raise

        self._initialized = True

    def _get_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _deserialize(self, data: Optional[bytes]) -> Any:
        if data is None:
            return None
        try:
            return json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Failed to deserialize state value: {e}")
            return None

    async def get(self, key: str) -> Optional[Any]:
        await self._ensure_initialized()
        try:
            data = await self._redis_client.get(self._get_key(key))
        except RedisError as e:
            logger.error(f"Redis get error for {key}: {e}")
            raise
        return self._deserialize(data)

    async def set(self, key: str, value: Any) -> None:
        await self._ensure_initialized()
        serialized = json.dumps(value, default=str).encode("utf-8")
        await self._redis_client.set(self._get_key(key), serialized)

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        await self._ensure_initialized()
        await self._redis_client.delete(*(self._get_key(k) for k in keys))

    async def all_keys(self) -> List[str]:
        await self._ensure_initialized()
        keys = []
        async for key in self._redis_client.scan_iter(match=f"{self._prefix}*", count=1000):
            keys.append(key.decode("utf-8").replace(self._prefix, "", 1))
        return keys

    async def close(self) -> None:
        if self._redis_client:
            await self._redis_client.aclose()
        if self._connection_pool:
            await self._connection_pool.disconnect()
        self._initialized = False

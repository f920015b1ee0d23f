"""Redis implementation of the state store."""

from __future__ import annotations

from typing import Any, Optional

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from .store import StateStore


class RedisStateStore(StateStore):
    """Keep workflow state in Redis strings under a common namespace."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        namespace: str = "stepflow:",
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisStateStore")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.namespace = namespace
        self._redis: Optional[Any] = None

    @classmethod
    def from_url(cls, url: str, namespace: str = "stepflow:") -> "RedisStateStore":
        store = cls(namespace=namespace)
        store._redis = redis.Redis.from_url(url, decode_responses=True)
        return store

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    async def get(self, key: str) -> str | None:
        client = await self._client()
        return await client.get(self.namespace + key)

    async def set(self, key: str, value: str) -> None:
        client = await self._client()
        await client.set(self.namespace + key, value)

    async def delete(self, key: str) -> None:
        client = await self._client()
        await client.delete(self.namespace + key)

    async def keys(self, prefix: str = "") -> list[str]:
        client = await self._client()
        found = [
            key[len(self.namespace):]
            async for key in client.scan_iter(match=f"{self.namespace}{prefix}*")
        ]
        return sorted(found)

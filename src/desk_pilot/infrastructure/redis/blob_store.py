from __future__ import annotations

import logging

from src.desk_pilot.domain.repositories import BlobStoreRepository
from src.desk_pilot.infrastructure.redis.client import RedisClient

logger = logging.getLogger(__name__)


class RedisBlobStore(BlobStoreRepository):
    """
    JSON blobs stored as plain Redis strings.

    Keys are namespaced under ``<prefix>:`` so several deployments can share
    one Redis database. The returned handle is the full Redis key.
    """

    def __init__(
        self,
        client: RedisClient,
        *,
        prefix: str = "desk-pilot",
        ttl_seconds: int | None = None,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._ttl = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}" if self._prefix else key

    async def put(self, key: str, body: str) -> str:
        full_key = self._key(key)
        await self._client.redis.set(full_key, body, ex=self._ttl)
        return full_key

    async def get(self, key: str) -> str | None:
        return await self._client.redis.get(self._key(key))

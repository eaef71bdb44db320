from __future__ import annotations

import logging

from redis.asyncio import ConnectionPool, Redis

logger = logging.getLogger(__name__)


class RedisClient:
    def __init__(
        self,
        url: str,
        *,
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
        retry_on_timeout: bool = True,
    ) -> None:
        pool = ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            retry_on_timeout=retry_on_timeout,
            decode_responses=True,
        )
        self._redis = Redis(connection_pool=pool)

    @property
    def redis(self) -> Redis:
        return self._redis

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def check_connection(self) -> bool:
        """Ping once; a failure is logged and reported as ``False``."""
        try:
            return await self.ping()
        except Exception as exc:
            logger.warning("Redis unreachable", extra={"error": str(exc)})
            return False

    async def close(self) -> None:
        await self._redis.aclose()

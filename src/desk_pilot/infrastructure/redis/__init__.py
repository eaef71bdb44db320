from src.desk_pilot.infrastructure.redis.blob_store import RedisBlobStore
from src.desk_pilot.infrastructure.redis.client import RedisClient

__all__ = [
    "RedisBlobStore",
    "RedisClient",
]

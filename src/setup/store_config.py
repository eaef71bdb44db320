from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class StoreSettings(BaseSettings):
    """Configuration for the Redis-backed progress/result blob store."""
    REDIS_URL: str = "redis://redis:6379/0"
    KEY_PREFIX: str = "desk-pilot"
    RESULT_TTL_SECONDS: int | None = 7 * 24 * 3600

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_store_settings() -> StoreSettings:
    """Return a fresh store settings instance."""
    return StoreSettings()

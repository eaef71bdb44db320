import inject

from src.desk_pilot.application.background import BackgroundRunner
from src.desk_pilot.domain.exceptions import PlannerUnavailableError
from src.desk_pilot.domain.repositories import (
    BlobStoreRepository,
    ComputerFactory,
    PlannerRepository,
    SandboxRepository,
)
from src.desk_pilot.infrastructure.cua import CuaComputerFactory, CuaSandboxClient
from src.desk_pilot.infrastructure.llm import AnthropicPlanner, get_model_config
from src.desk_pilot.infrastructure.redis import RedisBlobStore, RedisClient
from src.setup.cua_config import CuaSettings, get_cua_settings
from src.setup.store_config import get_store_settings

_redis_client: RedisClient | None = None


def get_redis_client() -> RedisClient:
    """Return the process-wide Redis client, creating it on first use."""
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisClient(get_store_settings().REDIS_URL)
    return _redis_client


def build_planner(settings: CuaSettings | None = None) -> AnthropicPlanner:
    """Create the planner, refusing when no model credentials are configured."""
    settings = settings or get_cua_settings()
    if not settings.ANTHROPIC_API_KEY:
        raise PlannerUnavailableError()
    return AnthropicPlanner(
        settings.ANTHROPIC_API_KEY,
        get_model_config(settings.CUA_MODEL),
        max_tokens=settings.PLANNER_MAX_TOKENS,
        max_retries=settings.ANTHROPIC_MAX_RETRIES,
    )


def configure_di() -> None:
    """Bind repository protocols to their Redis / HTTP / Anthropic implementations."""
    cua = get_cua_settings()
    store = get_store_settings()

    def _config(binder: inject.Binder) -> None:
        binder.bind(
            BlobStoreRepository,
            RedisBlobStore(
                get_redis_client(),
                prefix=store.KEY_PREFIX,
                ttl_seconds=store.RESULT_TTL_SECONDS,
            ),
        )
        binder.bind(
            SandboxRepository,
            CuaSandboxClient(
                cua.CUA_API_KEY,
                base_url=cua.CUA_API_BASE,
                timeout=cua.CUA_REQUEST_TIMEOUT_SECONDS,
            ),
        )
        binder.bind(
            ComputerFactory,
            CuaComputerFactory(
                cua.CUA_API_KEY,
                port=cua.CUA_COMPUTER_PORT,
                timeout=cua.CUA_REQUEST_TIMEOUT_SECONDS,
            ),
        )
        binder.bind_to_provider(PlannerRepository, build_planner)
        binder.bind(BackgroundRunner, BackgroundRunner())

    inject.configure(_config, clear=True)

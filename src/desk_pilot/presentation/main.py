import logging

import inject
from fastapi import FastAPI

from src.desk_pilot.application.background import BackgroundRunner
from src.setup.api_config import get_api_settings
from src.setup.app_config import configure_di, get_redis_client

settings = get_api_settings()
configure_di()

logging.basicConfig(level=settings.LOG_LEVEL)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Delegated desktop-automation tasks with progress polling",
)


async def _startup() -> None:
    await get_redis_client().check_connection()


async def _shutdown() -> None:
    await inject.instance(BackgroundRunner).shutdown()
    await get_redis_client().close()


app.add_event_handler("startup", _startup)
app.add_event_handler("shutdown", _shutdown)

from src.desk_pilot.presentation.routes import router as api_router  # noqa: E402

app.include_router(api_router, prefix="")

from contextlib import asynccontextmanager

from fastapi import FastAPI

from digestarr import __version__
from digestarr.api.routes_api import router as api_router
from digestarr.core.config import get_settings
from digestarr.core.log_buffer import setup_logging
from digestarr.services.jobs import manager
from digestarr.services.scheduler import scheduler
from digestarr.services.stats import stats


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    """Application lifespan context manager."""
    settings = get_settings()
    setup_logging(settings.log_level)
    stats.load()

    await manager.start_workers()
    scheduler.start(settings)
    try:
        yield
    finally:
        scheduler.shutdown()
        await manager.shutdown()


app = FastAPI(
    title="Digestarr",
    description="Weekly and monthly newsletters for Sonarr, Radarr and Trakt",
    version=__version__,
    lifespan=app_lifespan,
)

app.include_router(api_router, prefix="/api")

"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from . import __version__
from .api import create_api_router
from .config import settings
from .core.http_client import close_http_client
from .database import close_db_engine, init_db
from .services.extraction_service import get_extraction_service
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    setup_logging()
    app.state.started_at = datetime.utcnow()
    await init_db()
    logger.info(f"🚀 Newspaper archive {__version__} started")

    yield

    # Shutdown
    registry = get_extraction_service().registry
    active = registry.active_job_ids()
    if active:
        logger.info(f"⏳ Waiting for {len(active)} extraction runs to finish: {active}")
        await registry.wait_all()

    await close_http_client()
    await close_db_engine()
    logger.info("✅ Shutdown complete")


app = FastAPI(
    title="Church Newspaper Archive",
    description="Scrapes monthly newspaper issues and extracts articles and events from page scans",
    version=__version__,
    lifespan=lifespan
)

app.include_router(create_api_router(), prefix="/api")

# Downloaded page scans, addressed as /images/issue_<id>/<file name>
app.mount("/images", StaticFiles(directory=Path(settings.images_dir), check_dir=False), name="images")

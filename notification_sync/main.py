"""FastAPI application bridging the notification service to out-of-process clients."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from notification_sync.api.notifications import router as notifications_router
from notification_sync.container import Container, build_container
from notification_sync.infra.db.base import create_all
from notification_sync.settings import Settings, get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    """Build the app. A prebuilt container (tests) is used as-is and not closed on shutdown."""
    settings = settings or (container.settings if container is not None else get_settings())
    logging.getLogger().setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        owned = container is None
        app.state.container = container or build_container(settings)
        engine = app.state.container.engine
        if engine is not None:
            try:
                await create_all(engine)
            except (SQLAlchemyError, OSError) as e:
                # database might not be ready yet; the first request will report it
                logger.warning("Could not create tables during startup: %s", e)

        yield

        if owned:
            try:
                await app.state.container.close()
            except asyncio.CancelledError:
                logger.info("Lifespan shutdown cancelled (e.g. Ctrl+C); cleanup attempted.")
                raise

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r".*",
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.include_router(notifications_router, prefix=settings.api_v1_prefix)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()

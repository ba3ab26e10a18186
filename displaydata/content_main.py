"""
content-service: CRUD over display content. Every view, create and delete is
published to the content-events topic as a side effect.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from displaydata import __version__
from displaydata.core.config import Settings, get_content_settings
from displaydata.core.events import EventPublisher
from displaydata.core.exceptions import register_exception_handlers
from displaydata.core.logging_config import setup_logging
from displaydata.core.middleware import RequestLoggingMiddleware
from displaydata.routes.content import router as content_router
from displaydata.routes.health import router as health_router
from displaydata.services import ContentService

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    content_service: Optional[ContentService] = None,
    publisher: Optional[EventPublisher] = None,
) -> FastAPI:
    settings = settings or get_content_settings()
    content_service = content_service or ContentService()
    publisher = publisher or EventPublisher(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{settings.SERVICE_NAME} listening", extra={"port": settings.PORT})
        publisher.start()
        yield
        await publisher.stop()

    app = FastAPI(
        title="DisplayData Content Service",
        description="Display content catalogue publishing change events to Kafka.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.content_service = content_service
    app.state.kafka = publisher

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(content_router)
    return app


settings = get_content_settings()
setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.SERVICE_NAME, settings.ENVIRONMENT)
app = create_app(settings)


def main() -> None:
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()

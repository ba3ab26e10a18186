"""
analytics-service: consumes the content-events topic into an in-memory event
log and serves queries and counts over it.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from displaydata import __version__
from displaydata.core.config import Settings, get_analytics_settings
from displaydata.core.events import EventConsumer
from displaydata.core.exceptions import register_exception_handlers
from displaydata.core.logging_config import setup_logging
from displaydata.core.middleware import RequestLoggingMiddleware
from displaydata.routes.analytics import router as analytics_router
from displaydata.routes.health import router as health_router
from displaydata.services import EventLog

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    event_log: Optional[EventLog] = None,
    consumer: Optional[EventConsumer] = None,
) -> FastAPI:
    settings = settings or get_analytics_settings()
    event_log = event_log if event_log is not None else EventLog()
    consumer = consumer or EventConsumer(settings, event_log)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # HTTP serves immediately so liveness probes pass from the start.
        # The consumer connects in the background and retries on failure.
        logger.info(f"{settings.SERVICE_NAME} listening", extra={"port": settings.PORT})
        consumer.start()
        yield
        await consumer.stop()

    app = FastAPI(
        title="DisplayData Analytics Service",
        description="Kafka-fed event log with query and aggregation endpoints.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.event_log = event_log
    app.state.kafka = consumer

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(analytics_router)
    return app


settings = get_analytics_settings()
setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.SERVICE_NAME, settings.ENVIRONMENT)
app = create_app(settings)


def main() -> None:
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request as ``METHOD /path`` with its status and duration."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        logger.info(
            f"{request.method} {request.url.path}",
            extra={
                "status": response.status_code,
                "durationMs": round((time.perf_counter() - start_time) * 1000, 2),
            }
        )
        return response

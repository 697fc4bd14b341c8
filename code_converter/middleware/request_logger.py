import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from code_converter.logging_config import logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs the request line on arrival and status/duration on completion."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        client = request.client.host if request.client else "unknown"
        logger.info("%s %s - IP: %s", request.method, request.url.path, client)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000.0
        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            "%s %s - %s - %.0fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response


__all__ = ["RequestLoggingMiddleware"]

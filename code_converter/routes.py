import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.converter_routes import router as converter_router
from .db import SessionLocal, engine
from .errors import GatewayError, error_envelope, success_envelope
from .logging_config import logger
from .models import Base
from .services.history_writer import HistoryWriter
from .settings import settings


async def handle_gateway_error(request: Request, exc: GatewayError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    logger.info("rejected %s %s: %s", request.method, request.url.path, message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_envelope(message, error_code="validation_error"),
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        content = error_envelope(
            "Route not found",
            error_code="not_found",
            extra={"path": request.url.path},
        )
    else:
        content = error_envelope(str(exc.detail), error_code="http_error")
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    """
    Global handler: structured 500 body plus a logged traceback keyed by error id.
    """

    error_id = uuid.uuid4().hex
    logger.exception(
        "Unhandled error %s %s (error_id=%s)",
        request.method,
        request.url.path,
        error_id,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope(
            "Internal server error",
            error_code="internal_error",
            extra={"errorId": error_id},
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle:
    - startup: create tables, start the history writer
    - shutdown: drain pending history writes, release the connection pool
    """
    Base.metadata.create_all(bind=engine)

    writer = getattr(app.state, "history_writer", None)
    if writer is None:
        writer = HistoryWriter(SessionLocal)
        app.state.history_writer = writer
    writer.start()
    app.state.started_at = time.monotonic()
    logger.info(
        "code converter started (version=%s, environment=%s)",
        settings.version,
        settings.environment,
    )

    yield

    logger.info("shutting down: draining history writer")
    app.state.history_writer.shutdown()
    engine.dispose()


def _split_csv(value: str) -> list[str]:
    if value.strip() == "*":
        return ["*"]
    return [item.strip() for item in value.split(",") if item.strip()]


def create_app() -> FastAPI:
    from fastapi.middleware.cors import CORSMiddleware

    from .middleware import (
        RateLimitMiddleware,
        RequestLoggingMiddleware,
        RequestTimeoutMiddleware,
        RequestValidatorMiddleware,
    )

    docs_url = "/docs" if settings.enable_api_docs else None
    redoc_url = "/redoc" if settings.enable_api_docs else None
    openapi_url = "/openapi.json" if settings.enable_api_docs else None

    app = FastAPI(
        title="Code Converter",
        version=settings.version,
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
        lifespan=lifespan,
    )
    app.add_exception_handler(GatewayError, handle_gateway_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected_error)

    if not settings.enable_api_docs:
        logger.info(
            "API docs routes are disabled (environment=%s); set ENABLE_API_DOCS=true to enable.",
            settings.environment,
        )

    # add_middleware wraps: the last one added runs first.
    app.add_middleware(
        RequestValidatorMiddleware,
        max_body_bytes=settings.max_body_bytes,
    )
    app.add_middleware(
        RequestTimeoutMiddleware,
        timeout_seconds=settings.request_timeout_seconds,
    )
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.max_requests_per_minute,
        window_ms=settings.rate_limit_window_ms,
        max_clients=settings.rate_limit_max_clients,
        sweep_interval_seconds=settings.rate_limit_sweep_interval_seconds,
        trust_forwarded_headers=settings.trust_forwarded_headers,
    )
    if settings.log_requests:
        app.add_middleware(RequestLoggingMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_split_csv(settings.cors_allow_origins),
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=_split_csv(settings.cors_allow_methods),
        allow_headers=_split_csv(settings.cors_allow_headers),
    )

    @app.get("/")
    async def banner() -> dict:
        return success_envelope(
            {
                "message": "Code converter API is running",
                "version": settings.version,
                "status": "online",
            }
        )

    app.include_router(converter_router)

    return app


__all__ = ["create_app", "lifespan"]

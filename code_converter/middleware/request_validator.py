"""
Structural request checks that run before any route handler.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from code_converter.errors import RequestValidationFailed
from code_converter.logging_config import logger


class RequestValidatorMiddleware(BaseHTTPMiddleware):
    """
    Rejects mutating requests whose body is not JSON or is too large.

    Field-level rules (sourceText presence and length) are applied by
    code_converter.validation once the body has been parsed.
    """

    MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH"})

    def __init__(
        self,
        app: ASGIApp,
        max_body_bytes: int = 10 * 1024 * 1024,
        allowed_content_types: tuple[str, ...] = ("application/json",),
    ):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes
        self.allowed_content_types = allowed_content_types

    def _reject(self, message: str, request: Request) -> JSONResponse:
        logger.info(
            "rejected %s %s: %s", request.method, request.url.path, message
        )
        error = RequestValidationFailed(message)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content=error.to_envelope()
        )

    async def dispatch(self, request: Request, call_next):
        if request.method.upper() not in self.MUTATING_METHODS:
            return await call_next(request)

        content_type = request.headers.get("content-type", "").lower()
        if not any(allowed in content_type for allowed in self.allowed_content_types):
            return self._reject("Content-Type must be application/json", request)

        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_body_bytes:
            return self._reject(
                f"Request body too large. Maximum of {self.max_body_bytes} bytes.", request
            )

        # Chunked bodies carry no Content-Length. Starlette caches the body
        # read here and replays it to the route.
        body = await request.body()
        if len(body) > self.max_body_bytes:
            return self._reject(
                f"Request body too large. Maximum of {self.max_body_bytes} bytes.", request
            )

        return await call_next(request)


__all__ = ["RequestValidatorMiddleware"]

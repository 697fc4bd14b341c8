"""
Admission and request-shaping middleware for the FastAPI application.
"""

from .rate_limiter import RateLimitMiddleware, SlidingWindowRateLimiter
from .request_logger import RequestLoggingMiddleware
from .request_validator import RequestValidatorMiddleware
from .timeout import CompletionGate, RequestTimeoutMiddleware

__all__ = [
    "CompletionGate",
    "RateLimitMiddleware",
    "RequestLoggingMiddleware",
    "RequestTimeoutMiddleware",
    "RequestValidatorMiddleware",
    "SlidingWindowRateLimiter",
]

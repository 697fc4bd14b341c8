"""
Per-client sliding-window rate limiting.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Callable, NamedTuple

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from code_converter.errors import RateLimited
from code_converter.logging_config import logger


class RateLimitDecision(NamedTuple):
    allowed: bool
    remaining: int
    retry_after_ms: int


@dataclass
class ClientWindow:
    """Request timestamps (ms) of one client inside the trailing window."""

    timestamps: deque[int] = field(default_factory=deque)
    lock: threading.Lock = field(default_factory=threading.Lock)
    # Set once the window has been dropped from the registry.
    retired: bool = False

    def prune(self, now_ms: int, window_ms: int) -> None:
        # Exactly window_ms old counts as expired.
        while self.timestamps and now_ms - self.timestamps[0] >= window_ms:
            self.timestamps.popleft()


class SlidingWindowRateLimiter:
    """
    In-memory sliding-window limiter keyed by client identifier.

    Read-prune-append for one client runs under that client's lock, so two
    concurrent requests from the same client can never both observe
    "under limit" and overshoot the ceiling. Different clients never
    contend on the same lock.

    Memory stays bounded: `sweep()` drops clients whose window is empty,
    and the map is capped at `max_clients` entries with the least recently
    seen client evicted first.
    """

    def __init__(
        self,
        max_requests: int,
        window_ms: int = 60_000,
        max_clients: int = 10_000,
    ) -> None:
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.max_clients = max_clients
        self._windows: OrderedDict[str, ClientWindow] = OrderedDict()
        self._registry_lock = threading.Lock()

    def _window_for(self, client_id: str) -> ClientWindow:
        with self._registry_lock:
            window = self._windows.get(client_id)
            if window is None:
                window = ClientWindow()
                self._windows[client_id] = window
            self._windows.move_to_end(client_id)
            while len(self._windows) > self.max_clients:
                evicted_id, evicted = self._windows.popitem(last=False)
                evicted.retired = True
                logger.debug("rate limiter: evicted least recently seen client %s", evicted_id)
            return window

    def evaluate(self, client_id: str, now_ms: int) -> RateLimitDecision:
        while True:
            window = self._window_for(client_id)
            with window.lock:
                if window.retired:
                    # Dropped by sweep() between lookup and lock; use the fresh one.
                    continue
                window.prune(now_ms, self.window_ms)
                if len(window.timestamps) >= self.max_requests:
                    oldest = window.timestamps[0]
                    retry_after = max(0, self.window_ms - (now_ms - oldest))
                    return RateLimitDecision(False, 0, retry_after)
                window.timestamps.append(now_ms)
                remaining = self.max_requests - len(window.timestamps)
                return RateLimitDecision(True, remaining, 0)

    def admit(self, client_id: str, now_ms: int) -> bool:
        return self.evaluate(client_id, now_ms).allowed

    def sweep(self, now_ms: int) -> int:
        """Drop clients with no timestamps left inside the window."""
        with self._registry_lock:
            items = list(self._windows.items())

        idle: list[str] = []
        for client_id, window in items:
            with window.lock:
                window.prune(now_ms, self.window_ms)
                if not window.timestamps:
                    idle.append(client_id)

        removed = 0
        with self._registry_lock:
            for client_id in idle:
                window = self._windows.get(client_id)
                if window is None:
                    continue
                with window.lock:
                    # A request may have landed since the first pass.
                    if window.timestamps:
                        continue
                    window.retired = True
                    del self._windows[client_id]
                    removed += 1
        return removed

    def tracked_clients(self) -> int:
        with self._registry_lock:
            return len(self._windows)


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Admission gate in front of everything else.

    Denied requests get a 429 envelope with Retry-After; admitted ones
    carry X-RateLimit-* headers.
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter: SlidingWindowRateLimiter | None = None,
        max_requests: int = 10,
        window_ms: int = 60_000,
        max_clients: int = 10_000,
        sweep_interval_seconds: float = 300.0,
        trust_forwarded_headers: bool = False,
        exempt_paths: tuple[str, ...] = ("/favicon.ico",),
        clock_ms: Callable[[], int] | None = None,
        get_client_ip: Callable[[Request], str] | None = None,
    ):
        super().__init__(app)
        self.limiter = limiter or SlidingWindowRateLimiter(
            max_requests=max_requests, window_ms=window_ms, max_clients=max_clients
        )
        self.sweep_interval_ms = int(sweep_interval_seconds * 1000)
        self.trust_forwarded_headers = trust_forwarded_headers
        self.exempt_paths = exempt_paths
        self.clock_ms = clock_ms or _monotonic_ms
        self.get_client_ip = get_client_ip or self._default_get_client_ip
        self._last_sweep_ms: int | None = None

    def _default_get_client_ip(self, request: Request) -> str:
        """
        Socket peer address, or the first proxy header when the deployment
        sits behind a trusted reverse proxy.
        """
        if self.trust_forwarded_headers:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                return forwarded.split(",")[0].strip()

            real_ip = request.headers.get("X-Real-IP")
            if real_ip:
                return real_ip.strip()

        if request.client:
            return request.client.host

        return "unknown"

    def _maybe_sweep(self, now_ms: int) -> None:
        if self.sweep_interval_ms <= 0:
            return
        if self._last_sweep_ms is None:
            self._last_sweep_ms = now_ms
            return
        if now_ms - self._last_sweep_ms < self.sweep_interval_ms:
            return
        self._last_sweep_ms = now_ms
        removed = self.limiter.sweep(now_ms)
        if removed:
            logger.debug("rate limiter: swept %d idle clients", removed)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        now_ms = self.clock_ms()
        self._maybe_sweep(now_ms)

        client_ip = self.get_client_ip(request)
        decision = self.limiter.evaluate(client_ip, now_ms)

        headers = {
            "X-RateLimit-Limit": str(self.limiter.max_requests),
            "X-RateLimit-Remaining": str(decision.remaining),
        }

        if not decision.allowed:
            retry_after_seconds = max(1, -(-decision.retry_after_ms // 1000))
            logger.info(
                "rate limited client=%s path=%s retry_after=%ss",
                client_ip,
                request.url.path,
                retry_after_seconds,
            )
            error = RateLimited(
                f"Too many requests. Maximum {self.limiter.max_requests} per "
                f"{self.limiter.window_ms // 1000} seconds."
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=error.to_envelope(),
                headers={**headers, "Retry-After": str(retry_after_seconds)},
            )

        response: Response = await call_next(request)
        for key, value in headers.items():
            response.headers[key] = value
        return response


__all__ = [
    "ClientWindow",
    "RateLimitDecision",
    "RateLimitMiddleware",
    "SlidingWindowRateLimiter",
]
